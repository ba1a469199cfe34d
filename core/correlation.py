"""
Wallet correlation for coordinated position detection.

Pure functions that narrow a raw set of recent positions to the eligible
ones, collapse them to one position per wallet, and decide whether enough
distinct wallets moved together to justify a signal.

Usage:
    from core.correlation import aggregate_by_wallet, filter_eligible_positions

    eligible = filter_eligible_positions(positions, config, now_ms)
    aggregate = aggregate_by_wallet(eligible)
    if meets_wallet_threshold(aggregate.wallet_count, config.wallet_count):
        ...
"""

from __future__ import annotations

from collections.abc import Iterable

from shared.types import DetectionConfig, WalletAggregate, WalletPosition


def filter_eligible_positions(
    positions: Iterable[WalletPosition],
    config: DetectionConfig,
    now_ms: int,
) -> list[WalletPosition]:
    """
    Keep positions inside [now - window, now] that meet minimum size and leverage.

    Storage already bounds its query by the window; the bound is re-applied here
    so raw position sets get the same treatment. Input order is preserved.
    """
    window_ms = config.time_window_ms
    if window_ms <= 0:
        raise ValueError(f"time window must be > 0, got {config.time_window_min} min")

    cutoff_ms = now_ms - window_ms
    eligible = []
    for pos in positions:
        if pos.entry_timestamp < cutoff_ms or pos.entry_timestamp > now_ms:
            continue
        if pos.trade_size < config.min_trade_size:
            continue
        if pos.leverage < config.min_leverage:
            continue
        eligible.append(pos)
    return eligible


def aggregate_by_wallet(positions: Iterable[WalletPosition]) -> WalletAggregate:
    """
    Collapse positions to the latest one per wallet address.

    Ties on entry_timestamp keep the position encountered first.
    """
    latest: dict[str, WalletPosition] = {}
    for pos in positions:
        current = latest.get(pos.wallet_address)
        if current is None or pos.entry_timestamp > current.entry_timestamp:
            latest[pos.wallet_address] = pos
    return WalletAggregate(positions_by_wallet=latest)


def meets_wallet_threshold(wallet_count: int, threshold: int) -> bool:
    """Inclusive: fires when wallet_count >= threshold."""
    return wallet_count >= threshold
