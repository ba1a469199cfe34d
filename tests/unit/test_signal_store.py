"""
Unit tests for core/signal_store.py.

Tests verify table creation, the recent-position window query, the
cooldown lookup, atomic persistence of signal/wallets/targets, and the
storage-level duplicate guard.
"""

from __future__ import annotations

import sqlite3
from decimal import Decimal

import pytest
from conftest import BASE_TIME_MS, MINUTE_MS, SAMPLE_PAIR, make_position, make_signal

from core.signal_store import SqliteSignalStore
from shared.errors import DuplicateSignalError
from shared.types import PositionDirection, SignalTarget, SignalWallet

COOLDOWN_MS = 5 * MINUTE_MS


WALLETS = [
    SignalWallet("0xa", Decimal("100"), Decimal("1"), Decimal("5")),
    SignalWallet("0xb", Decimal("102"), Decimal("2"), Decimal("10")),
]
TARGETS = [
    SignalTarget(0, Decimal("2.0"), Decimal("102.0")),
    SignalTarget(1, Decimal("3.5"), Decimal("103.5")),
]


# ---------------------------------------------------------------------------
# Table creation tests
# ---------------------------------------------------------------------------


class TestTableCreation:

    @pytest.mark.parametrize("table", ["positions", "signals", "signal_wallets", "signal_targets"])
    def test_table_exists(self, store, table):
        cursor = store._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        )
        assert cursor.fetchone() is not None

    def test_idempotent_table_creation(self, db_path):
        """Opening the store twice on the same DB should not fail."""
        s1 = SqliteSignalStore(db_path=db_path)
        s2 = SqliteSignalStore(db_path=db_path)
        s1.close()
        s2.close()


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


class TestRecentPositions:

    @pytest.mark.asyncio
    async def test_returns_positions_inside_window(self, store):
        now = BASE_TIME_MS + 20 * MINUTE_MS
        await store.record_position(make_position("0xold", entry_timestamp=BASE_TIME_MS))
        await store.record_position(
            make_position("0xin", entry_timestamp=BASE_TIME_MS + 10 * MINUTE_MS)
        )

        result = await store.recent_positions(
            SAMPLE_PAIR, PositionDirection.LONG, 15 * MINUTE_MS, now
        )
        assert [p.wallet_address for p in result] == ["0xin"]

    @pytest.mark.asyncio
    async def test_filters_by_pair_and_direction(self, store):
        await store.record_position(make_position("0xa"))
        await store.record_position(make_position("0xb", direction=PositionDirection.SHORT))
        await store.record_position(make_position("0xc", pair="ETH-PERP"))

        result = await store.recent_positions(
            SAMPLE_PAIR, PositionDirection.LONG, 15 * MINUTE_MS, BASE_TIME_MS
        )
        assert [p.wallet_address for p in result] == ["0xa"]

    @pytest.mark.asyncio
    async def test_round_trips_decimals(self, store):
        await store.record_position(
            make_position(entry_price="43210.123456", trade_size="0.0001", leverage="12.5")
        )
        [pos] = await store.recent_positions(
            SAMPLE_PAIR, PositionDirection.LONG, MINUTE_MS, BASE_TIME_MS
        )
        assert pos.entry_price == Decimal("43210.123456")
        assert pos.trade_size == Decimal("0.0001")
        assert pos.leverage == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_rejects_non_positive_window(self, store):
        with pytest.raises(ValueError):
            await store.recent_positions(SAMPLE_PAIR, PositionDirection.LONG, 0, BASE_TIME_MS)


# ---------------------------------------------------------------------------
# Cooldown lookup
# ---------------------------------------------------------------------------


class TestMostRecentSignalId:

    @pytest.mark.asyncio
    async def test_none_when_no_signals(self, store):
        assert (
            await store.most_recent_signal_id(SAMPLE_PAIR, PositionDirection.LONG, 0) is None
        )

    @pytest.mark.asyncio
    async def test_finds_signal_after_cutoff(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)
        found = await store.most_recent_signal_id(
            SAMPLE_PAIR, PositionDirection.LONG, BASE_TIME_MS - 1
        )
        assert found == "sig-1"

    @pytest.mark.asyncio
    async def test_cutoff_is_exclusive(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)
        found = await store.most_recent_signal_id(
            SAMPLE_PAIR, PositionDirection.LONG, BASE_TIME_MS
        )
        assert found is None

    @pytest.mark.asyncio
    async def test_other_direction_ignored(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)
        found = await store.most_recent_signal_id(
            SAMPLE_PAIR, PositionDirection.SHORT, BASE_TIME_MS - 1
        )
        assert found is None


# ---------------------------------------------------------------------------
# Signal persistence
# ---------------------------------------------------------------------------


class TestSaveSignalBundle:

    @pytest.mark.asyncio
    async def test_persists_signal_wallets_and_targets(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)

        signal = await store.get_signal("sig-1")
        assert signal == make_signal()
        assert await store.get_signal_wallets("sig-1") == WALLETS
        assert await store.get_signal_targets("sig-1") == TARGETS

    @pytest.mark.asyncio
    async def test_targets_json_column(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)
        row = store._db.execute("SELECT targets_json FROM signals").fetchone()
        assert row["targets_json"] == '["2.0", "3.5"]'

    @pytest.mark.asyncio
    async def test_duplicate_within_cooldown_rejected(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)

        with pytest.raises(DuplicateSignalError) as exc_info:
            await store.save_signal_bundle(
                make_signal("sig-2", BASE_TIME_MS + 4 * MINUTE_MS), WALLETS, TARGETS, COOLDOWN_MS
            )
        assert exc_info.value.existing_signal_id == "sig-1"
        assert await store.get_signal("sig-2") is None
        assert await store.get_signal_wallets("sig-2") == []

    @pytest.mark.asyncio
    async def test_allowed_after_cooldown(self, store):
        await store.save_signal_bundle(make_signal(), WALLETS, TARGETS, COOLDOWN_MS)
        await store.save_signal_bundle(
            make_signal("sig-2", BASE_TIME_MS + 6 * MINUTE_MS), WALLETS, TARGETS, COOLDOWN_MS
        )
        assert await store.count_signals(SAMPLE_PAIR, PositionDirection.LONG) == 2

    def test_bucket_index_blocks_duplicate_past_the_recheck(self, store):
        """Even a row written without the re-check cannot share a cooldown bucket."""
        with store.transaction():
            store.save_signal(make_signal(created_at=BASE_TIME_MS + 10), COOLDOWN_MS)

        with pytest.raises(sqlite3.IntegrityError), store.transaction():
            store.save_signal(make_signal("sig-2", created_at=BASE_TIME_MS + 20), COOLDOWN_MS)

    @pytest.mark.asyncio
    async def test_failure_rolls_back_whole_bundle(self, store):
        bad_targets = [TARGETS[0], TARGETS[0]]  # duplicate target_index
        with pytest.raises(sqlite3.IntegrityError):
            await store.save_signal_bundle(make_signal(), WALLETS, bad_targets, COOLDOWN_MS)

        assert await store.get_signal("sig-1") is None
        assert await store.get_signal_wallets("sig-1") == []
        assert await store.count_signals(SAMPLE_PAIR, PositionDirection.LONG) == 0

    @pytest.mark.asyncio
    async def test_two_connections_serialize(self, db_path):
        """A second process sees the first signal and is refused."""
        a = SqliteSignalStore(db_path=db_path)
        b = SqliteSignalStore(db_path=db_path)
        try:
            await a.save_signal_bundle(make_signal("sig-a"), WALLETS, TARGETS, COOLDOWN_MS)
            with pytest.raises(DuplicateSignalError):
                await b.save_signal_bundle(
                    make_signal("sig-b", BASE_TIME_MS + 1000), WALLETS, TARGETS, COOLDOWN_MS
                )
        finally:
            a.close()
            b.close()
