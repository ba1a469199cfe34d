"""
Position and signal storage for the wallet signal processor.

SQLite-backed store exposing the query and persist operations the signal
pipeline needs. Positions are written by ingestion and only read here;
signals, their contributing wallets and their targets are appended in one
transaction that also enforces the per (pair, direction) cooldown.

Usage:
    from core.signal_store import SqliteSignalStore

    store = SqliteSignalStore()
    positions = await store.recent_positions("BTC-PERP", PositionDirection.LONG, window_ms, now_ms)
    await store.save_signal_bundle(signal, wallets, targets, cooldown_ms)
"""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from bot_logging.logger_manager import setup_module_logger
from shared.constants import SIGNAL_COOLDOWN_SECONDS
from shared.errors import DuplicateSignalError
from shared.serialization_utils import DecimalEncoder, decimal_list_from_json
from shared.types import (
    PositionDirection,
    Signal,
    SignalStatus,
    SignalTarget,
    SignalWallet,
    WalletPosition,
)

_PROJECT_ROOT = Path(__file__).parent.parent
_DEFAULT_DB_DIR = _PROJECT_ROOT / "data"
_DEFAULT_DB_PATH = _DEFAULT_DB_DIR / "signals.db"

_DEFAULT_COOLDOWN_MS = SIGNAL_COOLDOWN_SECONDS * 1000


class SignalStore(Protocol):
    """Storage operations consumed by the signal pipeline."""

    async def recent_positions(
        self,
        pair: str,
        direction: PositionDirection,
        window_ms: int,
        now_ms: int | None = None,
    ) -> list[WalletPosition]: ...

    async def most_recent_signal_id(
        self, pair: str, direction: PositionDirection, cutoff_ms: int
    ) -> str | None: ...

    async def save_signal_bundle(
        self,
        signal: Signal,
        wallets: Sequence[SignalWallet],
        targets: Sequence[SignalTarget],
        cooldown_ms: int = _DEFAULT_COOLDOWN_MS,
    ) -> None: ...


class SqliteSignalStore:
    """
    SQLite implementation of SignalStore.

    The connection runs in autocommit mode; writes go through transaction(),
    which opens BEGIN IMMEDIATE so concurrent writers on the same database
    file serialize on the check-then-insert in save_signal_bundle.
    """

    def __init__(self, db_path: str | None = None, busy_timeout_seconds: float = 5.0) -> None:
        if db_path is None:
            db_path = str(_DEFAULT_DB_PATH)

        # Ensure data directory exists
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db_path = db_path
        self._db = sqlite3.connect(
            db_path, timeout=busy_timeout_seconds, isolation_level=None
        )
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA foreign_keys = ON")
        self._create_tables()

        self._logger = setup_module_logger(
            "signal_store", "signal_store.log", module_folder="Signal_Store_Logs"
        )

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _create_tables(self) -> None:
        """Create SQLite tables if they don't exist."""
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                wallet_address TEXT NOT NULL,
                pair TEXT NOT NULL,
                type TEXT NOT NULL,
                entry_price TEXT NOT NULL,
                trade_size TEXT NOT NULL,
                leverage TEXT NOT NULL,
                entry_timestamp INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_positions_pair_type_ts
                ON positions (pair, type, entry_timestamp);

            CREATE TABLE IF NOT EXISTS signals (
                signal_id TEXT PRIMARY KEY,
                pair TEXT NOT NULL,
                type TEXT NOT NULL,
                entry_timestamp TEXT NOT NULL,
                entry_price TEXT NOT NULL,
                avg_trade_size TEXT NOT NULL,
                stop_loss TEXT NOT NULL,
                targets_json TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                cooldown_bucket INTEGER NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_signals_cooldown_bucket
                ON signals (pair, type, cooldown_bucket);

            CREATE INDEX IF NOT EXISTS idx_signals_pair_type_created
                ON signals (pair, type, created_at);

            CREATE TABLE IF NOT EXISTS signal_wallets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                signal_id TEXT NOT NULL REFERENCES signals(signal_id),
                wallet_address TEXT NOT NULL,
                entry_price TEXT NOT NULL,
                trade_size TEXT NOT NULL,
                leverage TEXT NOT NULL,
                UNIQUE (signal_id, wallet_address)
            );

            CREATE TABLE IF NOT EXISTS signal_targets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                signal_id TEXT NOT NULL REFERENCES signals(signal_id),
                target_index INTEGER NOT NULL,
                target_percent TEXT NOT NULL,
                target_price TEXT NOT NULL,
                UNIQUE (signal_id, target_index)
            );
        """)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolling back on any exception."""
        self._db.execute("BEGIN IMMEDIATE")
        try:
            yield self._db
        except BaseException:
            self._db.execute("ROLLBACK")
            raise
        else:
            self._db.execute("COMMIT")

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    async def record_position(self, position: WalletPosition) -> int:
        """Insert a position (ingestion side). Returns the row id."""
        with self.transaction() as db:
            cursor = db.execute(
                """INSERT INTO positions
                   (wallet_address, pair, type, entry_price, trade_size, leverage,
                    entry_timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    position.wallet_address,
                    position.pair,
                    position.direction.value,
                    str(position.entry_price),
                    str(position.trade_size),
                    str(position.leverage),
                    position.entry_timestamp,
                ),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to obtain position ID after INSERT")
        return row_id

    async def recent_positions(
        self,
        pair: str,
        direction: PositionDirection,
        window_ms: int,
        now_ms: int | None = None,
    ) -> list[WalletPosition]:
        """Positions for pair/direction with entry_timestamp in [now - window, now]."""
        if window_ms <= 0:
            raise ValueError(f"window_ms must be > 0, got {window_ms}")
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        rows = self._db.execute(
            """SELECT * FROM positions
               WHERE pair = ? AND type = ? AND entry_timestamp >= ? AND entry_timestamp <= ?
               ORDER BY entry_timestamp ASC, id ASC""",
            (pair, direction.value, now_ms - window_ms, now_ms),
        ).fetchall()
        return [self._row_to_position(row) for row in rows]

    @staticmethod
    def _row_to_position(row: sqlite3.Row) -> WalletPosition:
        return WalletPosition(
            wallet_address=row["wallet_address"],
            pair=row["pair"],
            direction=PositionDirection(row["type"]),
            entry_price=Decimal(row["entry_price"]),
            trade_size=Decimal(row["trade_size"]),
            leverage=Decimal(row["leverage"]),
            entry_timestamp=row["entry_timestamp"],
        )

    # ------------------------------------------------------------------
    # Signals: reads
    # ------------------------------------------------------------------

    async def most_recent_signal_id(
        self, pair: str, direction: PositionDirection, cutoff_ms: int
    ) -> str | None:
        """Latest signal id for pair/direction created strictly after cutoff_ms."""
        return self._select_recent_signal_id(pair, direction.value, cutoff_ms)

    def _select_recent_signal_id(self, pair: str, direction: str, cutoff_ms: int) -> str | None:
        row = self._db.execute(
            """SELECT signal_id FROM signals
               WHERE pair = ? AND type = ? AND created_at > ?
               ORDER BY created_at DESC
               LIMIT 1""",
            (pair, direction, cutoff_ms),
        ).fetchone()
        return row["signal_id"] if row else None

    async def get_signal(self, signal_id: str) -> Signal | None:
        row = self._db.execute(
            "SELECT * FROM signals WHERE signal_id = ?", (signal_id,)
        ).fetchone()
        if row is None:
            return None
        return Signal(
            signal_id=row["signal_id"],
            pair=row["pair"],
            direction=PositionDirection(row["type"]),
            entry_timestamp=row["entry_timestamp"],
            entry_price=Decimal(row["entry_price"]),
            avg_trade_size=Decimal(row["avg_trade_size"]),
            stop_loss_percent=Decimal(row["stop_loss"]),
            take_profit_percents=tuple(decimal_list_from_json(row["targets_json"])),
            status=SignalStatus(row["status"]),
            created_at=row["created_at"],
        )

    async def get_signal_wallets(self, signal_id: str) -> list[SignalWallet]:
        rows = self._db.execute(
            "SELECT * FROM signal_wallets WHERE signal_id = ? ORDER BY id", (signal_id,)
        ).fetchall()
        return [
            SignalWallet(
                wallet_address=row["wallet_address"],
                entry_price=Decimal(row["entry_price"]),
                trade_size=Decimal(row["trade_size"]),
                leverage=Decimal(row["leverage"]),
            )
            for row in rows
        ]

    async def get_signal_targets(self, signal_id: str) -> list[SignalTarget]:
        rows = self._db.execute(
            "SELECT * FROM signal_targets WHERE signal_id = ? ORDER BY target_index",
            (signal_id,),
        ).fetchall()
        return [
            SignalTarget(
                target_index=row["target_index"],
                target_percent=Decimal(row["target_percent"]),
                target_price=Decimal(row["target_price"]),
            )
            for row in rows
        ]

    async def count_signals(self, pair: str, direction: PositionDirection) -> int:
        row = self._db.execute(
            "SELECT COUNT(*) AS n FROM signals WHERE pair = ? AND type = ?",
            (pair, direction.value),
        ).fetchone()
        return int(row["n"])

    # ------------------------------------------------------------------
    # Signals: writes
    # ------------------------------------------------------------------

    def save_signal(self, signal: Signal, cooldown_ms: int = _DEFAULT_COOLDOWN_MS) -> None:
        """Insert the signal row. Call inside transaction()."""
        self._db.execute(
            """INSERT INTO signals
               (signal_id, pair, type, entry_timestamp, entry_price, avg_trade_size,
                stop_loss, targets_json, status, created_at, cooldown_bucket)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                signal.signal_id,
                signal.pair,
                signal.direction.value,
                signal.entry_timestamp,
                str(signal.entry_price),
                str(signal.avg_trade_size),
                str(signal.stop_loss_percent),
                json.dumps(list(signal.take_profit_percents), cls=DecimalEncoder),
                signal.status.value,
                signal.created_at,
                signal.created_at // cooldown_ms,
            ),
        )

    def save_signal_wallets(self, signal_id: str, wallets: Sequence[SignalWallet]) -> None:
        """Insert one row per contributing wallet. Call inside transaction()."""
        self._db.executemany(
            """INSERT INTO signal_wallets
               (signal_id, wallet_address, entry_price, trade_size, leverage)
               VALUES (?, ?, ?, ?, ?)""",
            [
                (
                    signal_id,
                    w.wallet_address,
                    str(w.entry_price),
                    str(w.trade_size),
                    str(w.leverage),
                )
                for w in wallets
            ],
        )

    def save_signal_targets(self, signal_id: str, targets: Sequence[SignalTarget]) -> None:
        """Insert one row per take-profit level. Call inside transaction()."""
        self._db.executemany(
            """INSERT INTO signal_targets
               (signal_id, target_index, target_percent, target_price)
               VALUES (?, ?, ?, ?)""",
            [
                (signal_id, t.target_index, str(t.target_percent), str(t.target_price))
                for t in targets
            ],
        )

    async def save_signal_bundle(
        self,
        signal: Signal,
        wallets: Sequence[SignalWallet],
        targets: Sequence[SignalTarget],
        cooldown_ms: int = _DEFAULT_COOLDOWN_MS,
    ) -> None:
        """
        Atomically re-check the cooldown and persist signal, wallets and targets.

        Raises DuplicateSignalError if a signal for the same pair/direction was
        created within cooldown_ms of this one; nothing is written in that case.
        """
        direction = signal.direction.value
        try:
            with self.transaction():
                existing = self._select_recent_signal_id(
                    signal.pair, direction, signal.created_at - cooldown_ms
                )
                if existing is not None:
                    raise DuplicateSignalError(signal.pair, direction, existing)
                self.save_signal(signal, cooldown_ms)
                self.save_signal_wallets(signal.signal_id, wallets)
                self.save_signal_targets(signal.signal_id, targets)
        except sqlite3.IntegrityError as exc:
            if "cooldown_bucket" in str(exc) or "signals.pair" in str(exc):
                raise DuplicateSignalError(signal.pair, direction) from exc
            raise

        self._logger.info(
            "Signal persisted: id=%s pair=%s type=%s wallets=%d targets=%d",
            signal.signal_id,
            signal.pair,
            direction,
            len(wallets),
            len(targets),
        )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the SQLite database connection."""
        if self._db:
            self._db.close()
            self._logger.debug("SignalStore database closed")
