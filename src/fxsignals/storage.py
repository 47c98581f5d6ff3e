from __future__ import annotations

import sqlite3
from contextlib import closing
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fxsignals.domain.models import Action, PriceBar, Signal, SignalResult, SignalStatus
from fxsignals.errors import SignalNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence

_SIGNAL_COLUMNS = """
    id, pair, action, entry_price, take_profit_price, stop_loss_price,
    confidence, status, result, created_at, closed_at
"""
_BAR_COLUMNS = "pair, timestamp, open, high, low, close, volume"


@dataclass(slots=True, frozen=True)
class AccuracyStat:
    pair: str
    total_signals: int
    wins: int

    @property
    def accuracy(self) -> float:
        if self.total_signals == 0:
            return 0.0
        return self.wins / self.total_signals * 100.0


def to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


class SignalStorage:
    """Market data and trading signal persistence over SQLite or PostgreSQL."""

    def __init__(self, database_url: str, timeout_seconds: float = 5.0) -> None:
        if not database_url:
            raise ValueError("database_url must be non-empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        self.database_url = database_url
        self.timeout_seconds = timeout_seconds
        self._is_postgres = database_url.startswith(("postgresql://", "postgres://"))
        self._sqlite_path: str | None
        if database_url.startswith("sqlite:///"):
            self._sqlite_path = database_url.removeprefix("sqlite:///")
        elif self._is_postgres:
            self._sqlite_path = None
        else:
            raise ValueError("database_url must start with sqlite:/// or postgresql://")

    def init_schema(self) -> None:
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            conn.commit()

    def insert_market_data(self, bars: Sequence[PriceBar]) -> int:
        """Store bars, skipping any (pair, timestamp) already present.

        Returns the number of rows actually written.
        """
        if not bars:
            return 0
        rows = [
            (
                bar.pair,
                to_utc_iso(bar.timestamp),
                str(bar.open),
                str(bar.high),
                str(bar.low),
                str(bar.close),
                int(bar.volume),
            )
            for bar in bars
        ]
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            cur.executemany(
                self._sql(
                    f"INSERT INTO market_data ({_BAR_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT (pair, timestamp) DO NOTHING"
                ),
                rows,
            )
            inserted = cur.rowcount
            conn.commit()
        return max(inserted, 0)

    def get_price_history(self, pair: str, start: datetime, end: datetime) -> list[PriceBar]:
        """Bars for pair with start <= timestamp <= end, oldest first."""
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                f"""
                SELECT {_BAR_COLUMNS}
                FROM market_data
                WHERE pair = ? AND timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp ASC, id ASC
                """,
                (pair, to_utc_iso(start), to_utc_iso(end)),
            )
            rows = cur.fetchall()
        return [self._row_to_bar(row) for row in rows]

    def get_latest_price_bar(self, pair: str) -> PriceBar | None:
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                f"""
                SELECT {_BAR_COLUMNS}
                FROM market_data
                WHERE pair = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
                """,
                (pair,),
            )
            row = cur.fetchone()
        return None if row is None else self._row_to_bar(row)

    def save_signal(self, signal: Signal) -> Signal:
        created_at = signal.created_at or datetime.now(UTC)
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                """
                INSERT INTO trading_signals
                    (
                        pair,
                        action,
                        entry_price,
                        take_profit_price,
                        stop_loss_price,
                        confidence,
                        status,
                        result,
                        created_at,
                        closed_at
                    )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    signal.pair,
                    str(signal.action),
                    str(signal.entry_price),
                    str(signal.take_profit_price),
                    str(signal.stop_loss_price),
                    int(signal.confidence),
                    str(signal.status),
                    None if signal.result is None else str(signal.result),
                    to_utc_iso(created_at),
                    None if signal.closed_at is None else to_utc_iso(signal.closed_at),
                ),
            )
            if self._is_postgres:
                inserted = cur.fetchone()
                if inserted is None:
                    raise ValueError("Failed to read inserted signal id")
                signal_id = int(inserted[0])
            else:
                signal_id = int(cur.lastrowid)
            conn.commit()
        return replace(signal, signal_id=signal_id, created_at=created_at)

    def get_signal(self, signal_id: int) -> Signal | None:
        rows = self._select_signals("WHERE id = ?", (int(signal_id),), limit=1)
        return rows[0] if rows else None

    def list_active_signals(self, limit: int = 100) -> list[Signal]:
        return self._select_signals(
            "WHERE status = ?", (str(SignalStatus.ACTIVE),), limit=limit
        )

    def list_signals_by_pair(self, pair: str, limit: int = 100) -> list[Signal]:
        return self._select_signals("WHERE pair = ?", (pair,), limit=limit)

    def update_signal_result(
        self,
        signal_id: int,
        result: SignalResult,
        closed_at: datetime | None = None,
        status: SignalStatus = SignalStatus.CLOSED,
    ) -> Signal:
        if status == SignalStatus.ACTIVE:
            raise ValueError("status must be closed or expired")
        closed = closed_at or datetime.now(UTC)
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                "UPDATE trading_signals SET result = ?, closed_at = ?, status = ? WHERE id = ?",
                (str(result), to_utc_iso(closed), str(status), int(signal_id)),
            )
            updated = cur.rowcount
            conn.commit()
        if updated == 0:
            raise SignalNotFoundError(f"Unknown signal id={signal_id}")
        signal = self.get_signal(signal_id)
        assert signal is not None
        return signal

    def signal_accuracy_stats(self) -> list[AccuracyStat]:
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                """
                SELECT
                    pair,
                    COUNT(id),
                    SUM(CASE WHEN result = 'win' THEN 1 ELSE 0 END)
                FROM trading_signals
                WHERE status = ?
                GROUP BY pair
                ORDER BY pair
                """,
                (str(SignalStatus.CLOSED),),
            )
            rows = cur.fetchall()
        return [
            AccuracyStat(pair=str(row[0]), total_signals=int(row[1]), wins=int(row[2] or 0))
            for row in rows
        ]

    def count_signals(self) -> int:
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(cur, "SELECT COUNT(id) FROM trading_signals", ())
            row = cur.fetchone()
        return int(row[0]) if row else 0

    def _select_signals(
        self,
        where: str,
        params: tuple[Any, ...],
        limit: int,
    ) -> list[Signal]:
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        with closing(self._connect()) as conn:
            self._run_schema_migrations(conn)
            cur = conn.cursor()
            self._execute(
                cur,
                f"""
                SELECT {_SIGNAL_COLUMNS}
                FROM trading_signals
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (*params, int(limit)),
            )
            rows = cur.fetchall()
        return [self._row_to_signal(row) for row in rows]

    def _connect(self) -> Any:
        if self._is_postgres:
            try:
                import psycopg
            except ImportError as exc:  # pragma: no cover
                raise ValueError(
                    "PostgreSQL URL configured but psycopg is not installed."
                ) from exc
            return psycopg.connect(
                self.database_url,
                connect_timeout=max(1, int(self.timeout_seconds)),
            )

        assert self._sqlite_path is not None
        path = Path(self._sqlite_path)
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(path), timeout=self.timeout_seconds)

    def _run_schema_migrations(self, conn: Any) -> None:
        cur = conn.cursor()
        if self._is_postgres:
            id_column = "id BIGSERIAL PRIMARY KEY"
            price_type = "NUMERIC(10, 5)"
        else:
            id_column = "id INTEGER PRIMARY KEY AUTOINCREMENT"
            price_type = "TEXT"
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS market_data (
                {id_column},
                pair TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                open {price_type} NOT NULL,
                high {price_type} NOT NULL,
                low {price_type} NOT NULL,
                close {price_type} NOT NULL,
                volume INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS uq_market_data_pair_timestamp
            ON market_data (pair, timestamp)
            """
        )
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS trading_signals (
                {id_column},
                pair TEXT NOT NULL,
                action TEXT NOT NULL,
                entry_price {price_type} NOT NULL,
                take_profit_price {price_type} NOT NULL,
                stop_loss_price {price_type} NOT NULL,
                confidence INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                result TEXT,
                created_at TEXT NOT NULL,
                closed_at TEXT
            )
            """
        )

    def _sql(self, query: str) -> str:
        if self._is_postgres:
            return query.replace("?", "%s")
        return query

    def _execute(self, cur: Any, query: str, params: tuple[Any, ...]) -> None:
        sql = self._sql(query)
        if self._is_postgres and "INSERT INTO trading_signals" in query:
            sql += " RETURNING id"
        cur.execute(sql, params)

    @staticmethod
    def _row_to_bar(row: Sequence[Any]) -> PriceBar:
        return PriceBar(
            pair=str(row[0]),
            timestamp=datetime.fromisoformat(str(row[1])),
            open=Decimal(str(row[2])),
            high=Decimal(str(row[3])),
            low=Decimal(str(row[4])),
            close=Decimal(str(row[5])),
            volume=int(row[6] or 0),
        )

    @staticmethod
    def _row_to_signal(row: Sequence[Any]) -> Signal:
        return Signal(
            signal_id=int(row[0]),
            pair=str(row[1]),
            action=Action(str(row[2])),
            entry_price=Decimal(str(row[3])),
            take_profit_price=Decimal(str(row[4])),
            stop_loss_price=Decimal(str(row[5])),
            confidence=int(row[6]),
            status=SignalStatus(str(row[7])),
            result=None if row[8] is None else SignalResult(str(row[8])),
            created_at=datetime.fromisoformat(str(row[9])),
            closed_at=None if row[10] is None else datetime.fromisoformat(str(row[10])),
        )
