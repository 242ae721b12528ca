"""SQLite persistence for giveaway records and win history."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .models import Giveaway, GiveawayStatus, WinRecord
from .timeutils import format_timestamp, parse_timestamp, utcnow

LOGGER = logging.getLogger(__name__)

ACTIVE_STATUSES = (GiveawayStatus.PENDING.value, GiveawayStatus.OPEN.value)
TERMINAL_STATUSES = (GiveawayStatus.CLOSED.value, GiveawayStatus.CANCELLED.value)

_GIVEAWAY_COLUMNS = (
    "id",
    "owner_id",
    "game_name",
    "game_url",
    "price",
    "code",
    "created",
    "start_minutes",
    "duration_minutes",
    "status",
    "started",
    "ended",
    "last_updated",
    "url_message_id",
    "start_message_id",
    "participants",
    "cooldown_users",
    "winner_id",
    "comment",
)


class PersistenceError(RuntimeError):
    """Raised when the backing database cannot be read or written."""


class GiveawayStore:
    """Async wrapper around a SQLite database holding giveaway state."""

    def __init__(
        self,
        path: Path,
        *,
        retention_days: int = 30,
        winning_cooldown_days: int = 30,
    ) -> None:
        """Initialise the store; the database file is created on first use."""
        self.path = path
        self.retention_days = retention_days
        self.winning_cooldown_days = winning_cooldown_days
        self._lock = asyncio.Lock()

    async def get_active(self) -> list[Giveaway]:
        """Return every pending or open giveaway, oldest first."""
        return await self._run(self._select_giveaways, ACTIVE_STATUSES)

    async def list_all(self) -> list[Giveaway]:
        return await self._run(self._select_giveaways, None)

    async def get(self, giveaway_id: str) -> Optional[Giveaway]:
        return await self._run(self._select_giveaway, giveaway_id)

    async def update(self, giveaway: Giveaway) -> None:
        """Persist the full state of a giveaway, inserting it if new."""
        await self._run(self._write_giveaway, giveaway)

    async def clean(self, now: Optional[datetime] = None) -> int:
        """Purge terminal giveaways and win records past their retention window."""
        now = now or utcnow()
        removed = await self._run(self._purge, now)
        if removed:
            LOGGER.info("Purged %d finished giveaway(s).", removed)
        return removed

    async def get_comparable_winning(
        self, user_id: int, price: str, *, since: Optional[datetime] = None
    ) -> Optional[WinRecord]:
        """Return the user's most recent win in the given price bracket."""
        return await self._run(self._select_win, user_id, price, since)

    async def get_channel_id(self) -> Optional[int]:
        value = await self._run(self._read_metadata, "channel_id")
        return int(value) if value else None

    async def set_channel_id(self, channel_id: Optional[int]) -> None:
        await self._run(
            self._write_metadata,
            "channel_id",
            str(channel_id) if channel_id else None,
        )

    # --- Internal helpers -------------------------------------------------

    async def _run(self, func, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(func, *args)
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Giveaway database {self.path} failed: {exc}"
                ) from exc

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        self._ensure_schema(conn)
        return conn

    def _select_giveaways(self, statuses: Optional[tuple[str, ...]]) -> list[Giveaway]:
        conn = self._connect()
        try:
            if statuses is None:
                rows = conn.execute("SELECT * FROM giveaways ORDER BY created, id")
            else:
                placeholders = ", ".join("?" for _ in statuses)
                rows = conn.execute(
                    f"SELECT * FROM giveaways WHERE status IN ({placeholders}) "
                    "ORDER BY created, id",
                    statuses,
                )
            return [self._giveaway_from_row(row) for row in rows]
        finally:
            conn.close()

    def _select_giveaway(self, giveaway_id: str) -> Optional[Giveaway]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM giveaways WHERE id = ?", (giveaway_id,)
            ).fetchone()
            return self._giveaway_from_row(row) if row else None
        finally:
            conn.close()

    def _write_giveaway(self, giveaway: Giveaway) -> None:
        payload = giveaway.to_payload()
        payload["participants"] = json.dumps(payload["participants"])
        payload["cooldown_users"] = json.dumps(payload["cooldown_users"])
        columns = ", ".join(_GIVEAWAY_COLUMNS)
        placeholders = ", ".join("?" for _ in _GIVEAWAY_COLUMNS)

        conn = self._connect()
        try:
            conn.execute("BEGIN")
            conn.execute(
                f"INSERT OR REPLACE INTO giveaways({columns}) VALUES ({placeholders})",
                [payload[column] for column in _GIVEAWAY_COLUMNS],
            )
            win = WinRecord.from_giveaway(giveaway)
            if win is not None:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO win_records(
                        giveaway_id,
                        user_id,
                        price,
                        game_name,
                        ended
                    )
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        win.giveaway_id,
                        win.user_id,
                        win.price,
                        win.game_name,
                        format_timestamp(win.ended),
                    ),
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _purge(self, now: datetime) -> int:
        giveaway_cutoff = now - timedelta(days=self.retention_days)
        win_days = max(self.retention_days, self.winning_cooldown_days)
        win_cutoff = now - timedelta(days=win_days)
        placeholders = ", ".join("?" for _ in TERMINAL_STATUSES)

        conn = self._connect()
        try:
            conn.execute("BEGIN")
            cursor = conn.execute(
                f"DELETE FROM giveaways WHERE status IN ({placeholders}) AND ended < ?",
                (*TERMINAL_STATUSES, format_timestamp(giveaway_cutoff)),
            )
            removed = cursor.rowcount
            conn.execute(
                "DELETE FROM win_records WHERE ended < ?",
                (format_timestamp(win_cutoff),),
            )
            conn.commit()
            return removed
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _select_win(
        self, user_id: int, price: str, since: Optional[datetime]
    ) -> Optional[WinRecord]:
        query = "SELECT * FROM win_records WHERE user_id = ? AND price = ?"
        params: list = [int(user_id), str(price)]
        if since is not None:
            query += " AND ended >= ?"
            params.append(format_timestamp(since))
        query += " ORDER BY ended DESC LIMIT 1"

        conn = self._connect()
        try:
            row = conn.execute(query, params).fetchone()
            if row is None:
                return None
            return WinRecord(
                giveaway_id=row["giveaway_id"],
                user_id=int(row["user_id"]),
                price=row["price"],
                game_name=row["game_name"],
                ended=parse_timestamp(row["ended"]),
            )
        finally:
            conn.close()

    def _read_metadata(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def _write_metadata(self, key: str, value: Optional[str]) -> None:
        conn = self._connect()
        try:
            if value is None:
                conn.execute("DELETE FROM metadata WHERE key = ?", (key,))
            else:
                conn.execute(
                    "INSERT OR REPLACE INTO metadata(key, value) VALUES (?, ?)",
                    (key, value),
                )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _giveaway_from_row(row: sqlite3.Row) -> Giveaway:
        payload = {column: row[column] for column in _GIVEAWAY_COLUMNS}
        payload["participants"] = json.loads(row["participants"]) if row["participants"] else []
        payload["cooldown_users"] = json.loads(row["cooldown_users"]) if row["cooldown_users"] else []
        return Giveaway.from_payload(payload)

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS giveaways (
                id TEXT PRIMARY KEY,
                owner_id INTEGER NOT NULL,
                game_name TEXT NOT NULL,
                game_url TEXT NOT NULL,
                price TEXT NOT NULL,
                code TEXT,
                created TEXT NOT NULL,
                start_minutes INTEGER,
                duration_minutes INTEGER NOT NULL,
                status TEXT NOT NULL,
                started TEXT,
                ended TEXT,
                last_updated TEXT,
                url_message_id INTEGER,
                start_message_id INTEGER,
                participants TEXT,
                cooldown_users TEXT,
                winner_id INTEGER,
                comment TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_giveaways_status
            ON giveaways(status)
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS win_records (
                giveaway_id TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                price TEXT NOT NULL,
                game_name TEXT NOT NULL,
                ended TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_win_records_user_price
            ON win_records(user_id, price, ended)
            """
        )
