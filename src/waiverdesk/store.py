"""SQLite persistence for waivers and admin accounts."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ConflictError, StoreUnavailableError
from .models import AdminUser, WaiverRecord, WaiverSubmission

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS waivers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    firstName TEXT NOT NULL,
    lastName TEXT NOT NULL,
    email TEXT NOT NULL,
    yearOfBirth TEXT NOT NULL,
    phone TEXT,
    emergencyContactPhone TEXT NOT NULL,
    safetyRulesInitial TEXT NOT NULL,
    medicalConsentInitial TEXT NOT NULL,
    photoRelease INTEGER NOT NULL DEFAULT 0,
    minorNames TEXT,
    signature TEXT NOT NULL,
    signatureDate TEXT NOT NULL,
    ipAddress TEXT,
    userAgent TEXT,
    createdAt TEXT NOT NULL DEFAULT (datetime('now')),
    waiverYear INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS admin_users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    passwordHash TEXT NOT NULL,
    createdAt TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_waiver_name ON waivers(lastName, firstName);
CREATE INDEX IF NOT EXISTS idx_waiver_year ON waivers(waiverYear);
CREATE INDEX IF NOT EXISTS idx_waiver_minors ON waivers(minorNames);
"""

WAIVER_DETAIL_COLUMNS = (
    "id, firstName, lastName, email, yearOfBirth, phone, emergencyContactPhone, "
    "safetyRulesInitial, medicalConsentInitial, photoRelease, minorNames, signature, "
    "signatureDate, waiverYear, createdAt, ipAddress, userAgent"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """Format a datetime the way browsers serialise ``Date`` values."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


_write_retry = retry(
    retry=retry_if_exception(_is_locked),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    stop=stop_after_attempt(3),
    reraise=True,
)


class WaiverStore:
    """Async wrapper around the waivers database."""

    def __init__(
        self,
        database_path: Path | str,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = database_path
        self._clock = clock
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        if isinstance(self._path, Path):
            self._path.parent.mkdir(parents=True, exist_ok=True)
        conn: aiosqlite.Connection | None = None
        try:
            conn = await aiosqlite.connect(str(self._path))
            conn.row_factory = aiosqlite.Row
            await conn.executescript(SCHEMA)
            await conn.commit()
        except sqlite3.Error as exc:
            if conn is not None:
                await conn.close()
            logger.error("store_open_failed path=%s error=%s", self._path, exc)
            raise StoreUnavailableError("Waiver database is unavailable") from exc
        self._conn = conn
        logger.info("store_opened path=%s", self._path)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreUnavailableError("Waiver database is not open")
        return self._conn

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a read query and return rows as plain dictionaries."""

        conn = self._connection()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            logger.error("store_read_failed error=%s", exc)
            raise StoreUnavailableError("Waiver database is unavailable") from exc
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    @_write_retry
    async def _write(self, sql: str, params: Sequence[Any]) -> int:
        conn = self._connection()
        cursor = await conn.execute(sql, tuple(params))
        try:
            await conn.commit()
            return cursor.lastrowid if cursor.lastrowid is not None else cursor.rowcount
        finally:
            await cursor.close()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the new row id."""

        try:
            return await self._write(sql, params)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("store_write_failed error=%s", exc)
            raise StoreUnavailableError("Waiver database is unavailable") from exc

    async def insert_waiver(
        self,
        submission: WaiverSubmission,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        signed_at: datetime | None = None,
    ) -> int:
        moment = signed_at or self._clock()
        return await self.execute(
            """
            INSERT INTO waivers (
                firstName, lastName, email, yearOfBirth, phone,
                emergencyContactPhone, safetyRulesInitial, medicalConsentInitial,
                photoRelease, minorNames, signature, signatureDate,
                ipAddress, userAgent, waiverYear
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                submission.first_name,
                submission.last_name,
                submission.email,
                submission.year_of_birth,
                submission.phone,
                submission.emergency_contact_phone,
                submission.safety_rules_initial,
                submission.medical_consent_initial,
                1 if submission.photo_release else 0,
                submission.minor_names,
                submission.signature,
                isoformat_utc(moment),
                ip_address,
                user_agent,
                moment.year,
            ),
        )

    async def get_waiver(self, waiver_id: int) -> WaiverRecord | None:
        row = await self.fetch_one(
            f"SELECT {WAIVER_DETAIL_COLUMNS} FROM waivers WHERE id = ?",
            (waiver_id,),
        )
        if row is None:
            return None
        row["photoRelease"] = bool(row.get("photoRelease"))
        return WaiverRecord.model_validate(row)

    async def count_waivers(self) -> int:
        row = await self.fetch_one("SELECT COUNT(*) AS total FROM waivers")
        return int(row["total"]) if row else 0

    async def create_admin(self, username: str, password_hash: str) -> int:
        try:
            return await self.execute(
                "INSERT INTO admin_users (username, passwordHash) VALUES (?, ?)",
                (username, password_hash),
            )
        except ConflictError as exc:
            raise ConflictError("Username already exists") from exc

    async def get_admin_password_hash(self, username: str) -> str | None:
        row = await self.fetch_one(
            "SELECT passwordHash FROM admin_users WHERE username = ?",
            (username,),
        )
        return row["passwordHash"] if row else None

    async def get_admin_by_id(self, user_id: int) -> AdminUser | None:
        row = await self.fetch_one(
            "SELECT id, username, createdAt FROM admin_users WHERE id = ?",
            (user_id,),
        )
        return AdminUser.model_validate(row) if row else None

    async def list_admins(self) -> list[AdminUser]:
        rows = await self.fetch_all(
            "SELECT id, username, createdAt FROM admin_users ORDER BY username COLLATE NOCASE"
        )
        return [AdminUser.model_validate(row) for row in rows]

    async def delete_admin(self, user_id: int) -> None:
        await self.execute("DELETE FROM admin_users WHERE id = ?", (user_id,))
