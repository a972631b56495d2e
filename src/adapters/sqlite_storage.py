"""SQLite storage adapter.

Implements the core AccountStorePort using a simple SQLite database.
"""

from __future__ import annotations

from datetime import datetime
import sqlite3
from typing import Any, Iterable, List, Mapping, Optional

from core.errors import PersistenceError
from core.models import Account, Filter
from core.rules_engine import build_condition

_CONDITION_COLUMNS = (
    "negate",
    "type",
    "payload_action",
    "label",
    "milestone_title",
    "title_regex",
    "body_regex",
    "public",
    "organization_id",
    "repository_id",
)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=int(row["id"]),
        github_login=row["github_login"],
        last_seen_at=_parse_time(row["last_seen_at"]),
        next_eligible_poll_at=_parse_time(row["next_eligible_poll_at"]),
        default_discard=bool(row["default_discard"]),
    )


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the AccountStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - accounts: watched users with their watermark and next poll time
        - filters: ordered filters per account
        - conditions: AND-ed predicates per filter
        """

        with self._connect() as conn:
            # last_seen_at is the watermark; NULL means never polled.
            # Timestamps are ISO 8601 strings with an explicit offset.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id INTEGER PRIMARY KEY,
                    github_login TEXT NOT NULL,
                    default_discard INTEGER NOT NULL DEFAULT 0,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    last_seen_at TEXT,
                    next_eligible_poll_at TEXT
                )
                """
            )
            # position keeps the user's evaluation order (first match wins).
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS filters (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL REFERENCES accounts (id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    on_match_discard INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # Empty strings and zero ids mean "any"; public is NULL for any,
            # 1 for public only, 0 for private only.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conditions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filter_id INTEGER NOT NULL REFERENCES filters (id) ON DELETE CASCADE,
                    negate INTEGER NOT NULL DEFAULT 0,
                    type TEXT NOT NULL DEFAULT '',
                    payload_action TEXT NOT NULL DEFAULT '',
                    label TEXT NOT NULL DEFAULT '',
                    milestone_title TEXT NOT NULL DEFAULT '',
                    title_regex TEXT NOT NULL DEFAULT '',
                    body_regex TEXT NOT NULL DEFAULT '',
                    public INTEGER,
                    organization_id INTEGER NOT NULL DEFAULT 0,
                    repository_id INTEGER NOT NULL DEFAULT 0
                )
                """
            )

    def list_accounts(self) -> List[Account]:
        """Return every enabled account, ordered by id."""

        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, github_login, default_discard, last_seen_at, next_eligible_poll_at
                    FROM accounts WHERE enabled = 1 ORDER BY id
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not list accounts: {exc}") from exc
        return [_account_from_row(row) for row in rows]

    def get_account(self, account_id: int) -> Optional[Account]:
        """Return a single account, or None if it does not exist."""

        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT id, github_login, default_discard, last_seen_at, next_eligible_poll_at
                    FROM accounts WHERE id = ?
                    """,
                    (account_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not get account {account_id}: {exc}") from exc
        return _account_from_row(row) if row else None

    def list_filters(self, account_id: int) -> List[Filter]:
        """Return an account's filters in evaluation order."""

        try:
            with self._connect() as conn:
                filter_rows = conn.execute(
                    "SELECT id, on_match_discard FROM filters WHERE account_id = ? ORDER BY position, id",
                    (account_id,),
                ).fetchall()
                condition_rows = conn.execute(
                    f"""
                    SELECT c.filter_id, {", ".join("c." + column for column in _CONDITION_COLUMNS)}
                    FROM conditions c JOIN filters f ON c.filter_id = f.id
                    WHERE f.account_id = ? ORDER BY c.id
                    """,
                    (account_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not list filters for account {account_id}: {exc}") from exc

        conditions: dict[int, list] = {}
        for row in condition_rows:
            where = f"account {account_id} filter {row['filter_id']}"
            conditions.setdefault(row["filter_id"], []).append(build_condition(dict(row), where))

        return [
            Filter(
                conditions=tuple(conditions.get(row["id"], [])),
                on_match_discard=bool(row["on_match_discard"]),
                id=int(row["id"]),
            )
            for row in filter_rows
        ]

    def record_poll_result(
        self,
        account_id: int,
        last_seen_at: datetime,
        next_eligible_at: datetime,
    ) -> None:
        """Store the new watermark and next eligible poll time."""

        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "UPDATE accounts SET last_seen_at = ?, next_eligible_poll_at = ? WHERE id = ?",
                    (last_seen_at.isoformat(), next_eligible_at.isoformat(), account_id),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not record poll result for account {account_id}: {exc}") from exc
        if cur.rowcount == 0:
            raise PersistenceError(f"account {account_id} does not exist")

    def upsert_account(
        self,
        account_id: int,
        github_login: str,
        default_discard: bool = False,
        enabled: bool = True,
    ) -> None:
        """Insert or update an account without touching its watermark."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO accounts (id, github_login, default_discard, enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    github_login = excluded.github_login,
                    default_discard = excluded.default_discard,
                    enabled = excluded.enabled
                """,
                (account_id, github_login, int(default_discard), int(enabled)),
            )

    def replace_filters(self, account_id: int, filters_config: Iterable[Mapping[str, Any]]) -> int:
        """Replace an account's filters with the given configs, keeping their order.

        Returns the number of filters stored.
        """

        count = 0
        with self._connect() as conn:
            conn.execute("DELETE FROM filters WHERE account_id = ?", (account_id,))
            for position, entry in enumerate(filters_config):
                if not entry.get("enabled", True):
                    continue
                cur = conn.execute(
                    "INSERT INTO filters (account_id, position, on_match_discard) VALUES (?, ?, ?)",
                    (account_id, position, int(bool(entry.get("on_match_discard", False)))),
                )
                filter_id = cur.lastrowid
                for condition in entry.get("conditions", []) or []:
                    conn.execute(
                        f"""
                        INSERT INTO conditions (filter_id, {", ".join(_CONDITION_COLUMNS)})
                        VALUES (?, {", ".join("?" for _ in _CONDITION_COLUMNS)})
                        """,
                        (filter_id, *_condition_values(condition)),
                    )
                count += 1
        return count


def _condition_values(condition: Mapping[str, Any]) -> tuple:
    public = condition.get("public")
    return (
        int(bool(condition.get("negate", False))),
        condition.get("type") or "",
        condition.get("payload_action") or "",
        condition.get("label") or "",
        condition.get("milestone_title") or "",
        condition.get("title_regex") or "",
        condition.get("body_regex") or "",
        None if public is None else int(bool(public)),
        int(condition.get("organization_id") or 0),
        int(condition.get("repository_id") or 0),
    )
