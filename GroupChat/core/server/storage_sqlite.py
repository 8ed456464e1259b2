"""SQLite persistence layer for GroupChat.

Holds the three durable tables the chat needs:

  - groups: name, bcrypt password hash and active flag
  - messages: append-only chat log, one row per accepted message
  - user_sessions: optional mirror of live sessions, cleared at start-up

Design goals:
  - Zero extra dependencies (uses stdlib sqlite3)
  - Safe for multi-request use (single process): guarded by a lock, so the
    websocket core may call it from worker threads
  - sqlite failures surface as PersistenceError, never as sqlite3 errors

The DB file location is controlled by Config.SQLITE_DB_FILE.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from GroupChat.core.server.exceptions import ConflictError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS groups (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT UNIQUE NOT NULL,
  password_hash TEXT NOT NULL,
  created_by TEXT NOT NULL DEFAULT 'admin',
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  group_id INTEGER NOT NULL,
  username TEXT NOT NULL,
  message TEXT NOT NULL,
  timestamp REAL NOT NULL,
  FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS user_sessions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  socket_id TEXT UNIQUE NOT NULL,
  username TEXT NOT NULL,
  group_id INTEGER NOT NULL,
  joined_at REAL NOT NULL,
  FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_groups_active ON groups(is_active);
CREATE INDEX IF NOT EXISTS idx_messages_group_time ON messages(group_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_sessions_group ON user_sessions(group_id);
"""


@dataclass(frozen=True)
class GroupRow:
    id: int
    name: str
    password_hash: str
    created_by: str
    is_active: bool
    created_at: float
    updated_at: float


@dataclass(frozen=True)
class MessageRow:
    id: int
    group_id: int
    username: str
    message: str
    timestamp: float


@dataclass(frozen=True)
class GroupSummary:
    name: str
    created_at: float
    updated_at: float
    message_count: int


def _group_from_row(row: sqlite3.Row) -> GroupRow:
    return GroupRow(
        id=int(row["id"]),
        name=row["name"],
        password_hash=row["password_hash"],
        created_by=row["created_by"],
        is_active=bool(row["is_active"]),
        created_at=float(row["created_at"]),
        updated_at=float(row["updated_at"]),
    )


def _message_from_row(row: sqlite3.Row) -> MessageRow:
    return MessageRow(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        username=row["username"],
        message=row["message"],
        timestamp=float(row["timestamp"]),
    )


class SQLiteStore:
    """A tiny SQLite-backed store for groups, messages and sessions."""

    def __init__(self, db_path: str):
        self.db_path = str(Path(db_path))
        self._lock = threading.RLock()
        self._last_timestamp = 0.0
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_db()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a locked unit of work; commit on success, roll back on error."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error("SQLite error: %s", e)
                raise PersistenceError(f"Database error: {e}") from e
            except Exception:
                self._conn.rollback()
                raise

    def _next_timestamp(self) -> float:
        # Strictly increasing so history order never depends on clock jitter.
        now = time.time()
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1e-6
        self._last_timestamp = now
        return now

    # --------------------------- groups ---------------------------
    def create_group(self, name: str, password_hash: str, created_by: str = "admin") -> GroupRow:
        now = time.time()
        with self._transaction() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO groups(name, password_hash, created_by, is_active, created_at, updated_at)
                    VALUES(?,?,?,1,?,?)
                    """,
                    (name, password_hash, created_by, now, now),
                )
            except sqlite3.IntegrityError:
                raise ConflictError("Group already exists")
            group_id = int(cur.lastrowid)
        logger.info("Created group %s (id=%d)", name, group_id)
        return GroupRow(group_id, name, password_hash, created_by, True, now, now)

    def get_group(self, name: str) -> Optional[GroupRow]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM groups WHERE name=?", (name,)).fetchone()
        return None if row is None else _group_from_row(row)

    def get_group_by_id(self, group_id: int) -> Optional[GroupRow]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM groups WHERE id=?", (int(group_id),)).fetchone()
        return None if row is None else _group_from_row(row)

    def update_group(
        self,
        name: str,
        new_name: Optional[str] = None,
        password_hash: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> GroupRow:
        """
        Apply the given changes to a group in one transaction.

        Raises:
            NotFoundError: No group is called ``name``
            ConflictError: ``new_name`` is taken by another group
        """
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM groups WHERE name=?", (name,)).fetchone()
            if row is None:
                raise NotFoundError("Group not found")
            current = _group_from_row(row)

            fields: Dict[str, Any] = {}
            if new_name and new_name != name:
                taken = conn.execute("SELECT 1 FROM groups WHERE name=?", (new_name,)).fetchone()
                if taken is not None:
                    raise ConflictError("New group name already exists")
                fields["name"] = new_name
            if password_hash:
                fields["password_hash"] = password_hash
            if is_active is not None:
                fields["is_active"] = 1 if is_active else 0
            if not fields:
                return current

            fields["updated_at"] = time.time()
            assignments = ", ".join(f"{column}=?" for column in fields)
            conn.execute(
                f"UPDATE groups SET {assignments} WHERE id=?",
                (*fields.values(), current.id),
            )
            row = conn.execute("SELECT * FROM groups WHERE id=?", (current.id,)).fetchone()
        return _group_from_row(row)

    def delete_group(self, name: str) -> GroupRow:
        """Delete a group together with its messages and mirrored sessions."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM groups WHERE name=?", (name,)).fetchone()
            if row is None:
                raise NotFoundError("Group not found")
            group = _group_from_row(row)
            conn.execute("DELETE FROM messages WHERE group_id=?", (group.id,))
            conn.execute("DELETE FROM user_sessions WHERE group_id=?", (group.id,))
            conn.execute("DELETE FROM groups WHERE id=?", (group.id,))
        logger.info("Deleted group %s and its messages", name)
        return group

    def list_groups(self, active_only: bool = True) -> List[GroupSummary]:
        """Groups newest first, each with its message count."""
        where = "WHERE g.is_active=1" if active_only else ""
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT g.name, g.created_at, g.updated_at, COUNT(m.id) AS message_count
                FROM groups g LEFT JOIN messages m ON m.group_id = g.id
                {where}
                GROUP BY g.id
                ORDER BY g.created_at DESC, g.id DESC
                """
            ).fetchall()
        return [
            GroupSummary(
                name=r["name"],
                created_at=float(r["created_at"]),
                updated_at=float(r["updated_at"]),
                message_count=int(r["message_count"]),
            )
            for r in rows
        ]

    def stats(self, recent: int = 5) -> Dict[str, Any]:
        with self._transaction() as conn:
            total_groups = conn.execute("SELECT COUNT(*) FROM groups").fetchone()[0]
            total_messages = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
            recent_rows = conn.execute(
                "SELECT name, created_at FROM groups ORDER BY created_at DESC, id DESC LIMIT ?",
                (int(recent),),
            ).fetchall()
        return {
            "total_groups": int(total_groups),
            "total_messages": int(total_messages),
            "recent_groups": [
                {"name": r["name"], "created_at": float(r["created_at"])} for r in recent_rows
            ],
        }

    # -------------------------- messages --------------------------
    def add_message(self, group_id: int, username: str, text: str) -> MessageRow:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT is_active FROM groups WHERE id=?", (int(group_id),)
            ).fetchone()
            if row is None or not row["is_active"]:
                raise NotFoundError("Group no longer exists")
            timestamp = self._next_timestamp()
            cur = conn.execute(
                "INSERT INTO messages(group_id, username, message, timestamp) VALUES(?,?,?,?)",
                (int(group_id), username, text, timestamp),
            )
            message_id = int(cur.lastrowid)
        return MessageRow(message_id, int(group_id), username, text, timestamp)

    def recent_messages(self, group_id: int, limit: int) -> List[MessageRow]:
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages WHERE group_id=?
                ORDER BY timestamp DESC, id DESC LIMIT ?
                """,
                (int(group_id), int(limit)),
            ).fetchall()
        return [_message_from_row(r) for r in reversed(rows)]

    def count_messages(self, group_id: Optional[int] = None) -> int:
        with self._transaction() as conn:
            if group_id is None:
                row = conn.execute("SELECT COUNT(*) FROM messages").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM messages WHERE group_id=?", (int(group_id),)
                ).fetchone()
        return int(row[0])

    # ----------------------- session mirror -----------------------
    def record_session(self, conn_id: str, username: str, group_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO user_sessions(socket_id, username, group_id, joined_at)
                VALUES(?,?,?,?)
                """,
                (conn_id, username, int(group_id), time.time()),
            )

    def remove_session(self, conn_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM user_sessions WHERE socket_id=?", (conn_id,))

    def count_sessions(self) -> int:
        with self._transaction() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM user_sessions").fetchone()[0])

    def clear_sessions(self) -> int:
        """Drop every mirrored session (stale after a restart)."""
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM user_sessions")
            return int(cur.rowcount)
