"""SQLite conversation store -- chat sessions and message exchanges.

Stores sessions and exchanges in ~/.kaiwa/conversations.db (or
history.db_path from config). Thread-safe via per-thread connections.
The chat pipeline only ever reads "last N exchanges" and appends new ones;
session lifecycle (end, clear, cleanup) is driven by the API and CLI.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from kaiwa.log import get_home_dir, logger

ANONYMOUS_USER = "anonymous"


class ConversationStore:
    """Singleton SQLite store for chat sessions and message exchanges."""

    _instance: Optional["ConversationStore"] = None
    _lock = threading.Lock()

    def __init__(self, db_path: str | None = None):
        if not db_path:
            db_path = str(get_home_dir() / "conversations.db")

        self._db_path = db_path
        self._local = threading.local()
        self._conns: list[sqlite3.Connection] = []
        self._conns_lock = threading.Lock()
        self._init_db()

    @classmethod
    def get(cls) -> "ConversationStore":
        with cls._lock:
            if cls._instance is None:
                db_path = None
                try:
                    from kaiwa.config.loader import get_history_config
                    db_path = get_history_config().get("db_path") or None
                except Exception:
                    logger.debug("Config unavailable for history db_path, using default")
                cls._instance = cls(db_path)
            return cls._instance

    @classmethod
    def reset(cls):
        with cls._lock:
            if cls._instance is not None:
                cls._instance.close_all()
            cls._instance = None

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create a thread-local connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            conn = sqlite3.connect(self._db_path, timeout=10, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._conns_lock:
                self._conns.append(conn)
        return self._local.conn

    def _init_db(self):
        """Create tables and indexes."""
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                context TEXT NOT NULL DEFAULT '{}',
                active INTEGER NOT NULL DEFAULT 1,
                created_ts REAL NOT NULL,
                last_activity REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                message TEXT NOT NULL,
                response TEXT NOT NULL,
                message_type TEXT NOT NULL DEFAULT 'USER_QUERY',
                response_format TEXT NOT NULL DEFAULT 'TEXT',
                metadata TEXT NOT NULL DEFAULT '{}',
                ts REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id, active);
            CREATE INDEX IF NOT EXISTS idx_sessions_activity ON sessions(last_activity);
            CREATE INDEX IF NOT EXISTS idx_messages_session_ts ON messages(session_id, ts);
        """)
        conn.commit()

    # -----------------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------------

    def get_active_session(self, session_id: str) -> dict | None:
        row = self._get_conn().execute(
            "SELECT * FROM sessions WHERE session_id = ? AND active = 1", (session_id,)
        ).fetchone()
        return self._session_to_dict(row) if row else None

    def get_or_create_session(
        self,
        session_id: str | None,
        user_id: str | None,
        context: dict | None = None,
    ) -> dict:
        """Return the active session with this id, or create a fresh one with a new id."""
        if session_id:
            existing = self.get_active_session(session_id)
            if existing is not None:
                return existing

        new_id = str(uuid.uuid4())
        now = time.time()
        conn = self._get_conn()
        conn.execute(
            "INSERT INTO sessions (session_id, user_id, context, active, created_ts, last_activity) "
            "VALUES (?, ?, ?, 1, ?, ?)",
            (new_id, user_id or ANONYMOUS_USER, self._dumps(context or {}), now, now),
        )
        conn.commit()
        logger.debug("Created chat session %s for user %s", new_id, user_id or ANONYMOUS_USER)
        return self.get_active_session(new_id)

    def touch_session(self, session_id: str) -> None:
        conn = self._get_conn()
        conn.execute("UPDATE sessions SET last_activity = ? WHERE session_id = ?", (time.time(), session_id))
        conn.commit()

    def get_user_sessions(self, user_id: str) -> list[dict]:
        """Active sessions for a user, most recently active first."""
        rows = self._get_conn().execute(
            "SELECT * FROM sessions WHERE user_id = ? AND active = 1 ORDER BY last_activity DESC",
            (user_id,),
        ).fetchall()
        return [self._session_to_dict(r) for r in rows]

    def end_session(self, session_id: str) -> bool:
        conn = self._get_conn()
        cur = conn.execute("UPDATE sessions SET active = 0 WHERE session_id = ?", (session_id,))
        conn.commit()
        return cur.rowcount > 0

    # -----------------------------------------------------------------------
    # Exchanges
    # -----------------------------------------------------------------------

    def append_exchange(
        self,
        session_id: str,
        user_id: str | None,
        message: str,
        response: str,
        response_format: str = "TEXT",
        metadata: dict | None = None,
        message_type: str = "USER_QUERY",
        ts: float | None = None,
    ) -> int:
        conn = self._get_conn()
        cur = conn.execute(
            "INSERT INTO messages (session_id, user_id, message, response, message_type, response_format, metadata, ts) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session_id,
                user_id or ANONYMOUS_USER,
                message,
                response,
                message_type,
                response_format,
                self._dumps(metadata or {}),
                time.time() if ts is None else ts,
            ),
        )
        conn.commit()
        return cur.lastrowid

    def recent_exchanges(self, session_id: str, limit: int = 10, window_hours: float = 24) -> list[dict]:
        """The newest `limit` exchanges within the window, returned oldest first."""
        since = time.time() - window_hours * 3600
        rows = self._get_conn().execute(
            "SELECT * FROM messages WHERE session_id = ? AND ts >= ? ORDER BY ts DESC, id DESC LIMIT ?",
            (session_id, since, limit),
        ).fetchall()
        return [self._message_to_dict(r) for r in reversed(rows)]

    def get_history(self, session_id: str) -> list[dict]:
        rows = self._get_conn().execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY ts ASC, id ASC", (session_id,)
        ).fetchall()
        return [self._message_to_dict(r) for r in rows]

    def clear_history(self, session_id: str) -> int:
        conn = self._get_conn()
        cur = conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        conn.commit()
        return cur.rowcount

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def cleanup(self, inactive_days: float = 7, retention_days: float = 30) -> dict:
        """Deactivate idle sessions, then delete old sessions and their messages."""
        now = time.time()
        idle_cutoff = now - inactive_days * 86400
        delete_cutoff = now - retention_days * 86400
        conn = self._get_conn()
        deactivated = conn.execute(
            "UPDATE sessions SET active = 0 WHERE active = 1 AND last_activity < ?", (idle_cutoff,)
        ).rowcount
        messages = conn.execute(
            "DELETE FROM messages WHERE session_id IN (SELECT session_id FROM sessions WHERE last_activity < ?)",
            (delete_cutoff,),
        ).rowcount
        deleted = conn.execute("DELETE FROM sessions WHERE last_activity < ?", (delete_cutoff,)).rowcount
        conn.commit()
        logger.info("Session cleanup: %d deactivated, %d deleted, %d messages removed", deactivated, deleted, messages)
        return {"deactivated": deactivated, "deleted": deleted, "messages_deleted": messages}

    def close_all(self) -> None:
        with self._conns_lock:
            for conn in self._conns:
                try:
                    conn.close()
                except sqlite3.Error:
                    logger.debug("Failed to close conversation store connection")
            self._conns.clear()
        self._local = threading.local()

    # -----------------------------------------------------------------------
    # Row helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _dumps(value: dict) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _loads(raw: str | None) -> dict:
        try:
            data = json.loads(raw or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _iso(ts: float) -> str:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

    def _session_to_dict(self, row: sqlite3.Row) -> dict:
        d = dict(row)
        d["context"] = self._loads(d.get("context"))
        d["active"] = bool(d.get("active"))
        d["created_at"] = self._iso(d.pop("created_ts"))
        d["last_activity"] = self._iso(d["last_activity"])
        return d

    def _message_to_dict(self, row: sqlite3.Row) -> dict:
        d = dict(row)
        d["metadata"] = self._loads(d.get("metadata"))
        d["timestamp"] = self._iso(d.pop("ts"))
        return d
