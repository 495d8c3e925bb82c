import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from src.gemchat.config import DATABASE_FILE, STORAGE_KEY
from src.gemchat.models.session import ChatSession

logger = logging.getLogger(__name__)


class SessionPersistenceService:
    """
    Persists the whole chat session collection as one JSON record under a
    fixed key of a SQLite key-value table, with a graceful in-memory fallback
    when the database is unavailable or corrupted.

    The service never owns sessions; it only serializes what it is handed
    and rebuilds ChatSession objects on load.
    """

    def __init__(self, db_path: Optional[Path] = None, storage_key: str = STORAGE_KEY) -> None:
        self.db_path = Path(db_path) if db_path else DATABASE_FILE
        self.storage_key = storage_key
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._fallback_mode = False
        self._fallback_store: Dict[str, str] = {}

        self._initialize_database()

    # --------------------------------------------------------------------- #
    # Initialization & teardown
    # --------------------------------------------------------------------- #
    def _initialize_database(self) -> None:
        """Attempt to set up the SQLite database; enable in-memory fallback on failure."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._connection.execute("PRAGMA journal_mode=WAL;")
            self._create_schema()
            logger.info("Session persistence initialized at %s", self.db_path)
        except Exception as exc:  # Broad except to guarantee fallback
            logger.error(
                "Failed to initialize session database at %s: %s. "
                "Falling back to in-memory storage.",
                self.db_path,
                exc,
            )
            self._activate_fallback_mode()

    def _create_schema(self) -> None:
        if not self._connection:
            return
        with self._connection:  # type: ignore[call-arg]
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        """Close the SQLite connection if it is open."""
        if self._connection:
            try:
                self._connection.close()
            except Exception:
                logger.debug("Failed to close session database connection cleanly.", exc_info=True)
        self._connection = None

    def _activate_fallback_mode(self) -> None:
        """Switch to in-memory persistence to keep the app functional."""
        self._fallback_mode = True
        self.close()

    @property
    def fallback_mode(self) -> bool:
        return self._fallback_mode

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #
    def load(self) -> List[ChatSession]:
        """
        Read and rehydrate the stored session collection.

        Returns:
            Sessions sorted newest first. An absent or unparsable record
            yields an empty list; the failure is only logged.
        """
        raw = self._read_value(self.storage_key)
        if raw is None:
            return []

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to parse chat history: %s", exc)
            return []

        if not isinstance(payload, list):
            logger.error("Stored chat history is not a list; ignoring it.")
            return []

        sessions: List[ChatSession] = []
        for entry in payload:
            try:
                session = ChatSession.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping unreadable stored session: %s", exc)
                continue
            self._settle_interrupted_streams(session)
            sessions.append(session)

        sessions.sort(key=lambda session: session.created_at, reverse=True)
        return sessions

    def save(self, sessions: Sequence[ChatSession], force: bool = False) -> None:
        """
        Write the full collection.

        Args:
            sessions: Every session, in display order.
            force: Also write when the collection is empty (used by deletion).
        """
        if not sessions and not force:
            return
        self._write_value(self.storage_key, self.serialize(sessions))

    def clear(self) -> None:
        """Remove the stored record."""
        if self._fallback_mode:
            self._fallback_store.pop(self.storage_key, None)
            return
        try:
            with self._lock:
                if not self._connection:
                    raise RuntimeError("Session database connection is not available.")
                self._connection.execute("DELETE FROM kv_store WHERE key = ?;", (self.storage_key,))
                self._connection.commit()
        except sqlite3.DatabaseError as exc:
            logger.error("Database error while clearing chat history: %s", exc, exc_info=True)
            self._activate_fallback_mode()
            self._fallback_store.pop(self.storage_key, None)

    @staticmethod
    def serialize(sessions: Sequence[ChatSession]) -> str:
        payload: List[Dict[str, Any]] = [
            session.model_dump(mode="json", by_alias=True, exclude_none=True)
            for session in sessions
        ]
        return json.dumps(payload, ensure_ascii=False)

    # --------------------------------------------------------------------- #
    # Internal helpers
    # --------------------------------------------------------------------- #
    def _read_value(self, key: str) -> Optional[str]:
        if self._fallback_mode:
            return self._fallback_store.get(key)

        try:
            with self._lock:
                if not self._connection:
                    raise RuntimeError("Session database connection is not available.")
                cursor = self._connection.execute("SELECT value FROM kv_store WHERE key = ?;", (key,))
                row = cursor.fetchone()
                return row[0] if row else None
        except sqlite3.DatabaseError as exc:
            logger.error("Database error while reading chat history: %s", exc, exc_info=True)
            self._activate_fallback_mode()
            return self._fallback_store.get(key)
        except Exception:
            logger.error("Unexpected error while reading chat history", exc_info=True)
            return None

    def _write_value(self, key: str, value: str) -> None:
        if self._fallback_mode:
            self._fallback_store[key] = value
            return

        try:
            with self._lock:
                if not self._connection:
                    raise RuntimeError("Session database connection is not available.")
                self._connection.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
                    """,
                    (key, value, self._now()),
                )
                self._connection.commit()
        except sqlite3.DatabaseError as exc:
            logger.error("Database error while saving chat history: %s", exc, exc_info=True)
            self._activate_fallback_mode()
            self._fallback_store[key] = value
        except Exception:
            logger.error("Unexpected error while saving chat history", exc_info=True)

    @staticmethod
    def _settle_interrupted_streams(session: ChatSession) -> None:
        # A stream cannot survive a restart; whatever arrived is final.
        for message in session.messages:
            if message.is_streaming:
                logger.debug("Finalizing interrupted message %s in session %s", message.id, session.id)
                message.is_streaming = False

    @staticmethod
    def _now() -> str:
        return datetime.now(tz=timezone.utc).isoformat(timespec="microseconds")
