"""Summary: SQLite storage implementation for Mailient Arcus.

Importance: Provides local-first persistence for tokens, profiles, chat history, and notes.
Alternatives: Use Postgres through a hosted row store.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from mailient.models import AiRequest, AiResponse, ConversationMessage, Note


@dataclass(frozen=True)
class StoredToken:
    """Summary: Encrypted OAuth token record.

    Importance: Holds provider credentials without exposing plaintext in storage.
    Alternatives: Keep tokens only in the user session.
    """

    id: int
    user_email: str
    provider_name: str
    access_token: str
    refresh_token: str | None
    expires_at: str | None


@dataclass(frozen=True)
class StoredProfile:
    """Summary: User profile preferences relevant to chat."""

    user_email: str
    display_name: str | None
    privacy_mode: bool


class SqliteStore:
    """Summary: SQLite-backed storage for Mailient Arcus.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first chat turn.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT NOT NULL,
                    provider_name TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    expires_at TEXT,
                    UNIQUE(user_email, provider_name)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_profiles (
                    user_email TEXT PRIMARY KEY,
                    display_name TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS agent_chat_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    user_message TEXT NOT NULL,
                    agent_response TEXT NOT NULL,
                    message_order INTEGER NOT NULL,
                    is_initial_message INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ai_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT,
                    provider TEXT NOT NULL,
                    model TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    purpose TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ai_responses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    request_id INTEGER NOT NULL,
                    response_text TEXT NOT NULL,
                    latency_ms INTEGER NOT NULL,
                    token_estimate INTEGER NOT NULL
                )
                """
            )
            connection.commit()
        self._ensure_column("user_profiles", "privacy_mode")

    def upsert_oauth_token(
        self,
        user_email: str,
        provider_name: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
    ) -> int:
        """Summary: Insert or replace the encrypted token pair for a provider.

        Importance: Keeps one current credential per user and provider.
        Alternatives: Append token rows and read the latest.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO oauth_tokens (user_email, provider_name, access_token, refresh_token, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_email, provider_name) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    expires_at = excluded.expires_at
                """,
                (user_email, provider_name, access_token, refresh_token, expires_at),
            )
            cursor.execute(
                "SELECT id FROM oauth_tokens WHERE user_email = ? AND provider_name = ?",
                (user_email, provider_name),
            )
            row = cursor.fetchone()
            connection.commit()
        return int(row[0]) if row else 0

    def get_oauth_token(self, user_email: str, provider_name: str) -> StoredToken | None:
        """Summary: Fetch the stored token record for a provider."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, user_email, provider_name, access_token, refresh_token, expires_at
                FROM oauth_tokens
                WHERE user_email = ? AND provider_name = ?
                """,
                (user_email, provider_name),
            )
            row = cursor.fetchone()
        return StoredToken(*row) if row else None

    def upsert_user_profile(
        self, user_email: str, display_name: str | None, privacy_mode: bool
    ) -> None:
        """Summary: Save display name and AI privacy preference for a user."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO user_profiles (user_email, display_name, privacy_mode)
                VALUES (?, ?, ?)
                ON CONFLICT(user_email) DO UPDATE SET
                    display_name = COALESCE(excluded.display_name, user_profiles.display_name),
                    privacy_mode = excluded.privacy_mode
                """,
                (user_email, display_name, int(privacy_mode)),
            )
            connection.commit()

    def get_user_profile(self, user_email: str) -> StoredProfile | None:
        """Summary: Fetch profile preferences for a user."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT user_email, display_name, privacy_mode FROM user_profiles WHERE user_email = ?",
                (user_email,),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return StoredProfile(user_email=row[0], display_name=row[1], privacy_mode=bool(row[2]))

    def store_agent_chat_message(
        self,
        user_email: str,
        user_message: str,
        agent_response: str,
        conversation_id: str,
        message_order: int,
        is_initial_message: bool,
    ) -> int:
        """Summary: Append one chat turn to a conversation.

        Importance: Rows are written once per turn and never updated.
        Alternatives: Store conversations as a single JSON document.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO agent_chat_history (
                    user_email, conversation_id, user_message, agent_response,
                    message_order, is_initial_message, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_email,
                    conversation_id,
                    user_message or "",
                    agent_response or "",
                    message_order,
                    int(is_initial_message),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            message_id = cursor.lastrowid
            connection.commit()
        return int(message_id)

    def get_conversation_thread(
        self, user_email: str, conversation_id: str
    ) -> list[ConversationMessage]:
        """Summary: Return a conversation's turns ordered oldest to newest."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT user_email, user_message, agent_response, conversation_id,
                       message_order, is_initial_message, created_at
                FROM agent_chat_history
                WHERE user_email = ? AND conversation_id = ?
                ORDER BY message_order ASC, id ASC
                """,
                (user_email, conversation_id),
            )
            rows = cursor.fetchall()
        return [
            ConversationMessage(
                user_email=row[0],
                user_message=row[1],
                agent_response=row[2],
                conversation_id=row[3],
                message_order=int(row[4]),
                is_initial_message=bool(row[5]),
                created_at=row[6],
            )
            for row in rows
        ]

    def get_conversation_message_count(self, user_email: str, conversation_id: str) -> int:
        """Summary: Count stored turns in a conversation."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM agent_chat_history WHERE user_email = ? AND conversation_id = ?",
                (user_email, conversation_id),
            )
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def add_note(self, user_email: str, note: Note) -> int:
        """Summary: Persist a note for a user."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT INTO notes (user_email, subject, content, created_at) VALUES (?, ?, ?, ?)",
                (
                    user_email,
                    note.subject,
                    note.content,
                    note.created_at or datetime.now(timezone.utc).isoformat(),
                ),
            )
            note_id = cursor.lastrowid
            connection.commit()
        return int(note_id)

    def search_notes(self, user_email: str, term: str, limit: int) -> list[Note]:
        """Summary: Search a user's notes by subject or content.

        Importance: Backs notes questions asked in chat.
        Alternatives: Implement full-text search using SQLite FTS.
        """

        pattern = f"%{term}%"
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT subject, content, created_at
                FROM notes
                WHERE user_email = ? AND (subject LIKE ? OR content LIKE ?)
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_email, pattern, pattern, limit),
            )
            rows = cursor.fetchall()
        return [Note(*row) for row in rows]

    def log_ai_request(self, request: AiRequest, user_email: str | None = None) -> int:
        """Summary: Persist an AI request for auditing.

        Importance: Tracks prompts and providers used by the assistant.
        Alternatives: Use structured logs instead of database storage.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO ai_requests (user_email, provider, model, prompt, purpose, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_email,
                    request.provider,
                    request.model,
                    request.prompt,
                    request.purpose,
                    request.timestamp.isoformat(),
                ),
            )
            request_id = cursor.lastrowid
            connection.commit()
        return int(request_id)

    def log_ai_response(self, response: AiResponse) -> int:
        """Summary: Persist an AI response for auditing."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO ai_responses (request_id, response_text, latency_ms, token_estimate)
                VALUES (?, ?, ?, ?)
                """,
                (
                    response.request_id,
                    response.response_text,
                    response.latency_ms,
                    response.token_estimate,
                ),
            )
            response_id = cursor.lastrowid
            connection.commit()
        return int(response_id)

    def count_ai_requests(self, purpose: str | None = None) -> int:
        """Summary: Count audited AI requests, optionally for one purpose."""

        with self._connection() as connection:
            cursor = connection.cursor()
            if purpose is None:
                cursor.execute("SELECT COUNT(*) FROM ai_requests")
            else:
                cursor.execute("SELECT COUNT(*) FROM ai_requests WHERE purpose = ?", (purpose,))
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def _ensure_column(self, table: str, column: str) -> None:
        """Summary: Ensure a column exists in a table.

        Importance: Provides lightweight migration support for new fields.
        Alternatives: Use a migration tool to manage schema changes.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"PRAGMA table_info({table})")
            columns = {row[1] for row in cursor.fetchall()}
            if column in columns:
                return
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} INTEGER DEFAULT 0")
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections."""

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()
