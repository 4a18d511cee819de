"""Summary: Application services around storage for Mailient Arcus.

Importance: Wraps conversation memory, tokens, profiles, and notes behind small
per-concern services used by the chat route.
Alternatives: Call the store directly from the route handlers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from mailient.crypto import TokenCipher
from mailient.models import ChatTurn, ConversationMessage, Note
from mailient.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"
INTEGRATION_KEYS = ("gmail", "google-calendar", "google-meet")


@dataclass(frozen=True)
class ConversationService:
    """Summary: Persists chat turns with a per-conversation order index.

    Importance: Gives Arcus memory across turns without failing the chat on storage errors.
    Alternatives: Keep conversation history in the browser only.
    """

    store: SqliteStore

    def persist(
        self,
        user_email: str,
        user_message: str,
        agent_response: str,
        conversation_id: str,
    ) -> int | None:
        """Summary: Append one turn using the stored count plus one as its order.

        Importance: Best effort; failures are logged and never reach the caller.
        The count-then-insert is not transactional, so concurrent turns may race.
        Alternatives: Compute the order inside a database transaction.
        """

        try:
            order = self.store.get_conversation_message_count(user_email, conversation_id) + 1
            self.store.store_agent_chat_message(
                user_email,
                user_message,
                agent_response,
                conversation_id,
                order,
                order == 1,
            )
        except Exception:
            logger.exception("Failed to save conversation %s.", conversation_id)
            return None
        logger.info("Saved turn %s of conversation %s.", order, conversation_id)
        return order

    def load_history(self, user_email: str, conversation_id: str) -> list[ChatTurn]:
        """Summary: Flatten stored turns into user and assistant messages, oldest first."""

        try:
            thread = self.store.get_conversation_thread(user_email, conversation_id)
        except Exception:
            logger.exception("Failed to load conversation %s.", conversation_id)
            return []
        turns: list[ChatTurn] = []
        for entry in thread:
            if entry.user_message:
                turns.append(ChatTurn(role="user", content=entry.user_message))
            if entry.agent_response:
                turns.append(ChatTurn(role="assistant", content=entry.agent_response))
        return turns

    def thread(self, user_email: str, conversation_id: str) -> list[ConversationMessage]:
        return self.store.get_conversation_thread(user_email, conversation_id)


@dataclass(frozen=True)
class GmailTokens:
    """Summary: Decrypted Google credentials for one user."""

    access_token: str
    refresh_token: str | None
    expires_at: str | None


@dataclass(frozen=True)
class TokenService:
    """Summary: Stores Google OAuth tokens encrypted at rest.

    Importance: Plan runs need the user's Gmail and Calendar credentials.
    Alternatives: Use a secrets manager or encrypted database.
    """

    store: SqliteStore
    cipher: TokenCipher

    def store_tokens(
        self,
        user_email: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
    ) -> int:
        """Summary: Encrypt and upsert a user's Google tokens."""

        token_id = self.store.upsert_oauth_token(
            user_email=user_email,
            provider_name=GOOGLE_PROVIDER,
            access_token=self.cipher.encrypt(access_token),
            refresh_token=self.cipher.encrypt(refresh_token) if refresh_token else None,
            expires_at=expires_at,
        )
        logger.info("Stored Google tokens for %s.", user_email)
        return token_id

    def load_tokens(self, user_email: str) -> GmailTokens | None:
        """Summary: Decrypt a user's Google tokens, or None when none are stored.

        Importance: Undecryptable tokens are treated as missing so the chat keeps working.
        Alternatives: Fail the request and force re-authentication.
        """

        record = self.store.get_oauth_token(user_email, GOOGLE_PROVIDER)
        if not record:
            return None
        try:
            return GmailTokens(
                access_token=self.cipher.decrypt(record.access_token),
                refresh_token=self.cipher.decrypt(record.refresh_token)
                if record.refresh_token
                else None,
                expires_at=record.expires_at,
            )
        except ValueError as exc:
            logger.warning("Could not decrypt tokens for %s: %s", user_email, exc)
            return None

    def integration_status(self, user_email: str | None) -> dict[str, bool]:
        """Summary: Report which Google integrations the user has connected."""

        connected = bool(user_email) and self.store.get_oauth_token(
            user_email, GOOGLE_PROVIDER
        ) is not None
        return dict.fromkeys(INTEGRATION_KEYS, connected)


@dataclass(frozen=True)
class ProfileService:
    """Summary: Reads and writes per-user chat preferences."""

    store: SqliteStore

    def set_privacy_mode(
        self, user_email: str, enabled: bool, display_name: str | None = None
    ) -> None:
        self.store.upsert_user_profile(user_email, display_name, enabled)
        logger.info("Set AI privacy mode %s for %s.", "on" if enabled else "off", user_email)

    def privacy_mode(self, user_email: str | None) -> bool:
        """Summary: Return whether AI privacy mode is enabled; unknown users default to off."""

        if not user_email:
            return False
        profile = self.store.get_user_profile(user_email)
        return bool(profile and profile.privacy_mode)


@dataclass(frozen=True)
class NotesService:
    """Summary: Adds and searches user notes for notes questions in chat.

    Importance: Lets Arcus answer from the user's own notes.
    Alternatives: Query a separate notes application.
    """

    store: SqliteStore

    def add(self, user_email: str, subject: str, content: str) -> int:
        note = Note(
            subject=subject,
            content=content,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        note_id = self.store.add_note(user_email, note)
        logger.info("Added note %s for %s.", note_id, user_email)
        return note_id

    def search(self, user_email: str, term: str, limit: int = 10) -> list[Note]:
        if not term:
            return []
        return self.store.search_notes(user_email, term, limit)


def format_notes_context(notes: list[Note]) -> str:
    """Summary: Render notes as the NOTES CONTEXT block used in AI prompts."""

    lines = [f"=== NOTES CONTEXT ({len(notes)} notes) ===", ""]
    if not notes:
        lines.append("No notes found matching the query.")
    for index, note in enumerate(notes, start=1):
        lines.append(f"Note {index}:")
        lines.append(f"  Subject: {note.subject or '(No Subject)'}")
        lines.append(f"  Content: {note.content or '(No Content)'}")
        lines.append(f"  Created: {note.created_at or 'Unknown'}")
        lines.append("")
    return "\n".join(lines).rstrip()
