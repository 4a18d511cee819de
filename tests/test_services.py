"""Summary: Tests for conversation, token, profile, and notes services.

Importance: Ensures chat memory ordering and credential handling behave as expected.
Alternatives: Validate services only through the chat route.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from mailient.crypto import TokenCipher
from mailient.models import Note
from mailient.services import (
    ConversationService,
    NotesService,
    ProfileService,
    TokenService,
    format_notes_context,
)
from mailient.storage.sqlite_store import SqliteStore


USER = "alex@example.com"


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "arcus.db"))
    store.initialize()
    return store


class BrokenStore:
    def get_conversation_message_count(self, user_email: str, conversation_id: str) -> int:
        raise sqlite3.OperationalError("database is locked")

    def get_conversation_thread(self, user_email: str, conversation_id: str) -> list:
        raise sqlite3.OperationalError("database is locked")


def test_persist_assigns_increasing_order(tmp_path: Path) -> None:
    """Summary: Each stored turn gets the previous count plus one.

    Importance: Conversation history must replay in order.
    Alternatives: Order turns by timestamp only.
    """

    conversations = ConversationService(store=_store(tmp_path))
    orders = [
        conversations.persist(USER, f"question {index}", f"answer {index}", "conv_1")
        for index in range(3)
    ]
    assert orders == [1, 2, 3]
    thread = conversations.thread(USER, "conv_1")
    assert [entry.message_order for entry in thread] == [1, 2, 3]
    assert [entry.is_initial_message for entry in thread] == [True, False, False]


def test_persist_orders_are_per_conversation(tmp_path: Path) -> None:
    conversations = ConversationService(store=_store(tmp_path))
    conversations.persist(USER, "a", "b", "conv_1")
    conversations.persist(USER, "c", "d", "conv_1")
    assert conversations.persist(USER, "e", "f", "conv_2") == 1
    assert conversations.persist("other@example.com", "g", "h", "conv_1") == 1


def test_load_history_flattens_turns(tmp_path: Path) -> None:
    conversations = ConversationService(store=_store(tmp_path))
    conversations.persist(USER, "hello", "hi there", "conv_1")
    conversations.persist(USER, "find my invoice", "", "conv_1")
    history = conversations.load_history(USER, "conv_1")
    assert [(turn.role, turn.content) for turn in history] == [
        ("user", "hello"),
        ("assistant", "hi there"),
        ("user", "find my invoice"),
    ]


def test_conversation_failures_are_swallowed() -> None:
    """Summary: Storage errors never reach the chat caller.

    Importance: A failed save must not fail a chat turn.
    Alternatives: Surface storage errors to the user.
    """

    conversations = ConversationService(store=BrokenStore())  # type: ignore[arg-type]
    assert conversations.persist(USER, "a", "b", "conv_1") is None
    assert conversations.load_history(USER, "conv_1") == []


def test_token_service_encrypts_at_rest(tmp_path: Path) -> None:
    store = _store(tmp_path)
    tokens = TokenService(store=store, cipher=TokenCipher("secret"))
    assert tokens.integration_status(USER) == {
        "gmail": False,
        "google-calendar": False,
        "google-meet": False,
    }
    tokens.store_tokens(USER, "access-1", "refresh-1", "2026-01-01T00:00:00+00:00")
    raw = store.get_oauth_token(USER, "google")
    assert raw is not None
    assert raw.access_token != "access-1"
    assert "access-1" not in raw.access_token
    loaded = tokens.load_tokens(USER)
    assert loaded is not None
    assert loaded.access_token == "access-1"
    assert loaded.refresh_token == "refresh-1"
    assert tokens.integration_status(USER)["gmail"] is True
    assert tokens.integration_status(None)["gmail"] is False


def test_token_service_wrong_secret_reads_as_missing(tmp_path: Path) -> None:
    store = _store(tmp_path)
    TokenService(store=store, cipher=TokenCipher("secret")).store_tokens(
        USER, "access-1", None, None
    )
    other = TokenService(store=store, cipher=TokenCipher("different"))
    assert other.load_tokens(USER) is None
    assert other.load_tokens("nobody@example.com") is None


def test_profile_privacy_mode(tmp_path: Path) -> None:
    profiles = ProfileService(store=_store(tmp_path))
    assert profiles.privacy_mode(USER) is False
    assert profiles.privacy_mode(None) is False
    profiles.set_privacy_mode(USER, True, display_name="Alex")
    assert profiles.privacy_mode(USER) is True
    profiles.set_privacy_mode(USER, False)
    assert profiles.privacy_mode(USER) is False


def test_notes_add_and_search(tmp_path: Path) -> None:
    notes = NotesService(store=_store(tmp_path))
    notes.add(USER, "Budget", "Q3 budget is 10k")
    notes.add(USER, "Hiring", "Two engineers in March")
    notes.add("other@example.com", "Budget", "Not yours")
    found = notes.search(USER, "budget")
    assert [note.subject for note in found] == ["Budget"]
    assert notes.search(USER, "") == []


def test_format_notes_context() -> None:
    context = format_notes_context([Note(subject="Budget", content="10k", created_at="today")])
    assert context.startswith("=== NOTES CONTEXT (1 notes) ===")
    assert "  Subject: Budget" in context
    assert "No notes found" in format_notes_context([])
