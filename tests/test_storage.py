"""Summary: Storage layer tests.

Importance: Ensures SQLite persistence works for tokens, chat history, notes, and AI audit.
Alternatives: Mock storage entirely in service tests.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from mailient.models import AiRequest, AiResponse, Note
from mailient.storage.sqlite_store import SqliteStore


def test_initialize_is_idempotent_and_adds_privacy_column(tmp_path: Path) -> None:
    """Summary: Verify schema bootstrap can run repeatedly.

    Importance: Every process start calls initialize on an existing database.
    Alternatives: Track schema versions in a migrations table.
    """

    db_path = tmp_path / "arcus.db"
    store = SqliteStore(str(db_path))
    store.initialize()
    store.initialize()
    connection = sqlite3.connect(db_path)
    try:
        columns = {row[1] for row in connection.execute("PRAGMA table_info(user_profiles)")}
    finally:
        connection.close()
    assert "privacy_mode" in columns


def test_upsert_oauth_token_keeps_one_row(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "arcus.db"))
    store.initialize()
    first = store.upsert_oauth_token("alex@example.com", "google", "a1", "r1", None)
    second = store.upsert_oauth_token("alex@example.com", "google", "a2", None, "2026-01-01")
    assert first == second
    token = store.get_oauth_token("alex@example.com", "google")
    assert token is not None
    assert token.access_token == "a2"
    assert token.refresh_token is None
    assert token.expires_at == "2026-01-01"
    assert store.get_oauth_token("alex@example.com", "microsoft") is None


def test_chat_history_roundtrip(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "arcus.db"))
    store.initialize()
    store.store_agent_chat_message("alex@example.com", "hi", "hello", "conv_1", 2, False)
    store.store_agent_chat_message("alex@example.com", "first", "reply", "conv_1", 1, True)
    thread = store.get_conversation_thread("alex@example.com", "conv_1")
    assert [entry.user_message for entry in thread] == ["first", "hi"]
    assert thread[0].is_initial_message is True
    assert thread[0].created_at
    assert store.get_conversation_message_count("alex@example.com", "conv_1") == 2
    assert store.get_conversation_message_count("alex@example.com", "conv_2") == 0


def test_notes_search_limit(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "arcus.db"))
    store.initialize()
    for index in range(3):
        store.add_note(
            "alex@example.com",
            Note(subject=f"Trip {index}", content="Lisbon", created_at=f"2026-01-0{index + 1}"),
        )
    found = store.search_notes("alex@example.com", "lisbon", limit=2)
    assert [note.subject for note in found] == ["Trip 2", "Trip 1"]


def test_ai_audit_rows(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "arcus.db"))
    store.initialize()
    request_id = store.log_ai_request(
        AiRequest(
            provider="mock",
            model="mock",
            prompt="Hello",
            purpose="chat",
            timestamp=datetime(2026, 1, 15, 10, 0),
        ),
        user_email="alex@example.com",
    )
    store.log_ai_response(
        AiResponse(request_id=request_id, response_text="Hi", latency_ms=3, token_estimate=1)
    )
    assert store.count_ai_requests() == 1
    assert store.count_ai_requests("chat") == 1
    assert store.count_ai_requests("draft") == 0
