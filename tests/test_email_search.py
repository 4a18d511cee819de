"""Summary: Tests for fixture and HTTP email search providers.

Importance: Ensures the search step and chat context get predictable mailbox data.
Alternatives: Exercise search only through the chat route.
"""

from __future__ import annotations

import io
import json
import shutil
import urllib.error
from pathlib import Path
from typing import Any

import pytest

from mailient.email import (
    CONTEXT_BODY_CHARS,
    EmailSearchError,
    HttpEmailSearchProvider,
    MockEmailSearchProvider,
    format_email_context,
    format_email_for_draft,
)
from mailient.models import EmailSearchResult, FoundEmail


FIXTURE = Path(__file__).resolve().parents[1] / "data" / "mock_emails.json"


class FakeResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._body = io.BytesIO(json.dumps(payload).encode("utf-8"))

    def read(self) -> bytes:
        return self._body.read()

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *args: object) -> None:
        return None


def _provider(tmp_path: Path) -> MockEmailSearchProvider:
    fixture = tmp_path / "emails.json"
    shutil.copy(FIXTURE, fixture)
    return MockEmailSearchProvider(fixture)


def test_mock_provider_filters_query(tmp_path: Path) -> None:
    """Summary: Verify from: and is:unread operators filter fixture emails.

    Importance: The draft handler looks up senders with from: queries.
    Alternatives: Return every fixture email for any query.
    """

    provider = _provider(tmp_path)
    assert provider.search("in:inbox").count == 2
    assert [email.id for email in provider.search("from:jane newer_than:30d").emails] == ["mock-1"]
    assert [email.id for email in provider.search("is:unread").emails] == ["mock-1"]
    assert provider.search("from:nobody").count == 0
    assert provider.search("in:inbox", max_results=1).count == 1
    assert provider.search("from:jane", include_body=False).emails[0].body_text is None


def test_mock_provider_lookup(tmp_path: Path) -> None:
    provider = _provider(tmp_path)
    email = provider.get_email("mock-2")
    assert email is not None
    assert email.subject == "Your weekly market digest"
    assert provider.get_email("missing") is None
    thread = provider.get_thread("thread-1")
    assert thread.query == "thread:thread-1"
    assert [item.id for item in thread.emails] == ["mock-1"]


def test_http_provider_posts_user_headers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: The HTTP bridge forwards identity and tokens as headers.

    Importance: The read_gmail route resolves the mailbox from these headers.
    Alternatives: Put credentials in the request body.
    """

    captured: list[Any] = []

    def fake_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        captured.append(request)
        return FakeResponse(
            {
                "success": True,
                "query": "from:jane",
                "count": 1,
                "emails": [{"id": "m1", "threadId": "t1", "subject": "Hi", "from": "Jane"}],
            }
        )

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    provider = HttpEmailSearchProvider(
        "http://localhost:8000/", "alex@example.com", "access-1", "refresh-1"
    )
    result = provider.search("from:jane", max_results=3, include_body=False)
    assert result.count == 1
    assert result.emails[0].thread_id == "t1"
    request = captured[0]
    assert request.full_url == "http://localhost:8000/api/agent-talk/read_gmail"
    assert request.get_header("X-user-email") == "alex@example.com"
    assert request.get_header("X-gmail-access-token") == "access-1"
    assert request.get_header("X-gmail-refresh-token") == "refresh-1"
    assert json.loads(request.data.decode("utf-8")) == {
        "query": "from:jane",
        "max_results": 3,
        "include_body": False,
    }
    assert provider.get_email("m1") is not None


def test_http_provider_raises_with_status(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        raise urllib.error.HTTPError(
            request.full_url, 502, "Bad Gateway", {}, io.BytesIO(b"upstream")
        )

    monkeypatch.setattr("urllib.request.urlopen", failing_urlopen)
    provider = HttpEmailSearchProvider("http://localhost:8000", "alex@example.com", None)
    with pytest.raises(EmailSearchError, match=r"Search failed \(502\)") as excinfo:
        provider.search("in:inbox")
    assert excinfo.value.status == 502


def test_format_email_context_truncates_body() -> None:
    long_body = "b" * (CONTEXT_BODY_CHARS + 10)
    result = EmailSearchResult(
        emails=(
            FoundEmail(
                id="m1",
                thread_id="t1",
                subject="Proposal",
                sender="Jane <jane@example.com>",
                snippet="preview",
                body_text=long_body,
            ),
        ),
        query="in:inbox",
    )
    context = format_email_context(result)
    assert context.startswith("=== EMAIL CONTEXT (1 emails) ===")
    assert "  From: Jane <jane@example.com>" in context
    assert f"  Content: {'b' * CONTEXT_BODY_CHARS}..." in context
    empty = format_email_context(EmailSearchResult(emails=(), query="x"))
    assert "No emails found matching the query." in empty


def test_format_email_for_draft_defaults() -> None:
    text = format_email_for_draft(FoundEmail(id="m1", thread_id="", subject="", sender=""))
    assert text.startswith("From: Unknown\nTo: Unknown\nSubject: (No Subject)")
