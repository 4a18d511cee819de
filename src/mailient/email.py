"""Summary: Email search provider interfaces and implementations.

Importance: Supplies the plan executor and chat path with recent mailbox context.
Alternatives: Rely solely on provider SDKs with vendor lock-in.
"""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from mailient.models import EmailSearchResult, FoundEmail


logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50
MAX_BODY_CHARS = 5000
CONTEXT_BODY_CHARS = 2000


class EmailSearchError(RuntimeError):
    """Summary: Raised when a mailbox search request fails.

    Importance: Carries the HTTP status so callers can report it.
    Alternatives: Return an empty result and hide the failure.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EmailSearchProvider(ABC):
    """Summary: Abstract interface for mailbox search.

    Importance: Standardizes search across the Gmail API, the HTTP bridge, and fixtures.
    Alternatives: Use provider-specific classes directly in the executor.
    """

    @abstractmethod
    def search(
        self, query: str, max_results: int = 5, include_body: bool = True
    ) -> EmailSearchResult:
        """Summary: Search the mailbox with a Gmail-style query.

        Importance: Drives the search_email step and chat email context.
        Alternatives: Fetch recent messages and filter locally.
        """

    @abstractmethod
    def get_email(self, email_id: str) -> FoundEmail | None:
        """Summary: Fetch one email by provider ID, or None when it is missing."""

    @abstractmethod
    def get_thread(self, thread_id: str, include_body: bool = True) -> EmailSearchResult:
        """Summary: Fetch every message of one thread, oldest first."""


class MockEmailSearchProvider(EmailSearchProvider):
    """Summary: Serves search results from a local JSON fixture.

    Importance: Supports offline testing and demos.
    Alternatives: Use SQLite fixtures or generate synthetic messages.
    """

    def __init__(self, fixture_path: Path) -> None:
        self._fixture_path = fixture_path

    def search(
        self, query: str, max_results: int = 5, include_body: bool = True
    ) -> EmailSearchResult:
        """Summary: Filter fixture emails by the from: and is:unread operators.

        Importance: Gives tests predictable results for the queries the app builds.
        Alternatives: Ignore the query and return every fixture email.
        """

        emails = [email for email in self._load() if _matches_query(email, query)]
        limited = emails[: min(max_results, MAX_SEARCH_RESULTS)]
        if not include_body:
            limited = [_without_body(email) for email in limited]
        return EmailSearchResult(emails=tuple(limited), query=query)

    def get_email(self, email_id: str) -> FoundEmail | None:
        for email in self._load():
            if email.id == email_id:
                return email
        return None

    def get_thread(self, thread_id: str, include_body: bool = True) -> EmailSearchResult:
        emails = [email for email in self._load() if email.thread_id == thread_id]
        if not include_body:
            emails = [_without_body(email) for email in emails]
        return EmailSearchResult(emails=tuple(emails), query=f"thread:{thread_id}")

    def _load(self) -> list[FoundEmail]:
        data = json.loads(self._fixture_path.read_text(encoding="utf-8"))
        return [FoundEmail.from_dict(item) for item in data]


class GmailSearchProvider(EmailSearchProvider):
    """Summary: Searches Gmail via the REST API using an OAuth access token.

    Importance: Backs the read_gmail endpoint and in-process plan execution.
    Alternatives: Use IMAP search or the Google client SDK.
    """

    def __init__(self, access_token: str, base_url: str) -> None:
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")

    def search(
        self, query: str, max_results: int = 5, include_body: bool = True
    ) -> EmailSearchResult:
        """Summary: List matching message IDs, then fetch and parse each message.

        Importance: Mirrors the read_gmail contract used by the executor.
        Alternatives: Use the batch endpoint to fetch details in one request.
        """

        limit = min(int(max_results or 5), MAX_SEARCH_RESULTS)
        params = urllib.parse.urlencode({"q": query, "maxResults": limit})
        payload = _gmail_api_get(f"{self._base_url}/users/me/messages?{params}", self._access_token)
        emails: list[FoundEmail] = []
        for item in payload.get("messages", []) or []:
            message_id = item.get("id")
            if not message_id:
                continue
            try:
                detail = _gmail_api_get(
                    f"{self._base_url}/users/me/messages/{message_id}?format=full",
                    self._access_token,
                )
            except EmailSearchError as exc:
                logger.warning("Skipping Gmail message %s: %s", message_id, exc)
                continue
            emails.append(_parse_gmail_message(detail, include_body))
        return EmailSearchResult(emails=tuple(emails), query=query)

    def get_email(self, email_id: str) -> FoundEmail | None:
        """Summary: Fetch a single Gmail message with its body."""

        try:
            detail = _gmail_api_get(
                f"{self._base_url}/users/me/messages/{email_id}?format=full",
                self._access_token,
            )
        except EmailSearchError as exc:
            if exc.status == 404:
                return None
            raise
        return _parse_gmail_message(detail, include_body=True)

    def get_thread(self, thread_id: str, include_body: bool = True) -> EmailSearchResult:
        """Summary: Fetch a Gmail thread and parse each of its messages."""

        payload = _gmail_api_get(
            f"{self._base_url}/users/me/threads/{thread_id}?format=full", self._access_token
        )
        emails = tuple(
            _parse_gmail_message(message, include_body)
            for message in payload.get("messages", []) or []
        )
        return EmailSearchResult(emails=emails, query=f"thread:{thread_id}")


class HttpEmailSearchProvider(EmailSearchProvider):
    """Summary: Calls the app's own read_gmail endpoint on behalf of a user.

    Importance: Lets a plan run reuse the deployed search route and its credentials.
    Alternatives: Call the Gmail API in-process.
    """

    def __init__(
        self,
        base_url: str,
        user_email: str,
        access_token: str | None,
        refresh_token: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._user_email = user_email
        self._access_token = access_token or ""
        self._refresh_token = refresh_token or ""

    def search(
        self, query: str, max_results: int = 5, include_body: bool = True
    ) -> EmailSearchResult:
        """Summary: POST the search request and parse the email list.

        Importance: Non-2xx responses surface as step failures with their status.
        Alternatives: Retry failed searches before failing the step.
        """

        raw = self._post({"query": query, "max_results": max_results, "include_body": include_body})
        emails = tuple(FoundEmail.from_dict(item) for item in raw.get("emails", []) or [])
        return EmailSearchResult(emails=emails, query=raw.get("query") or query)

    def get_email(self, email_id: str) -> FoundEmail | None:
        raw = self._post({"email_id": email_id, "include_body": True})
        emails = raw.get("emails") or []
        return FoundEmail.from_dict(emails[0]) if emails else None

    def get_thread(self, thread_id: str, include_body: bool = True) -> EmailSearchResult:
        raw = self._post({"thread_id": thread_id, "include_body": include_body})
        emails = tuple(FoundEmail.from_dict(item) for item in raw.get("emails", []) or [])
        return EmailSearchResult(emails=emails, query=raw.get("query") or f"thread:{thread_id}")

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        request = urllib.request.Request(
            url=f"{self._base_url}/api/agent-talk/read_gmail",
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "x-user-email": self._user_email,
                "x-gmail-access-token": self._access_token,
                "x-gmail-refresh-token": self._refresh_token,
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=30) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            raise EmailSearchError(f"Search failed ({exc.code})", status=exc.code) from exc


def format_email_context(result: EmailSearchResult) -> str:
    """Summary: Render a search result as the EMAIL CONTEXT block used in AI prompts.

    Importance: Gives the assistant grounded mailbox facts for inbox questions.
    Alternatives: Pass raw JSON to the model.
    """

    lines = [f"=== EMAIL CONTEXT ({result.count} emails) ===", ""]
    if not result.emails:
        lines.append("No emails found matching the query.")
    for index, email in enumerate(result.emails, start=1):
        lines.append(f"Email {index}:")
        lines.append(f"  From: {email.sender}")
        lines.append(f"  Subject: {email.subject}")
        lines.append(f"  Date: {email.date}")
        lines.append(f"  Preview: {email.snippet}")
        body = email.body_text or ""
        if body:
            suffix = "..." if len(body) > CONTEXT_BODY_CHARS else ""
            lines.append(f"  Content: {body[:CONTEXT_BODY_CHARS]}{suffix}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_email_for_draft(email: FoundEmail) -> str:
    """Summary: Render one email as the context text for a draft reply."""

    return (
        f"From: {email.sender or 'Unknown'}\n"
        f"To: {email.recipients or 'Unknown'}\n"
        f"Subject: {email.subject or '(No Subject)'}\n"
        f"Date: {email.date or 'Unknown'}\n\n"
        f"{email.body_text or email.snippet or ''}"
    )


def _matches_query(email: FoundEmail, query: str) -> bool:
    for token in query.split():
        lowered = token.lower()
        if lowered.startswith("from:"):
            if lowered[5:] not in email.sender.lower():
                return False
        elif lowered == "is:unread" and "UNREAD" not in email.labels:
            return False
        elif lowered == "is:important" and "IMPORTANT" not in email.labels:
            return False
    return True


def _without_body(email: FoundEmail) -> FoundEmail:
    return FoundEmail(
        id=email.id,
        thread_id=email.thread_id,
        subject=email.subject,
        sender=email.sender,
        recipients=email.recipients,
        date=email.date,
        snippet=email.snippet,
        body_text=None,
        labels=email.labels,
    )


def _gmail_api_get(url: str, access_token: str) -> dict[str, Any]:
    """Summary: Fetch JSON data from the Gmail API.

    Importance: Encapsulates Gmail API calls without new dependencies.
    Alternatives: Use a third-party HTTP client or SDK.
    """

    request = urllib.request.Request(
        url,
        headers={"Authorization": f"Bearer {access_token}"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8")
        raise EmailSearchError(
            f"Gmail API request failed: {error_body or exc.reason}", status=exc.code
        ) from exc
    except urllib.error.URLError as exc:
        raise EmailSearchError(f"Gmail API request failed: {exc.reason}") from exc
    return json.loads(raw)


def _parse_gmail_message(message: dict[str, Any], include_body: bool) -> FoundEmail:
    """Summary: Parse a Gmail message payload into a FoundEmail.

    Importance: Normalizes Gmail payloads into the read_gmail wire shape.
    Alternatives: Store raw Gmail payloads and parse later.
    """

    payload = message.get("payload") or {}
    headers = _parse_gmail_headers(payload.get("headers", []))
    snippet = message.get("snippet", "")
    body_text = None
    if include_body:
        body = _extract_gmail_body(payload)
        body_text = body[:MAX_BODY_CHARS] or snippet
    return FoundEmail(
        id=message.get("id", ""),
        thread_id=message.get("threadId", ""),
        subject=headers.get("Subject") or "(No Subject)",
        sender=headers.get("From") or "Unknown Sender",
        recipients=headers.get("To", ""),
        date=headers.get("Date", ""),
        snippet=snippet,
        body_text=body_text,
        labels=tuple(message.get("labelIds") or ()),
    )


def _parse_gmail_headers(headers: list[dict[str, Any]]) -> dict[str, str]:
    """Summary: Normalize Gmail header list into a dictionary."""

    normalized: dict[str, str] = {}
    for header in headers:
        name = header.get("name")
        value = header.get("value")
        if name and value:
            normalized[name] = value
    return normalized


def _extract_gmail_body(payload: dict[str, Any]) -> str:
    """Summary: Extract a plain text body from a Gmail payload.

    Importance: Provides readable content for drafting replies.
    Alternatives: Use the snippet only for Gmail messages.
    """

    text_parts: list[str] = []
    fallback_parts: list[str] = []
    for part in _walk_gmail_parts(payload):
        data = (part.get("body") or {}).get("data")
        if not data:
            continue
        decoded = _decode_base64url(data)
        if part.get("mimeType") == "text/plain":
            text_parts.append(decoded)
        else:
            fallback_parts.append(decoded)
    chosen = text_parts or fallback_parts
    return "\n".join(item.strip() for item in chosen if item.strip()).strip()


def _walk_gmail_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = [payload]
    for part in payload.get("parts", []) or []:
        parts.extend(_walk_gmail_parts(part))
    return parts


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8", errors="ignore")
