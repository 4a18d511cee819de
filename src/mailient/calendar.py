"""Summary: Calendar and booking link services used by the book_meeting step.

Importance: Encapsulates Google Calendar and Cal.com behind nullable contracts.
Alternatives: Use provider SDKs directly without a shared abstraction.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Any

from mailient.models import BookingLink, CalendarMeeting


logger = logging.getLogger(__name__)

CAL_API_VERSION = "2024-08-13"


class CalendarService(ABC):
    """Summary: Abstract interface for creating calendar meetings.

    Importance: Lets the executor prefer a real meeting over a scheduling link.
    Alternatives: Couple the executor to a single calendar API.
    """

    @abstractmethod
    def create_meeting(self, summary: str, start: str, end: str) -> CalendarMeeting | None:
        """Summary: Create a meeting, returning None when none was created.

        Importance: A None result sends the executor to the booking link fallback.
        Alternatives: Raise on every failure and let the step fail.
        """


class BookingLinkService(ABC):
    """Summary: Abstract interface for shareable scheduling links."""

    @abstractmethod
    def get_booking_link(self, duration_minutes: int, title: str | None = None) -> BookingLink | None:
        """Summary: Return a booking link for the duration, or None on failure."""


class MockCalendarService(CalendarService):
    """Summary: In-memory calendar that records created meetings.

    Importance: Supports offline demos and tests of the Meet path.
    Alternatives: Stub the Google API with an HTTP mock server.
    """

    def __init__(self, meet_link: str | None = "https://meet.google.com/mock-arcus") -> None:
        self._meet_link = meet_link
        self.created: list[CalendarMeeting] = []

    def create_meeting(self, summary: str, start: str, end: str) -> CalendarMeeting | None:
        meeting = CalendarMeeting(
            id=f"mock-event-{len(self.created) + 1}",
            summary=summary,
            start=start,
            end=end,
            meet_link=self._meet_link,
            html_link="https://calendar.google.com/event?eid=mock",
        )
        self.created.append(meeting)
        return meeting


class GoogleCalendarService(CalendarService):
    """Summary: Creates Google Calendar events with a Meet conference.

    Importance: Produces a real video bridge when the user connected Google.
    Alternatives: Use the google-api-python-client SDK.
    """

    def __init__(self, access_token: str, base_url: str) -> None:
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")

    def create_meeting(self, summary: str, start: str, end: str) -> CalendarMeeting | None:
        """Summary: Insert an event on the primary calendar.

        Importance: API failures return None so the caller can fall back.
        Alternatives: Propagate API errors as step failures.
        """

        event = {
            "summary": summary,
            "start": {"dateTime": start, "timeZone": "UTC"},
            "end": {"dateTime": end, "timeZone": "UTC"},
            "conferenceData": {
                "createRequest": {
                    "requestId": f"meet-{int(time.time() * 1000)}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        request = urllib.request.Request(
            url=f"{self._base_url}/calendars/primary/events?conferenceDataVersion=1",
            data=json.dumps(event).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._access_token}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=15) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            logger.warning("Google Calendar event creation failed: %s", exc)
            return None
        return _parse_calendar_event(raw, summary, start, end)


class MockBookingLinkService(BookingLinkService):
    """Summary: Deterministic Cal.com-style links for tests and demos."""

    def __init__(self, username: str = "arcus") -> None:
        self._username = username
        self.requests: list[tuple[int, str | None]] = []

    def get_booking_link(self, duration_minutes: int, title: str | None = None) -> BookingLink | None:
        self.requests.append((duration_minutes, title))
        slug = f"{duration_minutes}min"
        return BookingLink(
            booking_url=f"https://cal.com/{self._username}/{slug}",
            duration_minutes=duration_minutes,
            title=title or "Meeting",
            slug=slug,
        )


class CalComBookingService(BookingLinkService):
    """Summary: Builds Cal.com booking links from the account's event types.

    Importance: Gives attendees a link to pick a time when no meeting was created.
    Alternatives: Create bookings directly through the bookings endpoint.
    """

    def __init__(self, api_url: str, api_key: str) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key

    def get_booking_link(self, duration_minutes: int, title: str | None = None) -> BookingLink | None:
        """Summary: Pick the closest event type and build its public URL.

        Importance: Falls back to the profile page when no event types exist.
        Alternatives: Always link to the profile page.
        """

        try:
            event_type = self.best_event_type(duration_minutes)
            username = self.username()
        except Exception:
            logger.exception("Cal.com booking link lookup failed")
            return None
        if event_type is None:
            return BookingLink(
                booking_url=f"https://cal.com/{username}",
                duration_minutes=duration_minutes,
                title=title or "Meeting",
            )
        return BookingLink(
            booking_url=f"https://cal.com/{username}/{event_type['slug']}",
            duration_minutes=int(event_type["length"]),
            title=title or event_type.get("title") or "Meeting",
            event_type_id=int(event_type["id"]),
            slug=event_type["slug"],
        )

    def event_types(self) -> list[dict[str, Any]]:
        """Summary: List event types across all groups; errors yield an empty list."""

        try:
            raw = self._request("/event-types")
        except RuntimeError as exc:
            logger.warning("Cal.com event types unavailable: %s", exc)
            return []
        data = raw.get("data") or {}
        groups = data.get("eventTypeGroups", []) if isinstance(data, dict) else data
        types: list[dict[str, Any]] = []
        for group in groups or []:
            for item in group.get("eventTypes", []) or []:
                types.append(
                    {
                        "id": item.get("id"),
                        "slug": item.get("slug"),
                        "title": item.get("title"),
                        "length": item.get("length"),
                    }
                )
        return types

    def best_event_type(self, duration_minutes: int) -> dict[str, Any] | None:
        """Summary: Return the exact-duration event type, else the closest one."""

        types = self.event_types()
        if not types:
            return None
        for item in types:
            if item["length"] == duration_minutes:
                return item
        return min(types, key=lambda item: abs(int(item["length"]) - duration_minutes))

    def username(self) -> str:
        try:
            raw = self._request("/me")
        except RuntimeError:
            return "me"
        data = raw.get("data") or {}
        return data.get("username") or raw.get("username") or "me"

    def _request(self, path: str) -> dict[str, Any]:
        request = urllib.request.Request(
            url=f"{self._api_url}{path}",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "cal-api-version": CAL_API_VERSION,
            },
            method="GET",
        )
        try:
            with urllib.request.urlopen(request, timeout=10) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8")
            raise RuntimeError(f"Cal.com API error {exc.code}: {error_body}") from exc
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Cal.com API unreachable: {exc.reason}") from exc


def _parse_calendar_event(
    raw: dict[str, Any], summary: str, start: str, end: str
) -> CalendarMeeting:
    """Summary: Map a Calendar API event onto a CalendarMeeting."""

    entry_points = (raw.get("conferenceData") or {}).get("entryPoints") or []
    meet_link = next(
        (point.get("uri") for point in entry_points if point.get("entryPointType") == "video"),
        None,
    )
    return CalendarMeeting(
        id=raw.get("id", ""),
        summary=raw.get("summary") or summary,
        start=(raw.get("start") or {}).get("dateTime", start),
        end=(raw.get("end") or {}).get("dateTime", end),
        meet_link=meet_link or raw.get("hangoutLink"),
        html_link=raw.get("htmlLink"),
    )
