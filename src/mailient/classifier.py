"""Summary: Keyword and regex intent classification for chat messages.

Importance: Decides deterministically whether a message is an approved plan, a draft,
a scheduling request, or an ordinary question.
Alternatives: Use an LLM-based classifier for higher recall.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from mailient.models import DraftIntent, Intent, SchedulingIntent


PLAN_APPROVED_PATTERN = re.compile(r"^\[PLAN_APPROVED:([^\]]+)\]")
PLAN_GOAL_PATTERN = re.compile(r"Execute the approved plan:\s*(.+)")
DEFAULT_PLAN_GOAL = "the approved plan"


@dataclass(frozen=True)
class KeywordSet:
    """Summary: Named set of keywords matched on word boundaries.

    Importance: Keeps intent vocabularies as data so callers can swap them.
    Alternatives: Hardcode a regex per call site.
    """

    name: str
    keywords: tuple[str, ...]

    @property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(r"\b(" + "|".join(self.keywords) + r")\b", re.IGNORECASE)

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


DRAFT_KEYWORDS = KeywordSet("draft", ("draft", "reply", "respond", "write", "email", "send"))
SCHEDULE_KEYWORDS = KeywordSet("schedule", ("schedule", "meeting", "call", "book", "invite"))
SEARCH_KEYWORDS = KeywordSet("search", ("find", "search", "look", "show", "get", "fetch", "check"))
ACTION_KEYWORDS = KeywordSet(
    "action",
    (
        "send",
        "forward",
        "reply",
        "schedule",
        "draft",
        "create",
        "follow.?up",
        "remind",
        "announce",
        "invite",
        "book",
        "find",
        "search",
    ),
)

DRAFTING_PHRASES = ("draft", "reply", "respond", "answer", "compose", "write a reply")
SCHEDULING_PHRASES = ("schedule", "meeting", "calendar", "meet", "call", "appointment", "event")
EMAIL_QUERY_PHRASES = (
    "email", "emails", "inbox", "gmail", "message", "messages",
    "send", "compose", "reply", "forward", "unread", "read",
    "from", "subject", "attachment", "urgent", "important",
    "today", "yesterday", "this week", "recent", "latest",
    "received", "sent", "what did", "show me", "find",
    "search", "check", "any new", "pending", "waiting",
)
NOTES_QUERY_PHRASES = (
    "note", "notes", "my notes", "find note", "search note",
    "remember", "reminder", "todo", "task", "ideas", "memo",
)

_DRAFT_TARGET_PATTERNS = (
    re.compile(r"(?:draft|write|compose|send)\s+(?:a\s+)?reply\s+to\s+(.+)", re.IGNORECASE),
    re.compile(r"reply\s+to\s+(.+)", re.IGNORECASE),
    re.compile(r"respond\s+to\s+(.+)", re.IGNORECASE),
    re.compile(r"get\s+back\s+to\s+(.+)", re.IGNORECASE),
    re.compile(r"answer\s+(.+?)(?:'s)?\s+email", re.IGNORECASE),
)
_INSTRUCTION_PATTERNS = (
    re.compile(r"(?:saying|that\s+says?|telling|mentioning|about)\s+(.+)", re.IGNORECASE),
    re.compile(r"(?:explain|mention|include)\s+(.+)", re.IGNORECASE),
)
_ATTENDEE_PATTERNS = (
    re.compile(r"(?:with|and)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"),
    re.compile(r"(?:to|for)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"),
)
_TIME_PATTERNS = (
    re.compile(r"(\d{1,2}:\d{2}\s*(?:am|pm)?)", re.IGNORECASE),
    re.compile(r"(\d{1,2}\s*(?:am|pm))", re.IGNORECASE),
    re.compile(r"(morning|afternoon|evening|noon)", re.IGNORECASE),
)
_DATE_PATTERNS = (
    re.compile(r"(today|tomorrow|tonight)", re.IGNORECASE),
    re.compile(r"((?:next\s+)?(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday))", re.IGNORECASE),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),
    re.compile(r"(\d{1,2}-\d{1,2}-\d{4})"),
)
_NOTES_TERM_PATTERNS = (
    re.compile(r"find\s+(?:my\s+)?notes?\s+(?:about|on|regarding)?\s*(.+)", re.IGNORECASE),
    re.compile(r"search\s+(?:for\s+)?notes?\s+(?:about|on|regarding)?\s*(.+)", re.IGNORECASE),
    re.compile(r"notes\s+about\s+(.+)", re.IGNORECASE),
)


def classify(message: str) -> Intent:
    """Summary: Classify a chat message into orchestrator intent flags.

    Importance: Selects the plan-execution path or the ordinary chat path.
    Alternatives: Route on explicit UI flags only.
    """

    draft = parse_draft_intent(message)
    scheduling = parse_scheduling_intent(message)
    plan_match = PLAN_APPROVED_PATTERN.match(message)
    plan_goal = None
    plan_token = None
    if plan_match:
        plan_token = plan_match.group(1)
        goal_match = PLAN_GOAL_PATTERN.search(message)
        plan_goal = goal_match.group(1).strip() if goal_match else DEFAULT_PLAN_GOAL
    return Intent(
        is_draft_request=draft.is_draft_request,
        is_scheduling_request=scheduling.is_scheduling_request,
        is_actionable=(
            draft.is_draft_request
            or scheduling.is_scheduling_request
            or ACTION_KEYWORDS.matches(message)
        ),
        is_plan_approved=plan_match is not None,
        plan_goal=plan_goal,
        plan_token=plan_token,
    )


def matches_any(text: str, keyword_sets: list[KeywordSet]) -> bool:
    """Summary: Check whether any of the keyword sets matches the text."""

    return any(keyword_set.matches(text) for keyword_set in keyword_sets)


def parse_draft_intent(message: str) -> DraftIntent:
    """Summary: Extract the reply target and instructions from a draft request.

    Importance: Lets the direct draft handler locate the email to reply to.
    Alternatives: Require the user to pick an email in the UI every time.
    """

    reply_to = None
    for pattern in _DRAFT_TARGET_PATTERNS:
        match = pattern.search(message)
        if match:
            reply_to = match.group(1).strip()
            break
    instructions = ""
    for pattern in _INSTRUCTION_PATTERNS:
        match = pattern.search(message)
        if match:
            instructions = match.group(1).strip()
            break
    lowered = message.lower()
    is_draft = reply_to is not None or any(phrase in lowered for phrase in DRAFTING_PHRASES)
    return DraftIntent(is_draft_request=is_draft, reply_to=reply_to, instructions=instructions)


def parse_scheduling_intent(message: str) -> SchedulingIntent:
    """Summary: Extract attendees, time, and date from a scheduling request.

    Importance: Fills meeting details without a natural-language date parser.
    Alternatives: Use a dedicated date parsing library.
    """

    lowered = message.lower()
    if not any(phrase in lowered for phrase in SCHEDULING_PHRASES):
        return SchedulingIntent(is_scheduling_request=False)
    attendees: list[str] = []
    for pattern in _ATTENDEE_PATTERNS:
        for name in pattern.findall(message):
            cleaned = name.strip()
            if 2 < len(cleaned) < 50 and cleaned not in attendees:
                attendees.append(cleaned)
    return SchedulingIntent(
        is_scheduling_request=True,
        attendees=tuple(attendees),
        time=_first_group(_TIME_PATTERNS, message),
        date=_first_group(_DATE_PATTERNS, message),
        context=message,
    )


def is_email_related_query(message: str) -> bool:
    """Summary: Check whether a message asks about the inbox."""

    lowered = message.lower()
    return any(phrase in lowered for phrase in EMAIL_QUERY_PHRASES)


def is_notes_related_query(message: str) -> bool:
    """Summary: Check whether a message asks about saved notes."""

    lowered = message.lower()
    return any(phrase in lowered for phrase in NOTES_QUERY_PHRASES)


def extract_notes_search_term(message: str) -> str:
    """Summary: Pull the notes search term out of a chat message.

    Importance: Narrows notes search to the topic the user named.
    Alternatives: Search notes with the entire message.
    """

    for pattern in _NOTES_TERM_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1):
            return match.group(1).strip()
    return message.strip()


def build_inbox_query(message: str) -> str:
    """Summary: Derive a Gmail search query from a chat message.

    Importance: Maps everyday phrasing onto Gmail search operators.
    Alternatives: Ask the AI provider to write the query.
    """

    lowered = message.lower()
    query = "newer_than:7d"
    if "unread" in lowered:
        query = "is:unread newer_than:7d"
    elif "important" in lowered or "urgent" in lowered:
        query = "is:important newer_than:7d"
    elif "starred" in lowered:
        query = "is:starred"
    elif "sent" in lowered:
        query = "in:sent newer_than:7d"
    elif "today" in lowered:
        query = "newer_than:1d"
    from_match = re.search(r"from\s+([^\s,]+)", message, re.IGNORECASE)
    if from_match:
        query += f" from:{from_match.group(1)}"
    return query


def _first_group(patterns: tuple[re.Pattern[str], ...], message: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None
