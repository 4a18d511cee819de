"""Summary: Tests for keyword intent classification.

Importance: Ensures plan approval, draft, scheduling, and inbox questions route correctly.
Alternatives: Validate routing only through the chat endpoint.
"""

from __future__ import annotations

from mailient.classifier import (
    DEFAULT_PLAN_GOAL,
    KeywordSet,
    build_inbox_query,
    classify,
    extract_notes_search_term,
    is_email_related_query,
    is_notes_related_query,
    matches_any,
    parse_draft_intent,
    parse_scheduling_intent,
)


def test_classify_plan_approval_extracts_goal() -> None:
    """Summary: Verify the approval marker and goal line are recognized.

    Importance: Only approved plans may trigger step execution.
    Alternatives: Parse approvals from a separate request flag.
    """

    intent = classify(
        "[PLAN_APPROVED:plan_1] Execute the approved plan:   find emails from Jane  "
    )
    assert intent.is_plan_approved
    assert intent.plan_token == "plan_1"
    assert intent.plan_goal == "find emails from Jane"


def test_classify_plan_approval_without_goal_uses_placeholder() -> None:
    intent = classify("[PLAN_APPROVED:plan_2]")
    assert intent.is_plan_approved
    assert intent.plan_goal == DEFAULT_PLAN_GOAL


def test_classify_marker_must_lead_the_message() -> None:
    """Summary: A marker in the middle of the text is not an approval.

    Importance: Prevents quoted markers from executing plans.
    Alternatives: Search for the marker anywhere in the message.
    """

    intent = classify("please look at [PLAN_APPROVED:plan_3]")
    assert not intent.is_plan_approved
    assert intent.plan_goal is None


def test_classify_draft_and_actionable() -> None:
    intent = classify("Draft a reply to Jane")
    assert intent.is_draft_request
    assert intent.is_actionable
    assert not intent.is_plan_approved


def test_classify_plain_question_is_not_actionable() -> None:
    intent = classify("What's the weather like?")
    assert not intent.is_draft_request
    assert not intent.is_scheduling_request
    assert not intent.is_actionable


def test_classify_is_case_insensitive() -> None:
    assert classify("SCHEDULE A CALL").is_scheduling_request
    assert classify("FIND my invoices").is_actionable


def test_keyword_set_matches_on_word_boundaries() -> None:
    """Summary: Keyword sets match whole words only.

    Importance: Avoids matching "food" for a "foo" keyword.
    Alternatives: Use substring checks.
    """

    keywords = KeywordSet("custom", ("foo", "bar"))
    assert keywords.matches("a FOO b")
    assert not keywords.matches("food")
    assert matches_any("bar none", [KeywordSet("x", ("baz",)), keywords])
    assert not matches_any("nothing here", [keywords])


def test_parse_draft_intent_target_and_instructions() -> None:
    intent = parse_draft_intent("Reply to Jane about the proposal saying we accept")
    assert intent.is_draft_request
    assert intent.reply_to is not None
    assert intent.reply_to.startswith("Jane")
    assert intent.instructions == "the proposal saying we accept"


def test_parse_scheduling_intent_details() -> None:
    """Summary: Extract attendees, time, and date from a scheduling request.

    Importance: The scheduling reply lists what was understood.
    Alternatives: Ask the user for each field.
    """

    intent = parse_scheduling_intent("Can you schedule a call with Sarah tomorrow at 3pm")
    assert intent.is_scheduling_request
    assert intent.attendees == ("Sarah",)
    assert intent.time == "3pm"
    assert intent.date == "tomorrow"


def test_parse_scheduling_intent_ignores_other_messages() -> None:
    intent = parse_scheduling_intent("Summarize my inbox")
    assert not intent.is_scheduling_request
    assert intent.attendees == ()


def test_build_inbox_query_maps_operators() -> None:
    assert build_inbox_query("show unread emails from bob@example.com") == (
        "is:unread newer_than:7d from:bob@example.com"
    )
    assert build_inbox_query("anything urgent?") == "is:important newer_than:7d"
    assert build_inbox_query("what came in today") == "newer_than:1d"
    assert build_inbox_query("latest messages") == "newer_than:7d"


def test_notes_query_helpers() -> None:
    assert is_notes_related_query("What are my notes on hiring?")
    assert not is_notes_related_query("Hello there")
    assert extract_notes_search_term("find my notes about budget") == "budget"
    assert extract_notes_search_term("hiring plan") == "hiring plan"


def test_is_email_related_query() -> None:
    assert is_email_related_query("Any new messages?")
    assert not is_email_related_query("Tell me a joke")
