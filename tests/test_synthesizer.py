"""Summary: Tests for plan result synthesis.

Importance: Ensures the summary message follows the fixed branch priority.
Alternatives: Snapshot full chat responses instead.
"""

from __future__ import annotations

import itertools

import pytest

from mailient.executor import ExecutionOutcome, StepResults
from mailient.models import DraftData, EmailSearchResult, FoundEmail, SchedulingData
from mailient.synthesizer import build_execution_result, synthesize


DRAFT = DraftData(
    content="Thanks!",
    thought=None,
    recipient_name="Jane",
    recipient_email="jane@example.com",
    sender_name="Alex",
    original_email_id="m-1",
    thread_id="t-1",
    message_id="m-1",
    subject="Re: Proposal",
)
SCHEDULING = SchedulingData(
    booking_url="https://cal.com/arcus/45min",
    duration_minutes=45,
    title="Sync",
    type="scheduling_link",
)


def _search(count: int) -> EmailSearchResult:
    emails = tuple(
        FoundEmail(id=f"m-{index}", thread_id="t", subject="s", sender="x@example.com")
        for index in range(count)
    )
    return EmailSearchResult(emails=emails, query="newer_than:7d")


def test_draft_message_and_artifact() -> None:
    """Summary: A draft result produces the draft message, changes, and artifact.

    Importance: Drafts are the most concrete result a run can produce.
    Alternatives: Describe drafts in a generic message.
    """

    synthesis = synthesize(StepResults(draft=DRAFT), True, None, "reply")
    assert synthesis.message == (
        "Done. Draft for Jane is ready below. Review and send when you're happy."
    )
    assert synthesis.changes == ("Draft written for Jane", "Subject: Re: Proposal")
    assert synthesis.artifacts[0].type == "draft"
    assert synthesis.artifacts[0].id == "m-1"
    assert synthesis.artifacts[0].label == "View draft"


def test_scheduling_message_and_artifact() -> None:
    synthesis = synthesize(
        StepResults(search=_search(2), scheduling=SCHEDULING), True, None, "book"
    )
    assert synthesis.message == (
        "Meeting link created. Share it with your attendee so they can pick a time."
    )
    assert synthesis.changes == ("45-min Cal.com link created",)
    assert synthesis.artifacts[0].type == "event"
    assert synthesis.artifacts[0].url == "https://cal.com/arcus/45min"
    assert synthesis.artifacts[0].id.startswith("cal-")


def test_search_count_singular_and_plural() -> None:
    assert synthesize(StepResults(search=_search(1)), True, None, "g").message == (
        "Found 1 recent email. Here they are."
    )
    three = synthesize(StepResults(search=_search(3)), True, None, "g")
    assert three.message == "Found 3 recent emails. Here they are."
    assert three.changes == ("3 emails retrieved from inbox",)
    assert three.artifacts == ()


def test_failure_and_generic_messages() -> None:
    failed = synthesize(StepResults(search=_search(0)), False, "Search failed (500)", "g")
    assert failed.message == (
        "Ran into a problem: Search failed (500). Try again or give me more details."
    )
    unknown = synthesize(StepResults(), False, None, "g")
    assert unknown.message.startswith("Ran into a problem: something went wrong.")
    assert synthesize(StepResults(), True, None, "tidy up").message == 'Done with "tidy up".'


@pytest.mark.parametrize(
    "has_draft,has_scheduling,has_search,failed",
    list(itertools.product([True, False], repeat=4)),
)
def test_branch_priority(
    has_draft: bool, has_scheduling: bool, has_search: bool, failed: bool
) -> None:
    """Summary: The first present result wins: draft, scheduling, search, failure, generic.

    Importance: A failure message never hides a draft the run already produced.
    Alternatives: Let failures take precedence over every result.
    """

    results = StepResults(
        search=_search(2) if has_search else None,
        draft=DRAFT if has_draft else None,
        scheduling=SCHEDULING if has_scheduling else None,
    )
    message = synthesize(results, not failed, "boom" if failed else None, "goal").message
    if has_draft:
        assert message.startswith("Done. Draft for")
    elif has_scheduling:
        assert message.startswith("Meeting link created.")
    elif has_search:
        assert message.startswith("Found 2 recent emails.")
    elif failed:
        assert message.startswith("Ran into a problem: boom.")
    else:
        assert message == 'Done with "goal".'


def test_build_execution_result() -> None:
    results = StepResults(draft=DRAFT)
    outcome = ExecutionOutcome(steps=(), results=results, ok=False, error="later failure")
    result = build_execution_result(outcome, synthesize(results, False, "later failure", "g"))
    payload = result.to_dict()
    assert payload["success"] is False
    assert payload["changes"][0] == "Draft written for Jane"
    assert payload["artifacts"][0]["type"] == "draft"
    assert payload["next_monitoring"] is None
