"""Summary: Turns accumulated step results into one user-facing summary.

Importance: Reports only what the run actually produced, in a fixed priority order.
Alternatives: Ask the AI provider to summarize the step trace.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from mailient.executor import ExecutionOutcome, StepResults
from mailient.models import Artifact, ExecutionResult


@dataclass(frozen=True)
class Synthesis:
    """Summary: Summary message with its structured changes and artifacts."""

    message: str
    changes: tuple[str, ...] = ()
    artifacts: tuple[Artifact, ...] = ()


def synthesize(results: StepResults, ok: bool, error: str | None, goal: str) -> Synthesis:
    """Summary: Pick the first matching branch: draft, scheduling, search, failure, generic.

    Importance: Concrete artifacts outrank an email count, and a failure outranks the
    generic message, whichever other results are present.
    Alternatives: Combine every populated result into one message.
    """

    millis = int(time.time() * 1000)
    if results.draft is not None:
        draft = results.draft
        return Synthesis(
            message=(
                f"Done. Draft for {draft.recipient_name} is ready below. "
                "Review and send when you're happy."
            ),
            changes=(f"Draft written for {draft.recipient_name}", f"Subject: {draft.subject}"),
            artifacts=(
                Artifact(
                    type="draft",
                    id=draft.original_email_id or f"draft-{millis}",
                    label="View draft",
                    url=None,
                ),
            ),
        )
    if results.scheduling is not None:
        scheduling = results.scheduling
        return Synthesis(
            message="Meeting link created. Share it with your attendee so they can pick a time.",
            changes=(f"{scheduling.duration_minutes}-min Cal.com link created",),
            artifacts=(
                Artifact(
                    type="event",
                    id=f"cal-{millis}",
                    label="Open scheduling link",
                    url=scheduling.booking_url,
                ),
            ),
        )
    count = results.search_count
    if count > 0:
        plural = "" if count == 1 else "s"
        return Synthesis(
            message=f"Found {count} recent email{plural}. Here they are.",
            changes=(f"{count} emails retrieved from inbox",),
        )
    if not ok:
        return Synthesis(
            message=(
                f"Ran into a problem: {error or 'something went wrong'}. "
                "Try again or give me more details."
            )
        )
    return Synthesis(message=f'Done with "{goal}".')


def build_execution_result(outcome: ExecutionOutcome, synthesis: Synthesis) -> ExecutionResult:
    """Summary: Combine the run status with the synthesized changes and artifacts."""

    return ExecutionResult(
        success=outcome.ok,
        changes=synthesis.changes,
        artifacts=synthesis.artifacts,
        next_monitoring=None,
    )
