"""Summary: Builds ordered step plans from an approved natural-language goal.

Importance: Turns a user-approved goal into the typed steps the executor runs.
Alternatives: Ask the AI provider to emit the step list as JSON.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from mailient.classifier import (
    DRAFT_KEYWORDS,
    SCHEDULE_KEYWORDS,
    SEARCH_KEYWORDS,
    matches_any,
)
from mailient.models import Step, StepKind, StepStatus


PLAN_STEP_LABELS = {
    StepKind.THINK: "De-constructing your request",
    StepKind.SEARCH_EMAIL: "Semantic mailbox search",
    StepKind.CREATE_DRAFT: "Synthesizing response draft",
    StepKind.BOOK_MEETING: "Calibrating schedule",
    StepKind.DONE: "Execution complete",
}


@dataclass
class StepFactory:
    """Summary: Issues step records with sequential, timestamped IDs.

    Importance: Guarantees pairwise-distinct step IDs within one plan or trace.
    Alternatives: Use random UUIDs per step.
    """

    now: datetime | None = None
    _counter: Iterator[int] = field(default_factory=itertools.count, repr=False)

    def make(
        self,
        kind: StepKind,
        label: str,
        status: StepStatus = StepStatus.PENDING,
        detail: str | None = None,
    ) -> Step:
        """Summary: Create a step, stamping times for already-started statuses.

        Importance: Keeps ID format and timestamp rules in one place.
        Alternatives: Construct Step records inline at every call site.
        """

        moment = self.now or datetime.now(timezone.utc)
        stamp = moment.isoformat()
        millis = int(moment.timestamp() * 1000)
        return Step(
            id=f"step_{kind.value}_{next(self._counter)}_{millis}",
            type=kind,
            label=label,
            status=status,
            detail=detail,
            started_at=stamp if status != StepStatus.PENDING else None,
            completed_at=stamp if status == StepStatus.DONE else None,
        )


def build_plan(goal: str, now: datetime | None = None) -> list[Step]:
    """Summary: Build the fixed-order step list for an approved goal.

    Importance: Search precedes drafting because a draft needs an email to reply to.
    Alternatives: Let runtime results reorder or add steps.
    """

    factory = StepFactory(now=now)
    is_draft = DRAFT_KEYWORDS.matches(goal)
    steps = [
        factory.make(StepKind.THINK, PLAN_STEP_LABELS[StepKind.THINK], StepStatus.DONE, goal)
    ]
    if matches_any(goal, [SEARCH_KEYWORDS, DRAFT_KEYWORDS]):
        steps.append(factory.make(StepKind.SEARCH_EMAIL, PLAN_STEP_LABELS[StepKind.SEARCH_EMAIL]))
    if is_draft:
        steps.append(factory.make(StepKind.CREATE_DRAFT, PLAN_STEP_LABELS[StepKind.CREATE_DRAFT]))
    if SCHEDULE_KEYWORDS.matches(goal):
        steps.append(factory.make(StepKind.BOOK_MEETING, PLAN_STEP_LABELS[StepKind.BOOK_MEETING]))
    steps.append(factory.make(StepKind.DONE, PLAN_STEP_LABELS[StepKind.DONE]))
    return steps
