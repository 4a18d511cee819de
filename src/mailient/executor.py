"""Summary: Sequential step executor for approved plans.

Importance: Runs each plan step against its collaborator, records status and timing,
and halts the pipeline at the first failure.
Alternatives: Hand the whole plan to an agent loop that decides steps at runtime.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable

from mailient.assistant import ArcusAssistant
from mailient.calendar import BookingLinkService, CalendarService
from mailient.classifier import DEFAULT_PLAN_GOAL
from mailient.email import EmailSearchProvider
from mailient.models import (
    DraftData,
    EmailSearchResult,
    RequestContext,
    SchedulingData,
    Step,
    StepKind,
    StepStatus,
)


logger = logging.getLogger(__name__)

SEARCH_QUERY = "newer_than:7d"
SEARCH_MAX_RESULTS = 5
DEFAULT_DURATION_MINUTES = 30
MEETING_HOUR = 14
BOOKKEEPING_KINDS = frozenset({StepKind.THINK, StepKind.CLARIFY, StepKind.DONE})

DURATION_PATTERN = re.compile(r"\b(15|30|45|60|90)\s*min", re.IGNORECASE)
TIME_PATTERN = re.compile(
    r"(?:at|for|on)\s+([0-9:apm/\-\s,]+"
    r"(?:today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)?)",
    re.IGNORECASE,
)


class StepFailure(RuntimeError):
    """Summary: Raised when a collaborator returns a semantically invalid result.

    Importance: Normalizes empty drafts and missing links into ordinary step errors.
    Alternatives: Record invalid results as successful steps with empty payloads.
    """


@dataclass(frozen=True)
class Collaborators:
    """Summary: External services a plan run may call.

    Importance: Makes every side effect of a run explicit and replaceable in tests.
    Alternatives: Resolve services from module-level singletons.
    """

    email_search: EmailSearchProvider
    assistant: ArcusAssistant
    booking_links: BookingLinkService
    calendar_factory: Callable[[str], CalendarService] | None = None


@dataclass
class StepResults:
    """Summary: Outputs accumulated by earlier steps, readable by later ones.

    Importance: Lets create_draft reply to the email that search_email found.
    Alternatives: Pass a free-form dictionary keyed by step type.
    """

    search: EmailSearchResult | None = None
    draft: DraftData | None = None
    scheduling: SchedulingData | None = None

    @property
    def search_count(self) -> int:
        return self.search.count if self.search else 0


@dataclass(frozen=True)
class ExecutionOutcome:
    """Summary: Annotated steps plus the pipeline-level result of one run."""

    steps: tuple[Step, ...]
    results: StepResults
    ok: bool
    error: str | None = None

    @property
    def draft(self) -> DraftData | None:
        return self.results.draft

    @property
    def scheduling(self) -> SchedulingData | None:
        return self.results.scheduling


StepHandler = Callable[[str, RequestContext, StepResults], tuple[dict[str, Any], str]]


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class StepExecutor:
    """Summary: Executes plan steps strictly in order.

    Importance: Later steps depend on earlier results, so steps never run concurrently.
    Alternatives: Run independent steps in parallel with a dependency graph.
    """

    collaborators: Collaborators
    clock: Callable[[], datetime] = local_now

    def handlers(self) -> dict[StepKind, StepHandler]:
        """Summary: Map each collaborator-backed step kind to its handler."""

        return {
            StepKind.SEARCH_EMAIL: self._search_email,
            StepKind.CREATE_DRAFT: self._create_draft,
            StepKind.BOOK_MEETING: self._book_meeting,
        }

    def execute(
        self, steps: list[Step], context: RequestContext, goal: str | None = None
    ) -> ExecutionOutcome:
        """Summary: Run every step until the list ends or one step fails.

        Importance: Steps after a failure keep their pending status and never run.
        Alternatives: Continue past failures and report partial success.
        """

        goal = goal or _goal_from_steps(steps)
        annotated = list(steps)
        results = StepResults()
        handlers = self.handlers()
        for index, step in enumerate(annotated):
            if step.type in BOOKKEEPING_KINDS:
                if step.status != StepStatus.DONE:
                    stamp = self._stamp()
                    annotated[index] = replace(
                        step, status=StepStatus.DONE, started_at=stamp, completed_at=stamp
                    )
                continue
            running = replace(step, status=StepStatus.RUNNING, started_at=self._stamp())
            annotated[index] = running
            try:
                handler = handlers.get(step.type)
                if handler is None:
                    raise StepFailure(f"No handler for step type {step.type.value}")
                result, detail = handler(goal, context, results)
            except Exception as exc:
                logger.error("Step %s failed: %s", step.type.value, exc)
                annotated[index] = replace(
                    running,
                    status=StepStatus.FAILED,
                    error=str(exc),
                    completed_at=self._stamp(),
                )
                return ExecutionOutcome(
                    steps=tuple(annotated), results=results, ok=False, error=str(exc)
                )
            annotated[index] = replace(
                running,
                status=StepStatus.DONE,
                result=result,
                detail=detail,
                completed_at=self._stamp(),
            )
        return ExecutionOutcome(steps=tuple(annotated), results=results, ok=True)

    def _search_email(
        self, goal: str, context: RequestContext, results: StepResults
    ) -> tuple[dict[str, Any], str]:
        search = self.collaborators.email_search.search(
            SEARCH_QUERY, max_results=SEARCH_MAX_RESULTS, include_body=True
        )
        results.search = search
        detail = f'Scanned packets for: "{SEARCH_QUERY}" ({search.count} hits)'
        return {**search.to_dict(), "query": SEARCH_QUERY}, detail

    def _create_draft(
        self, goal: str, context: RequestContext, results: StepResults
    ) -> tuple[dict[str, Any], str]:
        """Summary: Draft a reply to the newest searched email, or to the goal itself.

        Importance: An empty draft fails the step rather than producing a blank artifact.
        Alternatives: Ask the user to pick the email before drafting.
        """

        latest = results.search.emails[0] if results.search and results.search.emails else None
        email_context = (
            f"From: {latest.sender}\nSubject: {latest.subject}\nDate: {latest.date}\n\n"
            f"{latest.body_text or latest.snippet or ''}"
            if latest
            else goal
        )
        reply = self.collaborators.assistant.generate_draft_reply(
            email_context,
            user_name=context.user_name,
            user_email=context.user_email,
            reply_instructions=goal,
            history=context.conversation_history,
            privacy_mode=context.privacy_mode,
        )
        if not reply or not reply.draft_content:
            raise StepFailure("Synthesis failed")
        draft = DraftData(
            content=reply.draft_content,
            thought=reply.thought,
            recipient_name=latest.sender if latest else "Recipient",
            recipient_email=latest.sender if latest else "",
            sender_name=context.user_name,
            original_email_id=latest.id if latest else None,
            thread_id=latest.thread_id if latest else None,
            message_id=latest.id if latest else None,
            subject=f"Re: {latest.subject}" if latest and latest.subject else "Re: Your email",
        )
        results.draft = draft
        return {**draft.to_dict(), "thought": reply.thought}, (
            f"Synthesized response for {draft.recipient_name}"
        )

    def _book_meeting(
        self, goal: str, context: RequestContext, results: StepResults
    ) -> tuple[dict[str, Any], str]:
        """Summary: Create a Meet event when possible, else a scheduling link.

        Importance: The calendar path needs both a time phrase and a Google credential.
        Alternatives: Always send a scheduling link.
        """

        duration = parse_duration(goal)
        factory = self.collaborators.calendar_factory
        if TIME_PATTERN.search(goal) and context.gmail_access_token and factory is not None:
            start, end = meeting_window(self.clock(), duration)
            meeting = factory(context.gmail_access_token).create_meeting(
                summary=f"Meeting with Arcus: {goal}",
                start=start.isoformat(),
                end=end.isoformat(),
            )
            if meeting is not None:
                scheduling = SchedulingData(
                    booking_url=meeting.meet_link or meeting.html_link or "",
                    duration_minutes=duration,
                    title=meeting.summary,
                    type="google_meet",
                )
                results.scheduling = scheduling
                return scheduling.to_dict(), f"Google Meet bridge established: {meeting.summary}"
            logger.info("Calendar returned no meeting, falling back to a booking link.")
        link = self.collaborators.booking_links.get_booking_link(duration, goal)
        if link is None:
            raise StepFailure("Cal.com link failed")
        scheduling = SchedulingData(
            booking_url=link.booking_url,
            duration_minutes=link.duration_minutes,
            title=link.title,
            type="scheduling_link",
        )
        results.scheduling = scheduling
        return scheduling.to_dict(), "Scheduling link active via Cal.com"

    def _stamp(self) -> str:
        return self.clock().isoformat()


def parse_duration(goal: str) -> int:
    """Summary: Read a 15/30/45/60/90 minute duration from the goal, default 30."""

    match = DURATION_PATTERN.search(goal)
    return int(match.group(1)) if match else DEFAULT_DURATION_MINUTES


def meeting_window(now: datetime, duration_minutes: int) -> tuple[datetime, datetime]:
    """Summary: Return tomorrow at 14:00 on the given clock and the end time.

    Importance: The matched time phrase is not parsed; every meeting lands on this slot.
    Alternatives: Parse the phrase with a natural-language date library.
    """

    start = (now + timedelta(days=1)).replace(hour=MEETING_HOUR, minute=0, second=0, microsecond=0)
    return start, start + timedelta(minutes=duration_minutes)


def _goal_from_steps(steps: list[Step]) -> str:
    for step in steps:
        if step.type == StepKind.THINK and step.detail:
            return step.detail
    return DEFAULT_PLAN_GOAL
