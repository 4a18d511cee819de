"""Summary: Domain model dataclasses for Mailient Arcus.

Importance: Defines the step, result, and collaborator records shared by the orchestrator.
Alternatives: Use Pydantic models or raw dictionaries throughout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class StepKind(str, Enum):
    """Summary: Closed set of step types understood by the executor and trace builder.

    Importance: Each kind maps to exactly one handler, so dispatch stays exhaustive.
    Alternatives: Dispatch on free-form strings with if/else chains.
    """

    THINK = "think"
    CLARIFY = "clarify"
    SEARCH_EMAIL = "search_email"
    CREATE_DRAFT = "create_draft"
    BOOK_MEETING = "book_meeting"
    DONE = "done"


class StepStatus(str, Enum):
    """Summary: Lifecycle states of a step.

    Importance: Encodes pending -> running -> done|failed transitions.
    Alternatives: Track booleans for started and finished.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (StepStatus.DONE, StepStatus.FAILED)


@dataclass(frozen=True)
class Step:
    """Summary: One unit of orchestrated work shown in the UI trace.

    Importance: Carries status, timing, and handler output for every plan step.
    Alternatives: Store only the final result without per-step detail.
    """

    id: str
    type: StepKind
    label: str
    status: StepStatus = StepStatus.PENDING
    result: dict[str, Any] | None = None
    detail: str | None = None
    error: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Summary: Serialize the step for the chat response body.

        Importance: Keeps the wire format stable for the UI step trace.
        Alternatives: Let FastAPI serialize dataclasses implicitly.
        """

        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "status": self.status.value,
            "result": self.result,
            "detail": self.detail,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass(frozen=True)
class RequestContext:
    """Summary: Immutable per-request state passed to the orchestrator.

    Importance: Replaces ambient session and token globals with explicit parameters.
    Alternatives: Read session data from module-level state.
    """

    user_email: str | None
    user_name: str = "User"
    conversation_id: str | None = None
    conversation_history: tuple["ChatTurn", ...] = ()
    privacy_mode: bool = False
    gmail_access_token: str | None = None
    gmail_refresh_token: str | None = None


@dataclass(frozen=True)
class ChatTurn:
    """Summary: One role-tagged message used as AI conversation context."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Intent:
    """Summary: Result of classifying a chat message.

    Importance: Drives the choice between plan execution and the ordinary chat path.
    Alternatives: Ask the AI provider to classify every message.
    """

    is_draft_request: bool
    is_scheduling_request: bool
    is_actionable: bool
    is_plan_approved: bool
    plan_goal: str | None = None
    plan_token: str | None = None


@dataclass(frozen=True)
class DraftIntent:
    """Summary: Draft request details extracted from a chat message."""

    is_draft_request: bool
    reply_to: str | None = None
    instructions: str = ""


@dataclass(frozen=True)
class SchedulingIntent:
    """Summary: Scheduling request details extracted from a chat message."""

    is_scheduling_request: bool
    attendees: tuple[str, ...] = ()
    time: str | None = None
    date: str | None = None
    context: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSchedulingRequest": self.is_scheduling_request,
            "attendees": list(self.attendees),
            "time": self.time,
            "date": self.date,
            "context": self.context,
        }


@dataclass(frozen=True)
class FoundEmail:
    """Summary: Email metadata returned by the search collaborator.

    Importance: Supplies the draft handler with the message being replied to.
    Alternatives: Pass raw provider payloads between steps.
    """

    id: str
    thread_id: str
    subject: str
    sender: str
    recipients: str = ""
    date: str = ""
    snippet: str = ""
    body_text: str | None = None
    labels: tuple[str, ...] = ()

    @staticmethod
    def from_dict(item: dict[str, Any]) -> "FoundEmail":
        """Summary: Build a FoundEmail from the search wire format."""

        return FoundEmail(
            id=str(item.get("id") or ""),
            thread_id=str(item.get("thread_id") or item.get("threadId") or ""),
            subject=item.get("subject") or "(No Subject)",
            sender=item.get("from") or "Unknown Sender",
            recipients=item.get("to") or "",
            date=item.get("date") or "",
            snippet=item.get("snippet") or "",
            body_text=item.get("body_text") or item.get("body"),
            labels=tuple(item.get("labels") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "subject": self.subject,
            "from": self.sender,
            "to": self.recipients,
            "date": self.date,
            "snippet": self.snippet,
            "labels": list(self.labels),
            "is_unread": "UNREAD" in self.labels,
            "is_important": "IMPORTANT" in self.labels,
            "body_text": self.body_text,
        }


@dataclass(frozen=True)
class EmailSearchResult:
    """Summary: Search collaborator response with its originating query."""

    emails: tuple[FoundEmail, ...]
    query: str

    @property
    def count(self) -> int:
        return len(self.emails)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "query": self.query,
            "count": self.count,
            "emails": [email.to_dict() for email in self.emails],
        }


@dataclass(frozen=True)
class DraftReply:
    """Summary: Output of the AI draft generation collaborator.

    Importance: Separates an empty draft (a semantic failure) from a raised error.
    Alternatives: Return the draft text only.
    """

    draft_content: str
    thought: str | None = None
    recipient_name: str | None = None
    recipient_email: str | None = None
    sender_name: str | None = None


@dataclass(frozen=True)
class DraftData:
    """Summary: Result of a create_draft step returned to the caller.

    Importance: Gives the UI everything needed to review and send a reply.
    Alternatives: Return only the draft body.
    """

    content: str
    thought: str | None
    recipient_name: str
    recipient_email: str
    sender_name: str
    original_email_id: str | None
    thread_id: str | None
    message_id: str | None
    subject: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "thought": self.thought,
            "recipientName": self.recipient_name,
            "recipientEmail": self.recipient_email,
            "senderName": self.sender_name,
            "originalEmailId": self.original_email_id,
            "threadId": self.thread_id,
            "messageId": self.message_id,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class SchedulingData:
    """Summary: Result of a book_meeting step.

    Importance: Exposes either a Google Meet link or a scheduling link to the UI.
    Alternatives: Return provider payloads directly.
    """

    booking_url: str
    duration_minutes: int
    title: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookingUrl": self.booking_url,
            "durationMinutes": self.duration_minutes,
            "title": self.title,
            "type": self.type,
        }


@dataclass(frozen=True)
class CalendarMeeting:
    """Summary: Event created by the calendar collaborator."""

    id: str
    summary: str
    start: str
    end: str
    meet_link: str | None = None
    html_link: str | None = None


@dataclass(frozen=True)
class BookingLink:
    """Summary: Scheduling link returned by the booking link collaborator."""

    booking_url: str
    duration_minutes: int
    title: str
    event_type_id: int = 0
    slug: str = ""


@dataclass(frozen=True)
class Artifact:
    """Summary: Addressable output of a plan run that the UI can link to."""

    type: str
    id: str
    label: str
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "label": self.label, "url": self.url}


@dataclass(frozen=True)
class ExecutionResult:
    """Summary: Structured outcome of one approved plan run.

    Importance: Lets the UI show effects and artifacts independent of the message text.
    Alternatives: Encode results only in the chat message.
    """

    success: bool
    changes: tuple[str, ...] = ()
    artifacts: tuple[Artifact, ...] = ()
    next_monitoring: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "changes": list(self.changes),
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "next_monitoring": self.next_monitoring,
        }


@dataclass(frozen=True)
class AssistantReply:
    """Summary: Conversational AI response and its optional reasoning trace."""

    content: str
    thought: str | None = None


@dataclass(frozen=True)
class MeetingDetails:
    """Summary: AI-suggested meeting title, objective, and duration."""

    suggested_title: str
    suggested_description: str
    suggested_duration: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggested_title": self.suggested_title,
            "suggested_description": self.suggested_description,
            "suggested_duration": self.suggested_duration,
        }


@dataclass(frozen=True)
class PlanCard:
    """Summary: Structured plan proposed to the user before any action runs.

    Importance: Supports the suggest-then-act flow that ends in a plan approval.
    Alternatives: Execute actions immediately without confirmation.
    """

    id: str
    goal: str
    steps: tuple[str, ...]
    tools: tuple[str, ...] = ()
    draft_preview: dict[str, Any] | None = None
    invite_preview: dict[str, Any] | None = None
    risk_flags: tuple[str, ...] = ()
    status: str = "pending"
    confidence: float = 0.8
    assumptions: tuple[str, ...] = ()
    questions_for_user: tuple[str, ...] = ()
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "steps": list(self.steps),
            "tools": list(self.tools),
            "draft_preview": self.draft_preview,
            "invite_preview": self.invite_preview,
            "risk_flags": list(self.risk_flags),
            "status": self.status,
            "confidence": self.confidence,
            "assumptions": list(self.assumptions),
            "questions_for_user": list(self.questions_for_user),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ConversationMessage:
    """Summary: One stored chat turn.

    Importance: Preserves conversation memory with a per-conversation order index.
    Alternatives: Store the whole conversation as one document.
    """

    user_email: str
    user_message: str
    agent_response: str
    conversation_id: str
    message_order: int
    is_initial_message: bool
    created_at: str | None = None


@dataclass(frozen=True)
class Note:
    """Summary: A user note searchable from chat."""

    subject: str
    content: str
    created_at: str | None = None


@dataclass(frozen=True)
class AiRequest:
    """Summary: Records an AI request for audit and traceability.

    Importance: Provides visibility into prompts and provider usage.
    Alternatives: Log requests only in observability logs.
    """

    provider: str
    model: str
    prompt: str
    purpose: str
    timestamp: datetime


@dataclass(frozen=True)
class AiResponse:
    """Summary: Records an AI response paired to a request."""

    request_id: int
    response_text: str
    latency_ms: int
    token_estimate: int
