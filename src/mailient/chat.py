"""Summary: Arcus chat route logic, from an inbound message to a JSON response body.

Importance: Chooses between approved-plan execution, direct draft and scheduling
handlers, notes and inbox questions, and the ordinary AI reply with its step trace.
Alternatives: Split every branch into its own HTTP endpoint.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable

from mailient.assistant import ArcusAssistant
from mailient.classifier import (
    build_inbox_query,
    classify,
    extract_notes_search_term,
    is_email_related_query,
    is_notes_related_query,
    parse_draft_intent,
    parse_scheduling_intent,
)
from mailient.email import EmailSearchProvider, format_email_context, format_email_for_draft
from mailient.executor import Collaborators, StepExecutor, local_now
from mailient.models import (
    DraftData,
    DraftIntent,
    EmailSearchResult,
    PlanCard,
    RequestContext,
    SchedulingIntent,
    StepKind,
    StepStatus,
)
from mailient.planner import StepFactory, build_plan
from mailient.services import (
    INTEGRATION_KEYS,
    ConversationService,
    NotesService,
    ProfileService,
    TokenService,
    format_notes_context,
)
from mailient.synthesizer import build_execution_result, synthesize


logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

DRAFT_CLARIFICATION = (
    "I'd be happy to help you draft a reply! Could you tell me which email you'd like "
    "me to respond to? You can either:\n\n"
    "1. Select an email from your inbox using the email selector\n"
    "2. Tell me the sender's name (e.g., \"draft a reply to John's email\")\n"
    "3. Describe what the email was about\n\n"
    "Which would you prefer?"
)
DRAFT_TROUBLE = (
    "I had trouble drafting that reply. Could you provide a bit more context about what "
    "you'd like to say? That will help me create a better draft for you."
)
SCHEDULING_TROUBLE = (
    "I'd be happy to help you schedule a meeting! To get started, could you tell me:\n\n"
    "1. What the meeting is about\n"
    "2. Who should attend\n"
    "3. When you'd like to meet\n\n"
    "Once I have those details, I can suggest a great title and objective for the meeting."
)


@dataclass(frozen=True)
class ArcusRequest:
    """Summary: Inbound chat payload after transport parsing."""

    message: str
    conversation_id: str | None = None
    is_notes_query: bool | None = None
    notes_search_query: str | None = None
    selected_email_id: str | None = None
    draft_reply_request: bool = False


@dataclass(frozen=True)
class ArcusChatService:
    """Summary: Handles one Arcus chat turn for a single user.

    Importance: Every branch ends in a readable message; failures degrade, never raise.
    Alternatives: Return HTTP errors for collaborator failures.
    """

    user_email: str | None
    user_name: str
    conversations: ConversationService
    tokens: TokenService
    profiles: ProfileService
    notes: NotesService
    assistant: ArcusAssistant
    collaborators: Callable[[RequestContext], Collaborators]
    clock: Callable[[], datetime] = local_now

    def handle(self, request: ArcusRequest) -> dict[str, Any]:
        """Summary: Route a chat message and build the response body.

        Importance: The plan approval marker is the only way to trigger step execution.
        Alternatives: Execute actions whenever the classifier detects intent.
        """

        if not isinstance(request.message, str) or not request.message:
            raise ValueError("Message is required and must be a string")
        conversation_id = request.conversation_id
        if not conversation_id:
            conversation_id = new_conversation_id()
        context = self.build_context(conversation_id)
        intent = classify(request.message)
        if intent.is_plan_approved:
            logger.info("Plan approved (%s), executing step by step.", intent.plan_token)
            return self.execute_plan(request.message, intent.plan_goal or "", context)

        collaborators = self.collaborators(context)
        draft_intent = parse_draft_intent(request.message)
        scheduling_intent = parse_scheduling_intent(request.message)
        plan_card = None
        if intent.is_actionable:
            try:
                plan_card = self.assistant.generate_plan_card(
                    request.message,
                    history=context.conversation_history,
                    user_name=context.user_name,
                    privacy_mode=context.privacy_mode,
                )
            except Exception as exc:
                logger.warning("Plan card generation failed, continuing without it: %s", exc)
            logger.info("Plan card %s.", "generated" if plan_card else "not needed")

        if draft_intent.is_draft_request or request.draft_reply_request:
            reply, draft = self.handle_draft(
                request.message,
                draft_intent,
                request.selected_email_id,
                context,
                collaborators.email_search,
            )
            self._persist(request.message, reply, conversation_id)
            return {
                **self._envelope(reply, conversation_id),
                "actionType": "mission_plan" if plan_card else "draft_reply",
                "draftData": draft.to_dict() if draft else None,
                "planCard": _plan_card_dict(plan_card),
            }

        if scheduling_intent.is_scheduling_request:
            reply, scheduling = self.handle_scheduling(scheduling_intent)
            self._persist(request.message, reply, conversation_id)
            return {
                **self._envelope(reply, conversation_id),
                "actionType": "mission_plan" if plan_card else "schedule_meeting",
                "schedulingData": scheduling,
                "planCard": _plan_card_dict(plan_card),
            }

        is_notes = (
            request.is_notes_query
            if request.is_notes_query is not None
            else is_notes_related_query(request.message)
        )
        if is_notes and self.user_email:
            body = self.answer_from_notes(request, context)
            if body is not None:
                self._persist(request.message, body["message"], conversation_id)
                return body

        return self.respond(request, context, collaborators.email_search, plan_card)

    def execute_plan(self, message: str, goal: str, context: RequestContext) -> dict[str, Any]:
        """Summary: Build, execute, and summarize the plan for an approved goal."""

        steps = build_plan(goal)
        collaborators = self.collaborators(context)
        executor = StepExecutor(collaborators, clock=self.clock)
        outcome = executor.execute(steps, context, goal)
        synthesis = synthesize(outcome.results, outcome.ok, outcome.error, goal)
        logger.info(
            "Plan finished ok=%s after %s steps.",
            outcome.ok,
            sum(1 for step in outcome.steps if step.status.terminal),
        )
        self._persist(message, synthesis.message, context.conversation_id)
        return {
            **self._envelope(synthesis.message, context.conversation_id),
            "actionType": "execution_result",
            "agentSteps": [step.to_dict() for step in outcome.steps],
            "draftData": outcome.draft.to_dict() if outcome.draft else None,
            "schedulingData": outcome.scheduling.to_dict() if outcome.scheduling else None,
            "executionResult": build_execution_result(outcome, synthesis).to_dict(),
        }

    def handle_draft(
        self,
        message: str,
        draft_intent: DraftIntent,
        selected_email_id: str | None,
        context: RequestContext,
        email_search: EmailSearchProvider,
    ) -> tuple[str, DraftData | None]:
        """Summary: Draft a reply to a selected email or the latest one from the named sender.

        Importance: Asks for clarification instead of guessing the email to reply to.
        Alternatives: Reply to the most recent inbox email.
        """

        try:
            email = None
            if selected_email_id:
                email = email_search.get_email(selected_email_id)
            elif draft_intent.reply_to:
                found = email_search.search(
                    f"from:{draft_intent.reply_to} newer_than:30d", max_results=1
                )
                email = found.emails[0] if found.emails else None
            if email is None:
                return DRAFT_CLARIFICATION, None
            reply = self.assistant.generate_draft_reply(
                format_email_for_draft(email),
                user_name=context.user_name,
                user_email=context.user_email,
                reply_instructions=draft_intent.instructions or message,
                history=context.conversation_history,
                privacy_mode=context.privacy_mode,
            )
        except Exception:
            logger.exception("Draft request failed.")
            return DRAFT_TROUBLE, None
        subject = email.subject or ""
        if subject.lower().startswith("re:"):
            subject = subject[3:].lstrip()
        draft = DraftData(
            content=reply.draft_content,
            thought=reply.thought,
            recipient_name=reply.recipient_name or "there",
            recipient_email=reply.recipient_email or "",
            sender_name=reply.sender_name or context.user_name,
            original_email_id=selected_email_id or email.id,
            thread_id=email.thread_id or None,
            message_id=email.id,
            subject=f"Re: {subject}" if subject else "Re: Your email",
        )
        text = (
            "I've drafted a reply for you. Here's what I came up with:\n\n---\n\n"
            f"{reply.draft_content}\n\n---\n\n"
            "Feel free to edit this before sending. When you're ready, you can click "
            f"\"Send Reply\" to deliver it to {draft.recipient_name}."
        )
        return text, draft

    def handle_scheduling(
        self, scheduling_intent: SchedulingIntent
    ) -> tuple[str, dict[str, Any] | None]:
        """Summary: Suggest meeting details and list what was understood from the message."""

        try:
            details = self.assistant.generate_meeting_details(scheduling_intent.context)
        except Exception:
            logger.exception("Scheduling request failed.")
            return SCHEDULING_TROUBLE, None
        lines = [
            "I've set up the meeting details for you:",
            "",
            f"**Meeting Title:** {details.suggested_title}",
            f"**Objective:** {details.suggested_description}",
            f"**Duration:** {details.suggested_duration} minutes",
            "",
        ]
        if scheduling_intent.attendees:
            lines.append(f"**Attendees:** {', '.join(scheduling_intent.attendees)}")
        if scheduling_intent.date:
            lines.append(f"**Date:** {scheduling_intent.date}")
        if scheduling_intent.time:
            lines.append(f"**Time:** {scheduling_intent.time}")
        lines.append("")
        lines.append(
            "I can help you draft an email to send this invitation to the attendees. "
            "Would you like me to do that?"
        )
        scheduling = {
            **details.to_dict(),
            **scheduling_intent.to_dict(),
            "status": "details_generated",
        }
        return "\n".join(lines), scheduling

    def answer_from_notes(
        self, request: ArcusRequest, context: RequestContext
    ) -> dict[str, Any] | None:
        """Summary: Answer a notes question from the user's stored notes.

        Importance: Returns None on failure so the turn continues on the ordinary path.
        Alternatives: Surface the notes failure to the user.
        """

        term = request.notes_search_query or extract_notes_search_term(request.message)
        try:
            found = self.notes.search(self.user_email or "", term)
            reply = self.assistant.generate_response(
                request.message,
                history=context.conversation_history,
                email_context=format_notes_context(found),
                integrations=self.integrations(),
                user_name=context.user_name,
                privacy_mode=context.privacy_mode,
            )
        except Exception:
            logger.exception("Notes answer failed.")
            return None
        return {
            **self._envelope(reply.content, context.conversation_id),
            "actionType": "notes",
            "notesResult": {
                "action": "notes_search",
                "success": True,
                "query": term,
                "count": len(found),
                "notes": [
                    {"subject": note.subject, "content": note.content, "created_at": note.created_at}
                    for note in found
                ],
            },
        }

    def respond(
        self,
        request: ArcusRequest,
        context: RequestContext,
        email_search: EmailSearchProvider,
        plan_card: PlanCard | None,
    ) -> dict[str, Any]:
        """Summary: Produce an AI reply with a display-only step trace.

        Importance: Provider failures fall back to a keyword-based reply.
        Alternatives: Return an error message when the provider fails.
        """

        integrations = self.integrations()
        email_context, email_result = self._email_context(request, email_search)
        factory = StepFactory()
        message = request.message
        ellipsis = "..." if len(message) > 80 else ""
        steps = [
            factory.make(
                StepKind.THINK,
                "De-constructing intent",
                StepStatus.DONE,
                f'Analyzing: "{message[:80]}{ellipsis}"',
            ),
            factory.make(
                StepKind.CLARIFY,
                "Calibrating response logic",
                StepStatus.DONE,
                "Mapping context to high-value outcomes...",
            ),
        ]
        if email_context and email_result is not None:
            search_step = factory.make(
                StepKind.SEARCH_EMAIL,
                "Scanning mailbox context",
                StepStatus.DONE,
                f'Scanned packets for: "{email_result.query or "recent activity"}" '
                f"({email_result.count} hits)",
            )
            steps.append(replace(search_step, result=email_result.to_dict()))
        synthesis_step = factory.make(StepKind.CREATE_DRAFT, "Synthesizing response", StepStatus.RUNNING)
        response = ""
        try:
            reply = self.assistant.generate_response(
                message,
                history=context.conversation_history,
                email_context=email_context,
                integrations=integrations,
                user_name=context.user_name,
                privacy_mode=context.privacy_mode,
            )
            response = reply.content
            synthesis_step = replace(
                synthesis_step,
                status=StepStatus.DONE,
                label="Synthesis complete",
                result={"thought": reply.thought},
                detail=f"{response[:60]}..." if response else "Output generated",
                completed_at=_now(),
            )
        except Exception as exc:
            logger.error("Arcus response generation failed: %s", exc)
            synthesis_step = replace(
                synthesis_step,
                status=StepStatus.FAILED,
                error=str(exc) or "Synthesis failed",
                completed_at=_now(),
            )
        steps.append(synthesis_step)
        final = response if response and response.strip() else fallback_response(message, integrations)
        steps.append(factory.make(StepKind.DONE, "Mission accomplished", StepStatus.DONE))
        self._persist(message, final, context.conversation_id)
        if plan_card:
            action_type = "mission_plan"
        elif email_context:
            action_type = "email"
        else:
            action_type = "general"
        return {
            **self._envelope(final, context.conversation_id),
            "actionType": action_type,
            "emailResult": email_result.to_dict() if email_result else None,
            "integrations": integrations,
            "planCard": _plan_card_dict(plan_card),
            "agentSteps": [step.to_dict() for step in steps],
        }

    def build_context(self, conversation_id: str) -> RequestContext:
        """Summary: Gather per-request state: tokens, privacy mode, and history.

        Importance: A failed token or profile lookup falls back to no tokens and privacy
        off, so the turn still gets a reply.
        Alternatives: Fail the turn when the store is unavailable.
        """

        tokens = None
        if self.user_email:
            try:
                tokens = self.tokens.load_tokens(self.user_email)
            except Exception as exc:
                logger.warning("Token lookup failed for %s: %s", self.user_email, exc)
        try:
            privacy_mode = self.profiles.privacy_mode(self.user_email)
        except Exception as exc:
            logger.warning("Privacy mode lookup failed for %s: %s", self.user_email, exc)
            privacy_mode = False
        history = (
            self.conversations.load_history(self.user_email, conversation_id)
            if self.user_email
            else []
        )
        return RequestContext(
            user_email=self.user_email,
            user_name=self.user_name,
            conversation_id=conversation_id,
            conversation_history=tuple(history),
            privacy_mode=privacy_mode,
            gmail_access_token=tokens.access_token if tokens else None,
            gmail_refresh_token=tokens.refresh_token if tokens else None,
        )

    def integrations(self) -> dict[str, bool]:
        """Summary: Integration status, all disconnected when the lookup fails."""

        try:
            return self.tokens.integration_status(self.user_email)
        except Exception as exc:
            logger.warning("Integration status lookup failed for %s: %s", self.user_email, exc)
            return dict.fromkeys(INTEGRATION_KEYS, False)

    def _email_context(
        self, request: ArcusRequest, email_search: EmailSearchProvider
    ) -> tuple[str | None, EmailSearchResult | None]:
        if not self.user_email:
            return None, None
        if request.selected_email_id:
            try:
                email = email_search.get_email(request.selected_email_id)
            except Exception:
                logger.exception("Selected email lookup failed.")
                return None, None
            if email is None:
                return None, None
            context = (
                "=== SELECTED EMAIL CONTEXT ===\n"
                "This is the specific email the user is currently looking at and asking about:\n"
                f"From: {email.sender}\nSubject: {email.subject}\nDate: {email.date}\n"
                f"Body: {email.body_text or email.snippet}\n"
                "============================"
            )
            return context, None
        if not is_email_related_query(request.message):
            return None, None
        try:
            result = email_search.search(build_inbox_query(request.message), max_results=5)
        except Exception:
            logger.exception("Inbox search for chat context failed.")
            return None, None
        return format_email_context(result), result

    def _persist(self, user_message: str, agent_response: str, conversation_id: str | None) -> None:
        if self.user_email and conversation_id:
            self.conversations.persist(
                self.user_email, user_message, agent_response, conversation_id
            )

    def _envelope(self, message: str, conversation_id: str | None) -> dict[str, Any]:
        return {
            "message": message,
            "timestamp": _now(),
            "conversationId": conversation_id,
            "aiGenerated": True,
        }


def new_conversation_id() -> str:
    """Summary: Return a conversation ID of the form conv_<millis>_<9 chars>."""

    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


def fallback_response(message: str, integrations: dict[str, bool]) -> str:
    """Summary: Keyword-based reply used when the AI provider fails or returns nothing."""

    lowered = message.lower()
    if "email" in lowered or "inbox" in lowered:
        return (
            "I'm connected to your Gmail and ready to help! I can:\n\n"
            "1. Show you your recent or unread emails\n"
            "2. Search for emails from specific people or about certain topics\n"
            "3. Draft replies to any email\n"
            "4. Summarize what needs your attention\n\n"
            "What would you like to do first?"
        )
    if "meeting" in lowered or "schedule" in lowered:
        if not integrations.get("google-calendar"):
            return (
                "I can help with scheduling, but Google Calendar isn't enabled yet. Head to the "
                "Integrations settings (plug icon) to turn it on, then I can create meetings "
                "and manage your calendar for you."
            )
        return (
            "I can help you schedule a meeting! Just tell me:\n\n"
            "1. Who should attend\n"
            "2. What day and time works\n"
            "3. Whether you want to send invites\n\n"
            'For example: "Schedule a meeting with John tomorrow at 2pm and send him an invite"'
        )
    return (
        "Hello! I'm Arcus, your intelligent email assistant. I'm here to help you manage your "
        "inbox, draft replies, and stay on top of your communications.\n\n"
        "What would you like help with today?"
    )


def degraded_response(error: Exception) -> dict[str, Any]:
    """Summary: Conversational body returned when a chat turn fails unexpectedly."""

    detail = str(error)
    return {
        "message": (
            f"I ran into an issue: {detail or 'Unknown error'}. "
            "Please try again or refresh the page."
        ),
        "timestamp": _now(),
        "error": "Internal server error",
        "errorDetail": detail or "Unknown",
    }


def _plan_card_dict(plan_card: PlanCard | None) -> dict[str, Any] | None:
    return plan_card.to_dict() if plan_card else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
