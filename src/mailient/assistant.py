"""Summary: Arcus assistant built on top of an AI provider.

Importance: Implements conversational replies, draft replies, plan cards, and meeting
suggestions with AI audit logging.
Alternatives: Call the AI provider directly from the chat route.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from mailient.ai import AiProvider, AiProviderError, estimate_tokens
from mailient.models import (
    AiRequest,
    AiResponse,
    AssistantReply,
    ChatTurn,
    DraftReply,
    MeetingDetails,
    PlanCard,
)
from mailient.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

HISTORY_TURNS = 10
DRAFT_CONTEXT_CHARS = 4000
PLAN_CARD_MAX_STEPS = 5
DEFAULT_MEETING = MeetingDetails(
    suggested_title="Follow-up Call",
    suggested_description="Discussing the recent email exchange.",
    suggested_duration=30,
)

_THOUGHT_PATTERN = re.compile(r"<thought>([\s\S]*?)</thought>")
_FROM_PATTERN = re.compile(r"From:\s*([^<\n]+)(?:<([^>]+)>)?")
_FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_EMBEDDED_JSON_PATTERN = re.compile(r"(\{[\s\S]*\})")


@dataclass(frozen=True)
class ArcusAssistant:
    """Summary: AI collaborator for the chat route and plan executor.

    Importance: Keeps prompt construction and output cleanup in one place.
    Alternatives: Inline prompts in each handler.
    """

    store: SqliteStore
    ai_provider: AiProvider
    provider_name: str
    model_name: str
    user_email: str | None = None

    def generate_response(
        self,
        message: str,
        history: list[ChatTurn] | tuple[ChatTurn, ...] = (),
        email_context: str | None = None,
        integrations: dict[str, bool] | None = None,
        subscription: dict[str, Any] | None = None,
        user_name: str = "User",
        privacy_mode: bool = False,
    ) -> AssistantReply:
        """Summary: Generate a conversational reply with full context.

        Importance: Produces the response text of every non-plan chat turn.
        Alternatives: Use canned responses for common questions.
        """

        prompt = "\n\n".join(
            section
            for section in [
                self._system_block(user_name, integrations or {}, subscription, privacy_mode),
                _format_history(history),
                f"## Email Content (Current Context)\n{email_context}" if email_context else "",
                f"[USER]: {message}",
            ]
            if section
        )
        raw = self._generate(prompt, "chat", privacy_mode)
        content, thought = extract_thought(raw)
        return AssistantReply(content=remove_em_dashes(content), thought=thought)

    def generate_draft_reply(
        self,
        email_context: str,
        user_name: str = "User",
        user_email: str | None = None,
        reply_instructions: str = "",
        history: list[ChatTurn] | tuple[ChatTurn, ...] = (),
        privacy_mode: bool = False,
    ) -> DraftReply:
        """Summary: Draft a reply to the email described by the context text.

        Importance: An empty draft is returned as-is so callers can treat it as a failure.
        Alternatives: Raise when the provider returns no text.
        """

        from_name = "there"
        from_email = ""
        match = _FROM_PATTERN.search(email_context)
        if match:
            from_name = re.sub(r"[\"']", "", match.group(1).strip()).split(" ")[0]
            from_email = match.group(2) or ""
        recipient = f"{from_name} <{from_email}>" if from_email else from_name
        author = f"{user_name} ({user_email})" if user_email else user_name
        sections = [
            f"You are Arcus, drafting an email reply for {author}.\n"
            "Write in a natural, warm, professional tone. Never use em dashes.\n"
            f"You are replying to: {recipient}\n"
            f"Reply instructions from user: {reply_instructions or 'None provided'}\n"
            f"Sign off as {user_name}.",
            _format_history(list(history)[-4:]),
            f"Draft a reply to this email:\n\n{email_context[:DRAFT_CONTEXT_CHARS]}",
        ]
        prompt = "\n\n".join(section for section in sections if section)
        raw = self._generate(prompt, "draft", privacy_mode)
        draft, thought = extract_thought(raw)
        return DraftReply(
            draft_content=remove_em_dashes(draft),
            thought=thought,
            recipient_name=from_name,
            recipient_email=from_email,
            sender_name=user_name,
        )

    def generate_plan_card(
        self,
        message: str,
        history: list[ChatTurn] | tuple[ChatTurn, ...] = (),
        email_context: str | None = None,
        user_name: str = "User",
        privacy_mode: bool = False,
    ) -> PlanCard | None:
        """Summary: Ask the provider whether the message needs a plan card.

        Importance: Drives the suggest-then-act flow; None means a plain answer suffices.
        Alternatives: Always show a plan card for actionable messages.
        """

        sections = [
            "Parse the user's message into a Plan Card. Respond with valid JSON only.\n"
            'Schema: {"needs_plan_card": bool, "goal": str, "steps": [str], "tools": [str], '
            '"draft_preview": object|null, "invite_preview": object|null, "risk_flags": [str], '
            '"confidence": number, "assumptions": [str], "questions_for_user": [str]}\n'
            "needs_plan_card is true only when the user wants an action. Keep steps to 2-5.",
            f"User: {user_name} ({self.user_email or 'unknown'})",
        ]
        if email_context:
            sections.append(f"Email context:\n{email_context}")
        recent = list(history)[-6:]
        if recent:
            sections.append(
                "Recent conversation:\n"
                + "\n".join(f"[{turn.role}]: {turn.content[:150]}" for turn in recent)
            )
        sections.append(f"Message: {message}")
        prompt = "\n\n".join(sections)
        try:
            raw = self._generate(prompt, "plan_card", privacy_mode)
        except AiProviderError as exc:
            logger.warning("Plan card generation failed: %s", exc)
            return None
        parsed = parse_json_object(extract_thought(raw)[0])
        if not parsed or not parsed.get("needs_plan_card"):
            return None
        confidence = parsed.get("confidence")
        return PlanCard(
            id=f"plan_{int(time.time() * 1000)}_{secrets.token_hex(3)}",
            goal=parsed.get("goal") or message[:100],
            steps=tuple(_string_list(parsed.get("steps"))[:PLAN_CARD_MAX_STEPS])
            or ("Processing your request",),
            tools=tuple(_string_list(parsed.get("tools"))),
            draft_preview=parsed.get("draft_preview") or None,
            invite_preview=parsed.get("invite_preview") or None,
            risk_flags=tuple(_string_list(parsed.get("risk_flags"))),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else 0.8,
            assumptions=tuple(_string_list(parsed.get("assumptions"))),
            questions_for_user=tuple(_string_list(parsed.get("questions_for_user"))),
        )

    def generate_meeting_details(self, context: str, email_content: str = "") -> MeetingDetails:
        """Summary: Suggest a meeting title, objective, and duration.

        Importance: Falls back to a generic follow-up call when the provider fails.
        Alternatives: Ask the user for every meeting field.
        """

        prompt = (
            "Suggest meeting details as JSON with keys suggested_title, "
            "suggested_description, suggested_duration (minutes).\n\n"
            f"Meeting context: {context}\n\n"
            f"Email content: {email_content or context}"
        )
        try:
            raw = self._generate(prompt, "meeting_details", False)
        except AiProviderError as exc:
            logger.warning("Meeting details generation failed: %s", exc)
            return DEFAULT_MEETING
        parsed = parse_json_object(extract_thought(raw)[0])
        if not parsed or not parsed.get("suggested_title"):
            return DEFAULT_MEETING
        try:
            duration = int(parsed.get("suggested_duration") or DEFAULT_MEETING.suggested_duration)
        except (TypeError, ValueError):
            duration = DEFAULT_MEETING.suggested_duration
        return MeetingDetails(
            suggested_title=str(parsed["suggested_title"]),
            suggested_description=str(
                parsed.get("suggested_description") or DEFAULT_MEETING.suggested_description
            ),
            suggested_duration=duration,
        )

    def _system_block(
        self,
        user_name: str,
        integrations: dict[str, bool],
        subscription: dict[str, Any] | None,
        privacy_mode: bool,
    ) -> str:
        calendar_connected = integrations.get("google-calendar")
        lines = [
            "# ARCUS",
            "You are Arcus, the conversational assistant of Mailient.",
            "Never invent names, addresses, dates, or email content. Never use em dashes.",
            "Never claim an action happened; actions run only after a plan card is approved.",
            f"User email: {self.user_email or 'Not signed in'}",
            f"User name: {user_name}",
            f"Gmail access: {'connected' if integrations.get('gmail') else 'not connected'}",
            f"Calendar access: {'connected' if calendar_connected else 'not connected'}",
        ]
        if subscription:
            lines.append(f"Subscription: {subscription.get('plan', 'unknown')}")
        if privacy_mode:
            lines.insert(1, "PRIVACY MODE ACTIVE: treat all information as ephemeral.")
        return "\n".join(lines)

    def _generate(self, prompt: str, purpose: str, privacy_mode: bool) -> str:
        response_text, latency_ms = self.ai_provider.generate_text(
            prompt, purpose=purpose, privacy_mode=privacy_mode
        )
        self._log_ai(prompt, purpose, response_text, latency_ms)
        return response_text

    def _log_ai(self, prompt: str, purpose: str, response_text: str, latency_ms: int) -> None:
        """Summary: Store AI request and response metadata.

        Importance: Provides auditability for AI usage.
        Alternatives: Rely solely on logs without persistence.
        """

        request = AiRequest(
            provider=self.provider_name,
            model=self.model_name,
            prompt=prompt,
            purpose=purpose,
            timestamp=datetime.utcnow(),
        )
        request_id = self.store.log_ai_request(request, user_email=self.user_email)
        self.store.log_ai_response(
            AiResponse(
                request_id=request_id,
                response_text=response_text,
                latency_ms=latency_ms,
                token_estimate=estimate_tokens(response_text),
            )
        )


def extract_thought(text: str) -> tuple[str, str | None]:
    """Summary: Split a <thought> block off the visible response text."""

    if not text:
        return "", None
    thought = None
    match = _THOUGHT_PATTERN.search(text)
    if match:
        thought = match.group(1).strip()
    content = _THOUGHT_PATTERN.sub("", text).strip()
    return content, thought


def remove_em_dashes(text: str) -> str:
    """Summary: Replace em dashes with commas and en dashes with hyphens."""

    if not text:
        return text
    return text.replace("—", ", ").replace("–", "-")


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Summary: Parse a JSON object from raw, fenced, or embedded model output.

    Importance: Models often wrap JSON in markdown despite instructions.
    Alternatives: Use provider JSON mode where available.
    """

    candidates = [text.strip()]
    for pattern in (_FENCED_JSON_PATTERN, _EMBEDDED_JSON_PATTERN):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1).strip())
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    logger.warning("Could not parse JSON from model output: %s", text[:200])
    return None


def _format_history(history: list[ChatTurn] | tuple[ChatTurn, ...]) -> str:
    turns = list(history)[-HISTORY_TURNS:]
    if not turns:
        return ""
    return "\n".join(f"[{turn.role.upper()}]: {turn.content}" for turn in turns)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]
