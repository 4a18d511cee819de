"""Summary: FastAPI application for Mailient Arcus.

Importance: Exposes the Arcus chat route, the read_gmail search backend, and the
setup endpoints that store tokens, privacy mode, and notes.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mailient.app import AppContext, AppServices, build_context
from mailient.chat import ArcusRequest, degraded_response
from mailient.config import AppConfig
from mailient.email import MAX_SEARCH_RESULTS, EmailSearchError


logger = logging.getLogger(__name__)


class ChatArcusRequest(BaseModel):
    """Summary: Request payload for the Arcus chat route.

    Importance: Accepts the camelCase body sent by the chat UI.
    Alternatives: Accept snake_case fields only.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Any = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    is_notes_query: bool | None = Field(default=None, alias="isNotesQuery")
    notes_search_query: str | None = Field(default=None, alias="notesSearchQuery")
    selected_email_id: str | None = Field(default=None, alias="selectedEmailId")
    draft_reply_request: bool = Field(default=False, alias="draftReplyRequest")


class ReadGmailRequest(BaseModel):
    """Summary: Request payload for mailbox search.

    Importance: Mirrors the body sent by HttpEmailSearchProvider.
    Alternatives: Use query parameters instead of JSON payloads.
    """

    query: str = "newer_than:7d"
    max_results: int = Field(default=5, ge=1)
    include_body: bool = True
    thread_id: str | None = None
    email_id: str | None = None


class TokenStoreRequest(BaseModel):
    """Summary: Request payload for storing Google OAuth tokens."""

    access_token: str
    refresh_token: str | None = None
    expires_at: str | None = None


class PrivacyModeRequest(BaseModel):
    """Summary: Request payload for toggling AI privacy mode."""

    enabled: bool
    display_name: str | None = None


class NoteCreateRequest(BaseModel):
    """Summary: Request payload for note creation.

    Importance: Stores notes that Arcus can search from chat.
    Alternatives: Store notes in a separate note-taking app.
    """

    subject: str
    content: str


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to Mailient Arcus services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="Mailient Arcus API", version="0.1.0")
    app_context = context or build_context(config)

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def user_services(
        x_user_email: str | None = Header(default=None),
        x_user_name: str | None = Header(default=None),
    ) -> AppServices:
        """Summary: Build services for the caller named by the identity headers.

        Importance: Falls back to the configured local user when no header is sent.
        Alternatives: Resolve identity from a session cookie.
        """

        return app_context.services_for_user(
            x_user_email or config.default_user_email, x_user_name
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok"}

    @app.post("/api/agent-talk/chat-arcus", dependencies=[Depends(require_api_key)])
    def chat_arcus(
        payload: ChatArcusRequest, services: AppServices = Depends(user_services)
    ) -> dict[str, Any]:
        """Summary: Handle one Arcus chat turn.

        Importance: Unexpected failures still return a conversational body.
        Alternatives: Let FastAPI return a bare 500 response.
        """

        if not isinstance(payload.message, str) or not payload.message:
            raise HTTPException(status_code=400, detail="Message is required and must be a string")
        request = ArcusRequest(
            message=payload.message,
            conversation_id=payload.conversation_id,
            is_notes_query=payload.is_notes_query,
            notes_search_query=payload.notes_search_query,
            selected_email_id=payload.selected_email_id,
            draft_reply_request=payload.draft_reply_request,
        )
        try:
            return services.chat.handle(request)
        except Exception as exc:
            logger.exception("Arcus chat turn failed.")
            return degraded_response(exc)

    @app.post("/api/agent-talk/read_gmail")
    def read_gmail(
        payload: ReadGmailRequest | None = None,
        authorization: str | None = Header(default=None),
        x_gmail_access_token: str | None = Header(default=None),
        x_user_email: str | None = Header(default=None),
    ) -> Any:
        """Summary: Search the caller's mailbox with their Gmail access token.

        Importance: Backs HttpEmailSearchProvider for plan runs.
        Alternatives: Call the Gmail API from the executor directly.
        """

        if not x_user_email:
            return _error_response(401, "missing_user", "x-user-email header is required")
        access_token = x_gmail_access_token
        if authorization and authorization.lower().startswith("bearer "):
            access_token = authorization[7:].strip()
        if not access_token:
            return _error_response(
                401, "missing_token", "x-gmail-access-token header is required"
            )
        body = payload or ReadGmailRequest()
        provider = app_context.search_provider(access_token)
        try:
            if body.email_id:
                email = provider.get_email(body.email_id)
                emails = [email.to_dict()] if email else []
                return {
                    "success": True,
                    "user_email": x_user_email,
                    "count": len(emails),
                    "query": body.query,
                    "emails": emails,
                }
            if body.thread_id:
                result = provider.get_thread(body.thread_id, include_body=body.include_body)
                return {
                    **result.to_dict(),
                    "user_email": x_user_email,
                    "query": body.query,
                    "thread_id": body.thread_id,
                }
            result = provider.search(
                body.query,
                max_results=min(body.max_results, MAX_SEARCH_RESULTS),
                include_body=body.include_body,
            )
        except EmailSearchError as exc:
            logger.error("read_gmail failed for %s: %s", x_user_email, exc)
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": "server_error",
                        "message": "Failed to read Gmail",
                        "detail": str(exc),
                    }
                },
            )
        return {**result.to_dict(), "user_email": x_user_email}

    @app.get("/api/agent-talk/history", dependencies=[Depends(require_api_key)])
    def history(
        conversation_id: str = Query(alias="conversationId"),
        services: AppServices = Depends(user_services),
    ) -> dict[str, Any]:
        """Summary: Return the stored turns of one conversation, oldest first."""

        thread = services.conversations.thread(services.user_email or "", conversation_id)
        return {
            "conversationId": conversation_id,
            "messages": [
                {
                    "user_message": entry.user_message,
                    "agent_response": entry.agent_response,
                    "message_order": entry.message_order,
                    "is_initial_message": entry.is_initial_message,
                    "created_at": entry.created_at,
                }
                for entry in thread
            ],
        }

    @app.post("/tokens", dependencies=[Depends(require_api_key)])
    def store_tokens(
        payload: TokenStoreRequest, services: AppServices = Depends(user_services)
    ) -> dict[str, Any]:
        """Summary: Store Google OAuth tokens for the caller.

        Importance: Plan runs read Gmail and Calendar with these credentials.
        Alternatives: Run the OAuth flow inside this service.
        """

        token_id = services.tokens.store_tokens(
            services.user_email or "",
            payload.access_token,
            payload.refresh_token,
            payload.expires_at,
        )
        return {"id": token_id, "integrations": services.tokens.integration_status(services.user_email)}

    @app.post("/profile/privacy", dependencies=[Depends(require_api_key)])
    def set_privacy(
        payload: PrivacyModeRequest, services: AppServices = Depends(user_services)
    ) -> dict[str, Any]:
        services.profiles.set_privacy_mode(
            services.user_email or "", payload.enabled, payload.display_name
        )
        return {"privacy_mode": services.profiles.privacy_mode(services.user_email)}

    @app.post("/notes", dependencies=[Depends(require_api_key)])
    def add_note(
        payload: NoteCreateRequest, services: AppServices = Depends(user_services)
    ) -> dict[str, Any]:
        note_id = services.notes.add(services.user_email or "", payload.subject, payload.content)
        return {"id": note_id}

    return app


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})
