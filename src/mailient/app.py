"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from mailient.ai import AiProvider, AiProviderFactory
from mailient.assistant import ArcusAssistant
from mailient.calendar import (
    BookingLinkService,
    CalComBookingService,
    CalendarService,
    GoogleCalendarService,
    MockBookingLinkService,
    MockCalendarService,
)
from mailient.chat import ArcusChatService
from mailient.config import AppConfig
from mailient.crypto import TokenCipher
from mailient.email import (
    EmailSearchProvider,
    GmailSearchProvider,
    HttpEmailSearchProvider,
    MockEmailSearchProvider,
)
from mailient.executor import Collaborators
from mailient.models import RequestContext
from mailient.services import ConversationService, NotesService, ProfileService, TokenService
from mailient.storage.sqlite_store import SqliteStore


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for building user services.

    Importance: Reuses storage and the AI provider across user-bound services.
    Alternatives: Rebuild dependencies for every request.
    """

    store: SqliteStore
    ai_provider: AiProvider
    model_name: str
    config: AppConfig

    def services_for_user(self, user_email: str | None, user_name: str | None = None) -> "AppServices":
        """Summary: Build user-scoped services from shared context.

        Importance: Binds AI audit rows and conversation memory to one user.
        Alternatives: Pass the user to every service call.
        """

        conversations = ConversationService(store=self.store)
        tokens = TokenService(store=self.store, cipher=TokenCipher(self.config.token_secret))
        profiles = ProfileService(store=self.store)
        notes = NotesService(store=self.store)
        assistant = ArcusAssistant(
            store=self.store,
            ai_provider=self.ai_provider,
            provider_name=self.config.ai_provider,
            model_name=self.model_name,
            user_email=user_email,
        )

        def collaborators(context: RequestContext) -> Collaborators:
            return Collaborators(
                email_search=self.email_search_for(context),
                assistant=assistant,
                booking_links=self.booking_links(),
                calendar_factory=self.calendar_for,
            )

        chat = ArcusChatService(
            user_email=user_email,
            user_name=user_name or self.config.default_user_name,
            conversations=conversations,
            tokens=tokens,
            profiles=profiles,
            notes=notes,
            assistant=assistant,
            collaborators=collaborators,
        )
        return AppServices(
            conversations=conversations,
            tokens=tokens,
            profiles=profiles,
            notes=notes,
            assistant=assistant,
            chat=chat,
            store=self.store,
            user_email=user_email,
        )

    def email_search_for(self, context: RequestContext) -> EmailSearchProvider:
        """Summary: Pick the mailbox search provider configured for chat and plan runs.

        Importance: The http provider reuses the read_gmail route of a deployed app.
        Alternatives: Always search Gmail in-process.
        """

        if self.config.search_provider == "http":
            return HttpEmailSearchProvider(
                base_url=self.config.app_base_url,
                user_email=context.user_email or "",
                access_token=context.gmail_access_token,
                refresh_token=context.gmail_refresh_token,
            )
        return self.search_provider(context.gmail_access_token or "")

    def search_provider(self, access_token: str) -> EmailSearchProvider:
        """Summary: Build an in-process search provider for one access token."""

        if self.config.search_provider == "mock":
            return MockEmailSearchProvider(Path(self.config.search_fixture_path))
        return GmailSearchProvider(access_token, self.config.gmail_api_base_url)

    def calendar_for(self, access_token: str) -> CalendarService:
        if self.config.search_provider == "mock":
            return MockCalendarService()
        return GoogleCalendarService(access_token, self.config.google_calendar_base_url)

    def booking_links(self) -> BookingLinkService:
        if self.config.cal_api_key:
            return CalComBookingService(self.config.cal_api_url, self.config.cal_api_key)
        return MockBookingLinkService()


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of user-scoped services for Mailient Arcus.

    Importance: Simplifies passing dependencies to the CLI and API layers.
    Alternatives: Use a dependency injection container.
    """

    conversations: ConversationService
    tokens: TokenService
    profiles: ProfileService
    notes: NotesService
    assistant: ArcusAssistant
    chat: ArcusChatService
    store: SqliteStore
    user_email: str | None


def build_context(config: AppConfig) -> AppContext:
    """Summary: Build shared context for user-scoped services.

    Importance: Reuses storage and the AI provider across requests.
    Alternatives: Construct dependencies separately per request.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    factory = AiProviderFactory(config)
    return AppContext(
        store=store,
        ai_provider=factory.build(),
        model_name=factory.model_name(),
        config=config,
    )


def build_services(config: AppConfig, user_email: str | None = None) -> AppServices:
    """Summary: Build services for one user, defaulting to the configured local user.

    Importance: Provides a single construction path for the CLI.
    Alternatives: Instantiate services directly within the CLI entrypoint.
    """

    context = build_context(config)
    return context.services_for_user(user_email or config.default_user_email)
