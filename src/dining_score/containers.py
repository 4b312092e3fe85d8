"""Dependency container wiring for the application."""

from dataclasses import dataclass

from supabase import create_client

from dining_score.adapters.memory_session_repository import InMemorySessionRepository
from dining_score.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from dining_score.config import STORE_MEMORY, Settings
from dining_score.services.admin import AdminService
from dining_score.services.history import HistoryService
from dining_score.services.results import ResultsService
from dining_score.services.sessions import SessionService, SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_service: SessionService
    results_service: ResultsService
    history_service: HistoryService
    admin_service: AdminService


def build_store(settings: Settings) -> SessionStore:
    """Create the session store selected in settings."""
    if settings.session_store == STORE_MEMORY:
        return InMemorySessionRepository()
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
    supabase_client = create_client(
        settings.supabase_url, settings.supabase_service_key
    )
    return SupabaseSessionRepository(
        client=supabase_client,
        table_name=settings.sessions_table,
        poll_interval_seconds=settings.subscription_poll_seconds,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    store = build_store(resolved_settings)
    session_service = SessionService(
        store=store, max_append_attempts=resolved_settings.max_append_attempts
    )
    results_service = ResultsService(
        session_service=session_service,
        reveal_interval_seconds=resolved_settings.reveal_interval_seconds,
    )
    history_service = HistoryService(store)
    admin_service = AdminService(store)

    return AppContainer(
        settings=resolved_settings,
        session_service=session_service,
        results_service=results_service,
        history_service=history_service,
        admin_service=admin_service,
    )
