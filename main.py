import logging
import os
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from dal.settings_dal import SettingsDAL
from models.session_models import ProviderKind
from routes.realtime_ws import router as realtime_router
from routes.session_route import router as session_router
from services.conversation.reconciler import ConversationReconciler
from services.providers.base import ProviderAdapter
from services.realtime.event_channel import InMemoryEventChannel
from services.realtime.orchestrator import SessionOrchestrator
from services.realtime.reconnection import ReconnectionPolicy
from utils.database_init import AsyncDatabaseInitializer

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def reconnection_policy_from_env() -> ReconnectionPolicy:
    """Build the reconnection policy from RECONNECT_* environment variables."""
    defaults = ReconnectionPolicy()
    try:
        max_attempts = int(os.getenv("RECONNECT_MAX_ATTEMPTS", defaults.max_attempts))
        delay_seconds = float(os.getenv("RECONNECT_DELAY_SECONDS", defaults.delay_seconds))
    except ValueError as exc:
        raise RuntimeError("RECONNECT_MAX_ATTEMPTS and RECONNECT_DELAY_SECONDS must be numeric") from exc
    if max_attempts < 0 or delay_seconds < 0:
        raise RuntimeError("Reconnection settings must not be negative")
    return ReconnectionPolicy(max_attempts=max_attempts, delay_seconds=delay_seconds)


def create_app(adapters: Optional[Mapping[ProviderKind, ProviderAdapter]] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        adapters: Optional provider adapters replacing the default backends.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the settings database (kept across restarts, at DATABASE_DIR/settings.db)
          - the event channel consumers subscribe to
          - the conversation reconciler folding session events into display turns
          - the session orchestrator publishing to the channel and the reconciler
        and attach them to `app.state`.
        """
        db_initializer = AsyncDatabaseInitializer()
        await db_initializer.ensure_database()
        app.state.db_initializer = db_initializer
        LOGGER.info("Settings database ready at %s", db_initializer.db_path)

        event_channel = InMemoryEventChannel()
        app.state.event_channel = event_channel
        reconciler = ConversationReconciler()
        app.state.reconciler = reconciler
        app.state.orchestrator = SessionOrchestrator(
            sinks=[event_channel, reconciler],
            adapters=adapters,
            settings_store=SettingsDAL(db_initializer),
            policy=reconnection_policy_from_env(),
        )

        try:
            yield
        finally:
            await app.state.orchestrator.stop()
            event_channel.close()

    _configure_logging()
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting settings storage and session state.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        orchestrator = getattr(request.app.state, "orchestrator", None)
        return {
            "ok": True,
            "db_initialized": has_db,
            "session_state": orchestrator.state.value if orchestrator is not None else None,
        }

    # Register application routers
    app.include_router(session_router)
    app.include_router(realtime_router)

    return app


app = create_app()
