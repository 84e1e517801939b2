from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from evdesk.api.errors import register_error_handlers
from evdesk.api.routes import ping, tickets
from evdesk.core.config import Settings, get_settings
from evdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from evdesk.tickets.memory import InMemoryTicketRepository
from evdesk.tickets.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    PushNotificationDispatcher,
)
from evdesk.tickets.repository import SqlTicketRepository
from evdesk.tickets.updates import StatusUpdateLog
from evdesk.tickets.workflow import WorkflowFacade


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_notifier(settings: Settings) -> NotificationDispatcher:
    if settings.push_enabled:
        return PushNotificationDispatcher(
            endpoint=settings.push_endpoint,
            tokens=settings.floor_manager_push_tokens,
            timeout=settings.push_timeout,
        )
    return LoggingNotificationDispatcher()


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    db_engine = None
    if settings.database_backend == "postgres":
        db_engine = create_async_engine(_to_asyncpg_dsn(settings.postgres_dsn), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        repository = SqlTicketRepository(session_factory, engine=db_engine)
        await repository.ensure_schema()
    else:
        logger.warning("Using in-memory ticket storage; data is lost on restart")
        repository = InMemoryTicketRepository()

    app.state.db_engine = db_engine
    workflow = WorkflowFacade(
        repository,
        notifier=build_notifier(settings),
        update_log=StatusUpdateLog(repository, max_length=settings.status_update_max_length),
        ticket_number_prefix=settings.ticket_number_prefix,
    )
    app.state.workflow = workflow
    try:
        yield
    finally:
        await workflow.drain_notifications()
        app.state.workflow = None
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    return app


app = create_app()
