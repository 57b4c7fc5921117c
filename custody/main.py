"""FastAPI application for the custody rebalancing core."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from custody.api.preview import router as preview_router
from custody.api.proposals import router as proposals_router
from custody.api.rebalance import router as rebalance_router
from custody.config.rules import rules_from_config, rules_from_settings
from custody.config.settings import settings
from custody.core.logger import setup_logger
from custody.optimizer.client import HttpProposalOptimizer
from custody.optimizer.types import ProposalOptimizer
from custody.proposals.store import InMemoryProposalStore
from custody.proposals.workflow import ProposalWorkflow
from custody.schedule.errors import CalendarIntegrityError, DisruptionConflictError
from custody.schedule.types import Calendar, ScheduleRules
from custody.storage.memory import InMemoryScheduleStorage, load_calendar_safely, load_config_safely
from custody.storage.types import ScheduleStorage


def _default_rules(storage: ScheduleStorage) -> ScheduleRules:
    config = load_config_safely(storage)
    if config is not None:
        return rules_from_config(config)
    return rules_from_settings()


def _default_optimizer() -> ProposalOptimizer | None:
    if not settings.optimizer_url:
        logger.info("CUSTODY_OPTIMIZER_URL is not set. Rebalancing runs without the optimizer pass.")
        return None
    return HttpProposalOptimizer(settings.optimizer_url, timeout=settings.optimizer_timeout_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release process-wide resources on shutdown.

    The storage subscription and the optimizer client are created with the
    app; this closes them when the server stops.
    """
    yield
    app.state.unsubscribe_storage()
    optimizer = app.state.optimizer
    if isinstance(optimizer, HttpProposalOptimizer):
        await optimizer.aclose()
    logger.info("Custody API shut down")


async def _integrity_error_handler(request: Request, exc: CalendarIntegrityError) -> JSONResponse:
    status_code = status.HTTP_409_CONFLICT if isinstance(exc, DisruptionConflictError) else status.HTTP_400_BAD_REQUEST
    logger.warning("Rejected request input", path=request.url.path, error=exc.message, date=exc.date)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "date": exc.date})


def create_app(
    rules: ScheduleRules | None = None,
    workflow: ProposalWorkflow | None = None,
    optimizer: ProposalOptimizer | None = None,
    storage: ScheduleStorage | None = None,
    *,
    use_default_optimizer: bool = True,
) -> FastAPI:
    """Build the API application with its process-wide collaborators.

    Args:
        rules: Schedule rules. Defaults to the stored config, then settings.
        workflow: Proposal workflow. Defaults to one over an in-memory store.
        optimizer: Optimizer collaborator. Defaults to the configured HTTP optimizer.
        storage: Schedule storage. Defaults to in-memory storage.
        use_default_optimizer: When False and no optimizer is given, run without one

    Returns:
        Configured FastAPI app
    """
    setup_logger(level=settings.log_level, log_file=settings.log_file or None, serialize=settings.log_json)

    storage = storage or InMemoryScheduleStorage()
    rules = rules or _default_rules(storage)
    workflow = workflow or ProposalWorkflow(InMemoryProposalStore(), rules)
    if optimizer is None and use_default_optimizer:
        optimizer = _default_optimizer()

    app = FastAPI(title="Custody Rebalancer", lifespan=lifespan)
    app.state.rules = rules
    app.state.workflow = workflow
    app.state.optimizer = optimizer
    app.state.storage = storage
    app.state.latest_calendar = load_calendar_safely(storage)

    def _on_calendar_update(calendar: Calendar | None) -> None:
        app.state.latest_calendar = calendar
        logger.info("Committed calendar updated", days=len(calendar) if calendar is not None else 0)

    app.state.unsubscribe_storage = storage.subscribe(_on_calendar_update)

    app.add_exception_handler(CalendarIntegrityError, _integrity_error_handler)
    app.include_router(rebalance_router)
    app.include_router(preview_router)
    app.include_router(proposals_router)

    logger.info(
        "Custody API ready",
        guardian_a=rules.guardian_a,
        guardian_b=rules.guardian_b,
        optimizer=optimizer is not None,
    )
    return app
