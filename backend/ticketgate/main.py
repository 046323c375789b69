import asyncio
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ticketgate.api.router import api_router
from ticketgate.core.config import settings
from ticketgate.core.errors import InvalidTransitionError, RecordDecodeError, StoreUnavailableError
from ticketgate.core.logging_config import get_logger
from ticketgate.db.init_db import create_tables, seed_dev_data
from ticketgate.services.lock_sweeper import lock_sweep_loop

logger = get_logger(__name__)

def _run_migrations_if_needed():
    """Apply Alembic migrations automatically in production if enabled.

    Controlled by AUTO_APPLY_MIGRATIONS (default on). Safe to run repeatedly.
    """
    if settings.env.lower() != "prod" or not settings.auto_apply_migrations:
        return
    from alembic import command
    from alembic.config import Config

    backend_dir = Path(__file__).resolve().parents[1]
    alembic_ini = backend_dir / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping auto-migrations", extra={"path": str(alembic_ini)})
        return
    cfg = Config(str(alembic_ini))
    # Resolve script_location when launched from an arbitrary CWD
    cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    logger.info("Applying Alembic migrations -> head")
    try:
        command.upgrade(cfg, "head")
    except Exception:
        # Keep serving; migrations can be retried manually.
        logger.exception("Migration failed")
        return
    logger.info("Migrations applied")

app = FastAPI(title="TicketGate API", version="0.1.0")

origins = settings.cors_origins
logger.info("Resolved CORS origins", extra={"origins": origins})
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})

@app.exception_handler(RecordDecodeError)
@app.exception_handler(InvalidTransitionError)
async def integrity_error_handler(request: Request, exc: Exception):
    logger.error("Integrity fault", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

app.include_router(api_router)

_background_tasks: set[asyncio.Task] = set()

@app.on_event("startup")
async def startup():
    _run_migrations_if_needed()
    if settings.env.lower() in {"dev", "development"}:
        create_tables()
        seed_dev_data()
    task = asyncio.create_task(lock_sweep_loop())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

@app.on_event("shutdown")
async def shutdown():
    for task in list(_background_tasks):
        task.cancel()
