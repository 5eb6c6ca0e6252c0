import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from accountsync.core.config import get_settings
from accountsync.core.logging import setup_logging
from accountsync.core.database import create_db_and_tables
from accountsync.remote.errors import (
    AccountSyncError,
    AuthError,
    EntityNotFoundError,
    ExecutionError,
    ExecutionKind,
    IdentifierError,
    NetworkError,
    ParseError,
    ReplacementRequiredError,
)
from accountsync.services import session_manager

# Import Routers
from accountsync.routers import hosts as hosts_router, users as users_router, groups as groups_router

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manages application lifecycle events.

    On Startup:
    - Creates database tables if missing.

    On Shutdown:
    - Closes every SSH session opened during the application's lifetime.
    """
    logger.info(f"{settings.APP_NAME} starting up...")
    create_db_and_tables()
    yield
    logger.info(f"{settings.APP_NAME} shutting down...")
    await app.state.session_manager.close_all()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)
app.state.session_manager = session_manager


def _error_body(exc: AccountSyncError) -> dict:
    body = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, ExecutionError):
        body.update(command=exc.command, stderr=exc.stderr, exit_status=exc.exit_status, kind=exc.kind.value)
    elif isinstance(exc, ParseError):
        body.update(command=exc.command, line=exc.line)
    return body


# Global Exception Handlers
@app.exception_handler(AccountSyncError)
async def account_sync_exception_handler(request: Request, exc: AccountSyncError):
    """Maps reconciler failures to HTTP responses.

    Remote failures answer 502 (504 on timeouts) and keep the failing
    command in the body. A transport failure also drops the host's session
    so the next request reconnects.
    """
    if isinstance(exc, IdentifierError):
        status_code = 400
    elif isinstance(exc, EntityNotFoundError):
        status_code = 404
    elif isinstance(exc, ReplacementRequiredError):
        status_code = 409
    elif isinstance(exc, ExecutionError) and exc.kind is ExecutionKind.TIMEOUT:
        status_code = 504
    else:
        status_code = 502

    if isinstance(exc, (NetworkError, AuthError)):
        host_id = request.path_params.get("host_id")
        if host_id is not None:
            await request.app.state.session_manager.evict(int(host_id))

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=_error_body(exc))


# Include Routers
app.include_router(hosts_router.router)
app.include_router(users_router.router)
app.include_router(groups_router.router)
