import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leaderboard_engine.db.base import check_health, get_db
from leaderboard_engine.core.config import settings
from leaderboard_engine.core.logging import setup_logging
from leaderboard_engine.routers import runs as runs_router
from leaderboard_engine.routers import token_pools as token_pools_router
from leaderboard_engine.routers import leaderboard as leaderboard_router
from leaderboard_engine.routers import positions as positions_router
from leaderboard_engine.routers import prizes as prizes_router
from leaderboard_engine.core.errors import (
    EngineException,
    engine_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)
from leaderboard_engine.services.identity import IdentityCache, build_resolver
from leaderboard_engine.services.notifications import LoggingNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    app.state.identity_cache = IdentityCache()
    app.state.identity_resolver = build_resolver()
    app.state.notifier = LoggingNotifier()
    logger.info(
        "Leaderboard engine starting (env=%s, resolver=%s)",
        settings.APP_ENV, type(app.state.identity_resolver).__name__,
    )
    yield
    close = getattr(app.state.identity_resolver, "close", None)
    if close is not None:
        close()


app = FastAPI(
    title="Leaderboard Engine API",
    description=(
        "**Leaderboard integrity and replay validation**\n\n"
        "Accepts completed runs, replays high scores against their seeded token "
        "sequence, keeps global and weekly standings, reports overtakes and rank "
        "movement, and finalizes weekly prize distributions.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(EngineException, engine_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(runs_router.router)
app.include_router(token_pools_router.router)
app.include_router(leaderboard_router.router)
app.include_router(positions_router.router)
app.include_router(prizes_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    `{"status": "ok", "database": "connected"}` when the database answers,
    HTTP 503 with the failure reason otherwise.
    """
    result = check_health(db)
    if not result.connected:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "unreachable", "reason": result.reason},
        )
    return {"status": "ok", "database": "connected", "env": settings.APP_ENV}
