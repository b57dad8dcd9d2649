import logging

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from levelup.db.base import get_db
from levelup.core.config import settings
from levelup.routers import progression as progression_router
from levelup.routers import ledger as ledger_router
from levelup.routers import catalog as catalog_router
from levelup.services.reward_orchestrator import RewardOrchestrator
from levelup.core.errors import (
    LevelUpException,
    levelup_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

logging.getLogger("levelup").setLevel(settings.LOG_LEVEL.upper())

app = FastAPI(
    title="LevelUp API",
    description=(
        "**Progression and reward engine** for the student dashboard.\n\n"
        "Turns task completions into an XP ledger, levels, daily streaks, "
        "bonuses and achievements.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# One orchestrator per process: it owns the snapshot cache and per-subject locks.
app.state.orchestrator = RewardOrchestrator()

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(LevelUpException, levelup_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(progression_router.router)
app.include_router(ledger_router.router)
app.include_router(catalog_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    Used by Railway / Render for liveness checks.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
