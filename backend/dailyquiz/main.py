import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import dispose_engine, get_engine
from .logging_config import configure_logging
from .quiz_routes import router as quiz_router
from .services import get_services, reset_services
from .stats_refresh import refresh_loop
from .stats_routes import router as stats_router
from .telemetry import event_counts


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    services = get_services()
    interval = services.settings.refresh_interval_seconds
    refresher: Optional[asyncio.Task] = None
    if interval > 0:
        refresher = asyncio.create_task(refresh_loop(services.counter_store, services.stats_cache, interval))
        logger.info("Stats refresh loop running every %ss", interval)
    else:
        logger.info("Stats refresh loop disabled; relying on the external trigger")
    try:
        yield
    finally:
        if refresher is not None:
            refresher.cancel()
            with suppress(asyncio.CancelledError):
                await refresher
        reset_services()
        dispose_engine()
        logger.info("Daily quiz backend stopped")


app = FastAPI(title="Daily Quiz Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(stats_router)
app.include_router(quiz_router)

settings_snapshot = get_settings()
logger.info("Backend starting with counter backend: %s", settings_snapshot.counter_backend)
logger.info("Quiz timezone: %s", settings_snapshot.quiz_timezone)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {"status": "ok", "counter_backend": settings.counter_backend, "events": event_counts()}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "dialect": engine.dialect.name,
        "pool": get_pool_snapshot(engine),
    }


def run() -> None:
    import uvicorn

    host = os.getenv("QUIZ_HOST", "0.0.0.0")
    port = int(os.getenv("QUIZ_PORT", "8000"))
    logger.info("Starting daily quiz backend on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run()
