from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# ✅ Setup Logging FIRST
from countarr import __version__
from countarr.config import HOST, PORT, LOG_DIR, LOG_LEVEL
from countarr.utils.logger import setup_logging, change_log_level_runtime
from countarr.database import SessionLocal, init_db, get_db
from countarr.startup import init_config
from countarr.services.scheduler import SyncScheduler
from countarr.services.settings import LOG_LEVEL_KEY, get_setting

# API Routes
from countarr.api import connections, settings, sync


setup_logging(LOG_LEVEL, LOG_DIR)

logger = logging.getLogger(__name__)


def get_log_level_from_db():
    """Lese Log-Level aus Datenbank, mit Fallback auf die Umgebung"""
    db = SessionLocal()
    try:
        value = get_setting(db, LOG_LEVEL_KEY)
        if value:
            return str(value).upper()
    except Exception as e:
        logger.warning(f"Could not read log_level from DB: {e}")
    finally:
        db.close()
    return LOG_LEVEL


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Countarr {__version__}...")
    try:
        init_db()
        logger.info("✓ Database initialized")
    except Exception as e:
        logger.error(f"✗ Database init failed: {e}")
        raise

    try:
        init_config()
    except Exception as e:
        logger.error(f"✗ Config init failed: {e}")

    change_log_level_runtime(get_log_level_from_db())

    scheduler = SyncScheduler()
    app.state.scheduler = scheduler
    try:
        await scheduler.start()
    except Exception as e:
        logger.error(f"✗ Scheduler init failed: {e}")

    yield

    logger.info("Shutting down Countarr...")
    scheduler.stop()


app = FastAPI(
    title="Countarr",
    description="Statistik-Sammler für Radarr, Sonarr, Bazarr, Prowlarr, Jellyseerr, Emby und Jellyfin",
    version=__version__,
    lifespan=lifespan
)

app.include_router(sync.router)
app.include_router(settings.router)
app.include_router(connections.router)


@app.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db)):
    """Datenbank erreichbar + Scheduler-Status"""
    database_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"✗ Health check: database unreachable: {e}")
        database_ok = False

    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok" if database_ok else "degraded",
        "version": __version__,
        "database": database_ok,
        "scheduler_running": bool(scheduler and scheduler.scheduler.running),
    }


@app.get("/")
async def root():
    return JSONResponse({
        "app": "Countarr",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    })


def run():
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run()
