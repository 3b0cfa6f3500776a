# ─────────────────────────────────────────────────────────────────
# main.py - Application Entry Point
#
# Startup (lifespan):
#   1. load devices.json into a Registry
#   2. load sessions.json
#   3. re-arm the timers of every active scheduled task
# Shutdown:
#   stop every timer, then write one last snapshot
#
# Run with:  python main.py   or   uvicorn main:app --port 1001
# ─────────────────────────────────────────────────────────────────

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from errors import PowerPulseError
from logging_config import setup_logging
from registry import Registry
from routes import auth, devices, tasks
from scheduler import TaskScheduler
from sessions import SessionStore

logger = logging.getLogger("main")

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        registry = Registry.open(settings)
        scheduler = TaskScheduler(registry)

        app.state.settings = settings
        app.state.registry = registry
        app.state.scheduler = scheduler
        app.state.sessions = SessionStore(settings)

        await scheduler.restore_all()
        logger.info(f"Power Pulse started with {len(registry.devices)} device(s)")

        yield

        await scheduler.stop_all()
        await registry.close()
        logger.info("Power Pulse stopped, snapshot written")

    app = FastAPI(
        title="Power Pulse",
        description="Heartbeat registry and scheduled shutdown / wake-on-LAN for remote machines",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.exception_handler(PowerPulseError)
    async def domain_error(request: Request, exc: PowerPulseError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/")
    def root():
        return {
            "message": "Power Pulse is running",
            "version": VERSION,
            "docs": "/docs"
        }

    app.include_router(auth.router)
    app.include_router(devices.device_router)
    app.include_router(devices.admin_router)
    app.include_router(tasks.router)

    return app


settings = get_settings()
setup_logging(settings.log_verbose)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
