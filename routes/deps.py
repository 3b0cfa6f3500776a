# ─────────────────────────────────────────────────────────────────
# routes/deps.py - Shared FastAPI Dependencies
#
# The registry, scheduler and session store are built in main.py's
# lifespan and parked on app.state. Routes ask for them here instead
# of importing module-level globals.
# ─────────────────────────────────────────────────────────────────

from typing import Optional

from fastapi import Depends, Header, Request

from errors import Unauthorized
from models import Session
from registry import Registry
from scheduler import TaskScheduler
from sessions import SessionStore


def get_registry(request: Request) -> Registry:
    return request.app.state.registry


def get_scheduler(request: Request) -> TaskScheduler:
    return request.app.state.scheduler


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def require_admin(
    authorization: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_sessions),
) -> Session:
    """Accepts `Authorization: Bearer <token>` from POST /api/login."""

    if not authorization:
        raise Unauthorized("Not logged in")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise Unauthorized("Not logged in")
    return sessions.validate(token.strip())
