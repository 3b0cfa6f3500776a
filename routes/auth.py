# ─────────────────────────────────────────────────────────────────
# routes/auth.py - Admin Login
# ─────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends

from models import LoginOut, LoginRequest
from routes.deps import get_sessions
from sessions import SessionStore

router = APIRouter(
    prefix="/api",
    tags=["Auth"]
)


@router.post("/login", response_model=LoginOut)
def login(body: LoginRequest, sessions: SessionStore = Depends(get_sessions)):
    """
    Exchanges the admin username/password for a bearer token.
    Logging in again replaces the previous token.
    """

    session = sessions.login(body.username, body.password)
    return LoginOut(token=session.token, expires_at=session.expires_at)
