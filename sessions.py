# ─────────────────────────────────────────────────────────────────
# sessions.py - Admin Login Sessions
#
# A plain bearer-token map with expiry. One live session per
# username: logging in again replaces the old token. Sessions are
# saved to sessions.json so a restart does not log the admin out.
# ─────────────────────────────────────────────────────────────────

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from config import Settings
from database import JsonStore
from errors import Unauthorized
from models import Session, utcnow

logger = logging.getLogger("sessions")


class SessionStore:
    def __init__(self, settings: Settings, store: Optional[JsonStore] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.store = store if store is not None else JsonStore(settings.sessions_file)
        self.clock = clock
        self.sessions: Dict[str, Session] = {
            username: Session.model_validate(record)
            for username, record in self.store.load().items()
        }

    def _credentials_match(self, username: str, password: str) -> bool:
        expected_user = self.settings.admin_username
        expected_pass = self.settings.admin_password
        if not expected_user or not expected_pass:
            return False
        user_ok = secrets.compare_digest(username.encode(), expected_user.encode())
        pass_ok = secrets.compare_digest(password.encode(), expected_pass.encode())
        return user_ok and pass_ok

    def login(self, username: str, password: str) -> Session:
        if not self._credentials_match(username, password):
            raise Unauthorized("Invalid username or password")

        session = Session(
            username=username,
            token=secrets.token_hex(32),
            expires_at=self.clock() + timedelta(seconds=self.settings.session_ttl),
        )
        self.sessions[username] = session
        self._save()

        logger.info(f"Admin '{username}' logged in")
        return session

    def validate(self, token: Optional[str]) -> Session:
        if not token:
            raise Unauthorized("Not logged in")

        now = self.clock()
        for session in self.sessions.values():
            if secrets.compare_digest(session.token.encode(), token.encode()) and session.expires_at > now:
                return session
        raise Unauthorized("Session expired")

    def _save(self) -> None:
        data = {
            username: session.model_dump(mode="json", by_alias=True)
            for username, session in self.sessions.items()
        }
        try:
            self.store.save(data)
        except OSError:
            logger.exception(f"Failed to write sessions to {self.store.path}")
