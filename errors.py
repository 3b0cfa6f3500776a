# ─────────────────────────────────────────────────────────────────
# errors.py - Domain Errors
#
# The core raises these instead of HTTPException so it can be used
# (and tested) without a request in flight. main.py installs one
# handler that turns any of them into {"error": "..."} with the
# status code carried on the class.
# ─────────────────────────────────────────────────────────────────


class PowerPulseError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(PowerPulseError):
    """Malformed id, hour/minute out of range, non-positive delay."""

    status_code = 400


class Conflict(PowerPulseError):
    status_code = 409


class NotFound(PowerPulseError):
    status_code = 404


class Unauthorized(PowerPulseError):
    """Bad device token or admin session. The message never says which part was wrong."""

    status_code = 401


class InvalidState(PowerPulseError):
    """A command or task operation refused by a domain guard."""

    status_code = 400
