# ─────────────────────────────────────────────────────────────────
# logging_config.py - Logging Setup
#
# One basicConfig call for the whole process. Every module then
# asks for its own named logger, so each line says where it came
# from:
#   2026-03-01 10:34:22 - INFO - [heartbeat] - Heartbeat: 'esp-1'
# ─────────────────────────────────────────────────────────────────

import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """
    Configure the root logger.

    verbose=True shows the INFO trail (registrations, heartbeats,
    commands, task triggers). Otherwise only warnings and errors,
    which still includes failed snapshot writes.
    """

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
