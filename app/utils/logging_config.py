"""
Logging setup and PHI masking for log lines.

Call configure_logging() once at import of the ASGI app. Containers get no
timestamp because the platform log collector stamps every line already.
"""
import logging
import os
import re
import sys
from typing import Any, Dict, Optional

RUNNING_IN_CONTAINER = any((
    os.environ.get("FLY_APP_NAME"),
    os.environ.get("KUBERNETES_SERVICE_HOST"),
    os.path.exists("/.dockerenv"),
))

LOG_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
LOCAL_PREFIX = "[%(asctime)s] "

QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest")

_EMAIL_RE = re.compile(r"^(.{1,2}).*(@.*)$")


def configure_logging(level: Optional[int] = None, force: bool = False) -> None:
    """Attach a stdout handler to the root logger (LOG_LEVEL env, default INFO)."""
    root = logging.getLogger()
    if root.handlers and not force:
        return

    if level is None:
        level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    fmt = LOG_FORMAT if RUNNING_IN_CONTAINER else LOCAL_PREFIX + LOG_FORMAT
    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=force,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_patient(patient: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Patient identifiers safe for a log line.

    Keeps name initials, the first two characters of the e-mail local part
    and the last four phone digits; the birth date is fully hidden.
    """
    if not patient:
        return {}

    def initial(value):
        return f"{value[0]}***" if value else None

    email = patient.get("email")
    phone = patient.get("phone")
    return {
        "first_name": initial(patient.get("first_name")),
        "last_name": initial(patient.get("last_name")),
        "email": _EMAIL_RE.sub(r"\1***\2", email) if email else None,
        "phone": f"***-***-{phone[-4:]}" if phone else None,
        "date_of_birth": "****-**-**" if patient.get("date_of_birth") else None,
    }
