import hashlib
import re
import secrets
import uuid
from datetime import datetime, timedelta, UTC
from typing import Optional

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9]")


def make_id(prefix: str) -> str:
    """Generate a unique ID with a given prefix."""
    return f"{prefix}_{uuid.uuid4()}"


def time_now() -> str:
    """Return the current time in ISO format (UTC, no microseconds)."""
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def time_after(minutes: int) -> str:
    """Return the ISO timestamp ``minutes`` from now."""
    return (datetime.now(UTC) + timedelta(minutes=minutes)).replace(microsecond=0).isoformat()


def is_expired(timestamp: Optional[str]) -> bool:
    """True when an ISO timestamp is missing or already in the past."""
    if not timestamp:
        return True
    return datetime.fromisoformat(timestamp) <= datetime.now(UTC)


def age_minutes(timestamp: str) -> float:
    return (datetime.now(UTC) - datetime.fromisoformat(timestamp)).total_seconds() / 60


def hash_password(password: str) -> str:
    """Hash password using SHA-256."""
    return hashlib.sha256(password.encode()).hexdigest()


def new_reset_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def sanitize_filename(title: str) -> str:
    """Replace every character outside [A-Za-z0-9] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", title)


def format_date(timestamp: str) -> str:
    """Human readable date for exported documents, e.g. 'March 3, 2024, 09:15 AM'."""
    try:
        value = datetime.fromisoformat(timestamp)
    except (TypeError, ValueError):
        return str(timestamp)
    return f"{value:%B} {value.day}, {value:%Y, %I:%M %p}"
