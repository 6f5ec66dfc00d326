from __future__ import annotations

from datetime import datetime
import re

# DNS-1123 label length; session names are also used as label values downstream.
MAX_NAME_LENGTH = 63
_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")


def generate_session_name(invoker_name: str, created_at: datetime) -> str:
    """Return ``<invoker name>-<unix seconds>`` as a valid object name.

    Calls within the same second for the same invoker produce the same name.
    """
    return valid_name_with_suffix(invoker_name, str(int(created_at.timestamp())))


def valid_name_with_suffix(name: str, suffix: str, max_length: int = MAX_NAME_LENGTH) -> str:
    clean_suffix = _sanitize(suffix)
    budget = max(max_length - len(clean_suffix) - 1, 0)
    base = _sanitize(name)[:budget].strip("-")
    if not base:
        return clean_suffix
    return f"{base}-{clean_suffix}"


def _sanitize(value: str) -> str:
    return _INVALID_NAME_CHARS.sub("-", value.strip().lower()).strip("-")
