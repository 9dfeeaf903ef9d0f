"""Meeting identifiers, passcodes and room links."""

from __future__ import annotations

import re
import secrets
from datetime import datetime
from uuid import UUID

MEETING_ID_PATTERN = re.compile(r"^MID-[A-F0-9]{16}$")
PASSCODE_PATTERN = re.compile(r"^\d{6}$")


def generate_meeting_id() -> str:
    """``MID-`` followed by 16 uppercase hex characters."""
    return f"MID-{secrets.token_hex(8).upper()}"


def generate_passcode() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def is_valid_meeting_id(value: str) -> bool:
    return bool(MEETING_ID_PATTERN.fullmatch(value or ""))


def is_valid_passcode(value: str) -> bool:
    return bool(PASSCODE_PATTERN.fullmatch(value or ""))


def passcode_matches(expected: str, provided: str | None) -> bool:
    if not provided:
        return False
    return secrets.compare_digest(expected.encode(), provided.encode())


def meeting_url(base_url: str, meeting_id: str, passcode: str) -> str:
    return f"{base_url.rstrip('/')}/video-room/{meeting_id}?passcode={passcode}"


def session_id(meeting_id: str, user_id: UUID, joined_at: datetime) -> str:
    return f"{meeting_id}-{user_id}-{int(joined_at.timestamp() * 1000)}"
