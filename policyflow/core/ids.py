"""
Identifier and clock helpers.
"""

from datetime import datetime, timezone

import ulid


def new_id() -> str:
    """Generate a 26 character, time-sortable ULID string."""
    return ulid.new().str


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
