"""Identifier generation helpers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Create a UUID4-based primary key for portal rows."""
    return str(uuid.uuid4())


def new_trace_id() -> str:
    """Create a compact trace identifier for job logs."""
    return uuid.uuid4().hex
