from __future__ import annotations

import ulid


def new_id() -> str:
    """Generate a stable, sortable identifier (ULID, 26 chars)."""
    return str(ulid.new())


def new_completion_id(prefix: str = "cmpl") -> str:
    """Response ids follow the OpenAI convention, e.g. chatcmpl-<id>."""
    return f"{prefix}-{new_id()}"
