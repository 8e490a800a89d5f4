"""
Per-request context carried in contextvars.

The middleware binds request and trace ids; the tenant resolver and the
authentication dependency add tenant and user once they are known. The
logging processor merges whatever is set into each log event.
"""

import contextvars
from typing import Any

CONTEXT_FIELDS = ("request_id", "trace_id", "tenant_id", "tenant_slug", "user_id")

_context: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar(
    "storegate_request_context", default=None
)


def set_request_context(**values: str | None) -> None:
    """
    Add values to the current request context.

    None values are ignored, so later stages can bind their part without
    wiping what earlier stages set. Unknown keys are rejected.
    """
    unknown = set(values) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown request context fields: {sorted(unknown)}")

    # Copy so a context inherited by a child task is never mutated in place
    current = dict(_context.get() or {})
    current.update({key: value for key, value in values.items() if value})
    _context.set(current)


def get_request_context() -> dict[str, Any]:
    """Fields bound for the current request."""
    return dict(_context.get() or {})


def clear_request_context() -> None:
    _context.set(None)
