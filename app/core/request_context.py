"""Per-request values stamped onto every log line.

The observability middleware binds the request id and the client address,
the admin session adds the user, and the coupon router adds the code being
checked so a run of rejected guesses can be traced back to one client.
"""

from __future__ import annotations

from contextvars import ContextVar

CONTEXT_FIELDS = ("request_id", "client_ip", "user_id", "coupon_code")

_CONTEXT: dict[str, ContextVar[str | None]] = {
    field: ContextVar(field, default=None) for field in CONTEXT_FIELDS
}


def set_request_context(**values: object) -> None:
    """Bind the given fields for the current request; ``None`` leaves a field as is."""
    for field, value in values.items():
        if field not in _CONTEXT:
            raise TypeError(f"Unknown request context field: {field}")
        if value is not None:
            _CONTEXT[field].set(str(value))


def current_request_context() -> dict[str, str | None]:
    return {field: var.get() for field, var in _CONTEXT.items()}


def clear_request_context() -> None:
    for var in _CONTEXT.values():
        var.set(None)
