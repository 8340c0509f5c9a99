"""
Observability utilities: request-scoped context for structured logging.

Context set here is merged into every structlog event emitted while the
request (or management command) is being processed.
"""

import contextvars
from typing import Any, Dict

# Context variables for request-scoped data
_request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "request_context", default={}
)


def set_request_context(
    request_id: str = "",
    actor: str = "",
    path: str = "",
    method: str = "",
    **extra,
) -> None:
    """
    Set request context for the current context.

    This context will be automatically included in all log messages
    within the same request/command.
    """
    context = {
        "request_id": request_id,
        "actor": actor,
        "path": path,
        "method": method,
        **extra,
    }
    # Filter out empty values
    context = {k: v for k, v in context.items() if v}
    _request_context.set(context)


def get_request_context() -> Dict[str, Any]:
    """Get the current request context."""
    return _request_context.get()


def clear_request_context() -> None:
    """Clear the request context."""
    _request_context.set({})


def bind_context(**kwargs) -> None:
    """Add additional context to the current request context."""
    context = _request_context.get().copy()
    context.update(kwargs)
    _request_context.set(context)
