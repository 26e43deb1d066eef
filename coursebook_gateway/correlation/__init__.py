"""
Correlation bridge: turns a fire-and-forget publish into a bounded-time
synchronous HTTP reply.

The registry holds suspended callers keyed by correlation id; the router
translates worker completions into HTTP outcomes and resolves them.
"""

from coursebook_gateway.correlation.models import ActionKind, Outcome
from coursebook_gateway.correlation.registry import PendingResponseRegistry
from coursebook_gateway.correlation.router import CompletionEvent, CompletionRouter

__all__ = [
    "ActionKind",
    "CompletionEvent",
    "CompletionRouter",
    "Outcome",
    "PendingResponseRegistry",
]
