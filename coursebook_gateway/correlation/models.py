"""Value types shared by the registry, the router and the API layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4


class ActionKind(str, Enum):
    """Command actions carried in envelopes and completion events."""

    REGISTRATION = "REGISTRATION"
    LOGIN = "LOGIN"
    COURSE_CREATE = "COURSE_CREATE"
    COURSE_FETCH = "COURSE_FETCH"
    COURSE_UPDATE = "COURSE_UPDATE"
    COURSE_DELETE = "COURSE_DELETE"
    WISH_CREATE = "WISH_CREATE"
    WISH_FETCH = "WISH_FETCH"
    WISH_UPDATE = "WISH_UPDATE"
    WISH_DELETE = "WISH_DELETE"


@dataclass(frozen=True)
class Outcome:
    """Terminal HTTP status and body delivered to a suspended caller."""

    status_code: int
    body: Any = ""


TIMEOUT_MESSAGE = "Request is still being processed."
SHUTDOWN_MESSAGE = "Gateway is shutting down."


def timeout_outcome() -> Outcome:
    # 202: the worker may still finish the command after the caller is answered
    return Outcome(202, TIMEOUT_MESSAGE)


def shutdown_outcome() -> Outcome:
    return Outcome(503, SHUTDOWN_MESSAGE)


def new_correlation_id() -> str:
    """128-bit random id, hex encoded."""
    return uuid4().hex
