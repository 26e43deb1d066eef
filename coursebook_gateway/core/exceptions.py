"""
Application-level exceptions.

Every failure the gateway can report maps to one class here; the API layer
turns them into HTTP status codes and messages.
"""

from __future__ import annotations

from enum import Enum


class GatewayError(Exception):
    """Base class for all gateway errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(GatewayError):
    """Invalid configuration value; raised at startup."""


class ValidationError(GatewayError):
    """A required request field is missing or malformed."""

    status_code = 400


class AuthFailure(str, Enum):
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MALFORMED_TOKEN = "malformed_token"
    ISSUER_MISMATCH = "issuer_mismatch"


class AuthError(GatewayError):
    """Token verification failed. No subject is ever attached."""

    status_code = 401

    def __init__(self, reason: AuthFailure, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class PublishFailure(str, Enum):
    CONNECT_FAILED = "connect_failed"
    CHANNEL_FAILED = "channel_failed"


class PublishError(GatewayError):
    """The broker could not accept a command message."""

    status_code = 503

    def __init__(self, kind: PublishFailure, routing_key: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.routing_key = routing_key


class DuplicateCorrelationId(GatewayError):
    """A correlation id was registered while an entry for it is still pending."""

    def __init__(self, correlation_id: str) -> None:
        super().__init__(f"correlation id {correlation_id} is already pending")
        self.correlation_id = correlation_id


class UnrecognizedOutcome(GatewayError):
    """A completion carried an outcome code its translator does not understand."""

    def __init__(self, action: str, outcome_code: int, message: str | None = None) -> None:
        super().__init__(message or f"Unhandled {action} outcome {outcome_code}")
        self.action = action
        self.outcome_code = outcome_code


class DownstreamError(GatewayError):
    """A plain request/response call to the document store or counters service failed."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(message)
        self.service = service
