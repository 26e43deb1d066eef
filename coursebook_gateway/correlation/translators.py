"""
Outcome translators — map a worker's outcome code to an HTTP status and body.

One translator per initiating action. Each is a pure function of
(outcome_code, details); the registration translator additionally mints a
token on success. Unknown codes raise UnrecognizedOutcome.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from coursebook_gateway.auth.tokens import TokenService
from coursebook_gateway.core.exceptions import UnrecognizedOutcome
from coursebook_gateway.correlation.models import Outcome

OK = 200
CREATED = 201
ACCEPTED = 202
NO_CONTENT = 204
NOT_FOUND = 404
CONTINUE = 100
PROCESSING = 102
CONFLICT = 409
STORE_FAILED = 500

# Codes whose status and message are handed back to the caller unchanged
PASS_THROUGH_CODES = frozenset({CONTINUE, PROCESSING, CONFLICT, STORE_FAILED})

# Update/delete completions also report plain success and missing targets
ACKNOWLEDGED_CODES = frozenset({OK, ACCEPTED, NO_CONTENT, NOT_FOUND}) | PASS_THROUGH_CODES


class OutcomeTranslator(Protocol):
    def translate(self, outcome_code: int, details: Mapping[str, Any]) -> Outcome:
        ...


def _message(details: Mapping[str, Any]) -> str:
    message = details.get("message")
    return "" if message is None else str(message)


class RegistrationTranslator:
    """Registration: success mints a token for the new user; failures pass through."""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    def translate(self, outcome_code: int, details: Mapping[str, Any]) -> Outcome:
        if outcome_code == CREATED:
            username = details.get("username")
            if not isinstance(username, str) or not username:
                raise UnrecognizedOutcome(
                    "registration",
                    outcome_code,
                    "Unhandled registration outcome 201 without username",
                )
            return Outcome(CREATED, self._tokens.issue(username))
        if outcome_code in PASS_THROUGH_CODES:
            return Outcome(outcome_code, _message(details))
        raise UnrecognizedOutcome("registration", outcome_code)


class CreationTranslator:
    """Course/wish creation: known codes pass through with the worker's message."""

    def __init__(self, entity: str) -> None:
        self.entity = entity

    def translate(self, outcome_code: int, details: Mapping[str, Any]) -> Outcome:
        if outcome_code == CREATED or outcome_code in PASS_THROUGH_CODES:
            return Outcome(outcome_code, _message(details))
        raise UnrecognizedOutcome(f"{self.entity} creation", outcome_code)


class AcknowledgementTranslator:
    """
    Update/delete: the caller was already answered 202, so these completions
    only matter to whoever registered for them. Known codes pass through.
    """

    def __init__(self, entity: str, verb: str) -> None:
        self.entity = entity
        self.verb = verb

    def translate(self, outcome_code: int, details: Mapping[str, Any]) -> Outcome:
        if outcome_code in ACKNOWLEDGED_CODES:
            return Outcome(outcome_code, _message(details))
        raise UnrecognizedOutcome(f"{self.entity} {self.verb}", outcome_code)
