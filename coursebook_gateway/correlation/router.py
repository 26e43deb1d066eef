"""
Completion router — dispatches worker completion events to outcome
translators and resolves the matching pending entry.

Completions arrive over POST /respond or the AMQP reply queue; both feed
CompletionRouter.on_completion. Whatever goes wrong while translating, the
pending entry is still released (with a 500 outcome).
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from coursebook_gateway.auth.tokens import TokenService
from coursebook_gateway.core.exceptions import UnrecognizedOutcome
from coursebook_gateway.correlation.models import ActionKind, Outcome
from coursebook_gateway.correlation.registry import PendingResponseRegistry
from coursebook_gateway.correlation.translators import (
    AcknowledgementTranslator,
    CreationTranslator,
    OutcomeTranslator,
    RegistrationTranslator,
)
from coursebook_gateway.gateway_logging import get_logger

UNEXPECTED_ACTION_MESSAGE = "Unexpected response action"
MALFORMED_COMPLETION_MESSAGE = "Malformed completion from worker"


class CompletionEvent(BaseModel):
    """
    Completion reported by a downstream worker.

    Accepts the canonical names (correlationId, actionKind, outcomeCode) and
    the legacy worker names (uuid, action, statusCode). Extra top-level keys
    such as username are kept and merged into details().
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    correlation_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("correlationId", "uuid", "correlation_id")
    )
    action_kind: str = Field(..., validation_alias=AliasChoices("actionKind", "action", "action_kind"))
    outcome_code: int = Field(..., validation_alias=AliasChoices("outcomeCode", "statusCode", "outcome_code"))
    payload: dict[str, Any] = Field(default_factory=dict)
    message: Any = None

    def details(self) -> dict[str, Any]:
        """payload, plus any extra top-level fields, plus message."""
        merged: dict[str, Any] = dict(self.payload)
        merged.update(self.model_extra or {})
        if self.message is not None:
            merged["message"] = self.message
        return merged


def default_translators(tokens: TokenService) -> dict[str, OutcomeTranslator]:
    return {
        ActionKind.REGISTRATION.value: RegistrationTranslator(tokens),
        ActionKind.COURSE_CREATE.value: CreationTranslator("course"),
        ActionKind.WISH_CREATE.value: CreationTranslator("wish"),
        ActionKind.COURSE_UPDATE.value: AcknowledgementTranslator("course", "update"),
        ActionKind.COURSE_DELETE.value: AcknowledgementTranslator("course", "deletion"),
        ActionKind.WISH_UPDATE.value: AcknowledgementTranslator("wish", "update"),
        ActionKind.WISH_DELETE.value: AcknowledgementTranslator("wish", "deletion"),
    }


class CompletionRouter:
    """Translate completion events and resolve the matching pending entries."""

    def __init__(
        self,
        registry: PendingResponseRegistry,
        translators: Mapping[str, OutcomeTranslator],
        *,
        logger: Any = None,
    ) -> None:
        self._registry = registry
        self._translators: dict[str, OutcomeTranslator] = dict(translators)
        self._logger = logger or get_logger(__name__)

    def register_translator(self, action: ActionKind | str, translator: OutcomeTranslator) -> None:
        key = action.value if isinstance(action, ActionKind) else action
        self._translators[key] = translator

    def translate(self, event: CompletionEvent) -> Outcome:
        translator = self._translators.get(event.action_kind)
        if translator is None:
            self._logger.warning(
                "completion_unrecognized_action",
                correlation_id=event.correlation_id,
                action=event.action_kind,
            )
            return Outcome(500, UNEXPECTED_ACTION_MESSAGE)
        try:
            return translator.translate(event.outcome_code, event.details())
        except UnrecognizedOutcome as e:
            self._logger.error(
                "completion_unrecognized_outcome",
                correlation_id=event.correlation_id,
                action=event.action_kind,
                outcome_code=event.outcome_code,
            )
            return Outcome(500, e.message)

    def on_completion(self, event: CompletionEvent) -> bool:
        """
        Translate and resolve. Returns True when a waiting caller received the outcome.

        Events for unknown, already resolved or expired ids are dropped.
        """
        if event.correlation_id not in self._registry:
            self._logger.info(
                "completion_dropped",
                correlation_id=event.correlation_id,
                action=event.action_kind,
                reason="not_pending",
            )
            return False
        outcome = self.translate(event)
        delivered = self._registry.resolve_once(event.correlation_id, outcome)
        if not delivered:
            self._logger.info(
                "completion_dropped",
                correlation_id=event.correlation_id,
                action=event.action_kind,
                reason="raced",
            )
        return delivered

    def on_malformed(self, correlation_id: str | None) -> bool:
        """Release a pending entry whose completion could not be parsed."""
        if not correlation_id:
            return False
        self._logger.error("completion_malformed", correlation_id=correlation_id)
        return self._registry.resolve_once(correlation_id, Outcome(500, MALFORMED_COMPLETION_MESSAGE))
