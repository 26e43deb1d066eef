"""
Command envelopes published to the broker.

Every envelope is a flat JSON object {action, correlationId?, ...fields}.
Each builder always emits the full field set for its action, so downstream
workers never see a missing optional field.
"""

from __future__ import annotations

from typing import Any

from coursebook_gateway.correlation.models import ActionKind


def _envelope(action: ActionKind, **fields: Any) -> dict[str, Any]:
    return {"action": action.value, **fields}


# --- Document store commands ---


def registration_command(correlation_id: str, username: str, password: str) -> dict[str, Any]:
    return _envelope(
        ActionKind.REGISTRATION,
        correlationId=correlation_id,
        username=username,
        password=password,
    )


def course_create_command(correlation_id: str, author: str, course: dict[str, Any]) -> dict[str, Any]:
    return _envelope(
        ActionKind.COURSE_CREATE,
        correlationId=correlation_id,
        author=author,
        name=course["name"],
        sources=course["sources"],
        description=course["description"],
        shortDescription=course["shortDescription"],
        wish=course["wish"],
    )


def course_update_command(course_id: str, author: str, course: dict[str, Any]) -> dict[str, Any]:
    return _envelope(
        ActionKind.COURSE_UPDATE,
        courseId=course_id,
        author=author,
        name=course["name"],
        sources=course["sources"],
        description=course["description"],
        shortDescription=course["shortDescription"],
    )


def course_delete_command(course_id: str, author: str) -> dict[str, Any]:
    return _envelope(ActionKind.COURSE_DELETE, courseId=course_id, author=author)


def wish_create_command(correlation_id: str, wisher: str, wish: dict[str, Any]) -> dict[str, Any]:
    return _envelope(
        ActionKind.WISH_CREATE,
        correlationId=correlation_id,
        wisher=wisher,
        name=wish["name"],
        details=wish["details"],
    )


def wish_update_command(wish_id: str, wisher: str, wish: dict[str, Any]) -> dict[str, Any]:
    return _envelope(
        ActionKind.WISH_UPDATE,
        wishId=wish_id,
        wisher=wisher,
        name=wish["name"],
        details=wish["details"],
    )


def wish_delete_command(wish_id: str, wisher: str) -> dict[str, Any]:
    return _envelope(ActionKind.WISH_DELETE, wishId=wish_id, wisher=wisher)


# --- Counters (stats) messages ---


def stat_by_ip(action: ActionKind, ip: str, username: str | None = None) -> dict[str, Any]:
    if username is None:
        return _envelope(action, ip=ip)
    return _envelope(action, ip=ip, username=username)


def stat_by_user(action: ActionKind, username: str) -> dict[str, Any]:
    return _envelope(action, username=username)


def stat_by_id(action: ActionKind, entity_id: str) -> dict[str, Any]:
    return _envelope(action, id=entity_id)
