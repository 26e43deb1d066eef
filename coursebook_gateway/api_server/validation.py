"""
Request shape validation for users, courses and wishes.

Each validator returns the normalized fields or raises ValidationError with
the message sent back to the client.
"""

from __future__ import annotations

from typing import Any, Mapping

from coursebook_gateway.core.exceptions import ValidationError


def validate_credentials(body: Mapping[str, Any], purpose: str) -> dict[str, str]:
    """username + password, both required (purpose: Registration | Login)."""
    username = body.get("username")
    password = body.get("password")
    if not username or not password or not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError(f"{purpose} requires a username and password.")
    return {"username": username, "password": password}


def validate_course(body: Mapping[str, Any]) -> dict[str, Any]:
    """name, sources, description required; shortDescription and wish default to ""."""
    if not body.get("name"):
        raise ValidationError("Course name is missing.")
    if not body.get("sources"):
        raise ValidationError("Course has no sources.")
    if not body.get("description"):
        raise ValidationError("Course has no description.")
    return {
        "name": body["name"],
        "sources": body["sources"],
        "description": body["description"],
        "shortDescription": body.get("shortDescription") or "",
        "wish": body.get("wish") or "",
    }


def validate_wish(body: Mapping[str, Any]) -> dict[str, Any]:
    if not body.get("name") or not body.get("details"):
        raise ValidationError("A Wish requires a name and details")
    return {"name": body["name"], "details": body["details"]}


def parse_paging(page: str | None, per_page: str | None) -> tuple[int, int]:
    """page defaults to 0, perPage to 10; both must be non-negative integers."""
    try:
        page_value = int(page) if page not in (None, "") else 0
        per_page_value = int(per_page) if per_page not in (None, "") else 10
    except ValueError as e:
        raise ValidationError("page and perPage must be integers.") from e
    if page_value < 0 or per_page_value < 1:
        raise ValidationError("page must be >= 0 and perPage must be >= 1.")
    return page_value, per_page_value
