"""
FastAPI router: GET /stats/... — authenticated read-through to the counters service.

Login and registration stats are keyed by the caller's IP; course/wish stats
by username (create, delete) or entity id (fetch, update).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from coursebook_gateway.api_server.dependencies import (
    GatewayContext,
    client_ip,
    get_context,
    require_subject,
)
from coursebook_gateway.correlation.models import ActionKind

router = APIRouter(prefix="/stats", tags=["stats"])

ALL = "ALL"


async def _counter_response(
    ctx: GatewayContext,
    stat_type: ActionKind,
    param: str,
    *segments: str,
) -> Response:
    ctx.logger.info("stats_fetch", stat_type=stat_type.value, param=param)
    reply = await ctx.counters.counter(*segments)
    if not reply.found:
        return JSONResponse(
            status_code=404,
            content={"message": f"there are no {stat_type.value} stats for: {param}"},
        )
    return JSONResponse(status_code=200, content={"count": reply.value})


@router.get("/login")
async def login_stats(
    request: Request,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    ip = client_ip(request)
    ctx.logger.info("stats_fetch", stat_type=ActionKind.LOGIN.value, param=ip)
    reply = await ctx.counters.login_attempts(ip)
    if not reply.found:
        return PlainTextResponse(f"there are no login data for this ip: {ip}", status_code=404)
    return JSONResponse(status_code=200, content={"attempts": reply.value})


@router.get("/registration")
async def registration_stats(
    request: Request,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    ip = client_ip(request)
    return await _counter_response(ctx, ActionKind.REGISTRATION, ip, "registration", ip)


# --- Course ---


@router.get("/course/create/{username}")
async def course_create_stats(
    username: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.COURSE_CREATE, username, "course", "create", username)


@router.get("/course/fetch")
async def course_fetch_all_stats(
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.COURSE_FETCH, ALL, "course", "fetch", ALL)


@router.get("/course/fetch/{course_id}")
async def course_fetch_stats(
    course_id: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.COURSE_FETCH, course_id, "course", "fetch", course_id)


@router.get("/course/update/{course_id}")
async def course_update_stats(
    course_id: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.COURSE_UPDATE, course_id, "course", "update", course_id)


@router.get("/course/delete/{username}")
async def course_delete_stats(
    username: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.COURSE_DELETE, username, "course", "delete", username)


# --- Wish ---


@router.get("/wish/create/{username}")
async def wish_create_stats(
    username: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.WISH_CREATE, username, "wish", "create", username)


@router.get("/wish/fetch")
async def wish_fetch_all_stats(
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.WISH_FETCH, ALL, "wish", "fetch", ALL)


@router.get("/wish/fetch/{wish_id}")
async def wish_fetch_stats(
    wish_id: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.WISH_FETCH, wish_id, "wish", "fetch", wish_id)


@router.get("/wish/update/{wish_id}")
async def wish_update_stats(
    wish_id: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.WISH_UPDATE, wish_id, "wish", "update", wish_id)


@router.get("/wish/delete/{username}")
async def wish_delete_stats(
    username: str,
    _: str = Depends(require_subject),
    ctx: GatewayContext = Depends(get_context),
) -> Response:
    return await _counter_response(ctx, ActionKind.WISH_DELETE, username, "wish", "delete", username)
