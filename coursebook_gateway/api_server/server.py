"""
FastAPI server — the request gateway.

Mutating endpoints follow one pipeline: validate the body, verify the token,
publish a best-effort stat message, then either register the caller on the
pending response registry, publish the primary command and suspend
(registration, course/wish creation), or publish and answer 202 right away
(update, delete).

Completions come back through POST /respond or the AMQP reply queue and are
routed by CompletionRouter.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError as PydanticValidationError

from coursebook_gateway import __version__
from coursebook_gateway.api_server.dependencies import (
    GatewayContext,
    authenticate,
    client_ip,
    get_context,
    read_body,
)
from coursebook_gateway.api_server.middleware import RequestLoggingMiddleware
from coursebook_gateway.api_server.stats import router as stats_router
from coursebook_gateway.api_server.validation import (
    parse_paging,
    validate_course,
    validate_credentials,
    validate_wish,
)
from coursebook_gateway.auth.tokens import TokenService
from coursebook_gateway.clients.counters import CountersClient
from coursebook_gateway.clients.document_store import DocumentStoreClient, StoreReply
from coursebook_gateway.config.settings import GatewaySettings, get_settings
from coursebook_gateway.core.exceptions import (
    AuthError,
    DownstreamError,
    PublishError,
    ValidationError,
)
from coursebook_gateway.correlation.models import ActionKind, Outcome, new_correlation_id
from coursebook_gateway.correlation.registry import PendingResponseRegistry
from coursebook_gateway.correlation.router import CompletionEvent, CompletionRouter, default_translators
from coursebook_gateway.messaging import envelopes
from coursebook_gateway.messaging.consumer import CompletionConsumer, recover_correlation_id
from coursebook_gateway.messaging.publisher import OutboundPublisher
from coursebook_gateway.gateway_logging import get_logger

# Status returned when the client went away before its outcome arrived
CLIENT_CLOSED_REQUEST = 499


# -----------------------------------------------------------------------------
# Context construction
# -----------------------------------------------------------------------------


def build_context(
    settings: GatewaySettings,
    *,
    publisher: OutboundPublisher | None = None,
    document_store: DocumentStoreClient | None = None,
    counters: CountersClient | None = None,
    consumer: CompletionConsumer | None = None,
    logger: Any = None,
) -> GatewayContext:
    """Wire every collaborator from settings; any of them can be injected instead."""
    logger = logger or get_logger("coursebook_gateway")
    tokens = TokenService(
        settings.jwt_secret,
        settings.jwt_issuer,
        timedelta(hours=settings.jwt_validity_hours),
    )
    registry = PendingResponseRegistry(
        settings.pending_timeouts(),
        settings.pending_timeout_sec,
        logger=logger.bind(component="registry"),
    )
    router = CompletionRouter(
        registry,
        default_translators(tokens),
        logger=logger.bind(component="completion_router"),
    )
    if publisher is None:
        publisher = OutboundPublisher(
            settings.rabbitmq_url,
            settings.exchange_name,
            settings.exchange_type,
            logger=logger.bind(component="publisher"),
        )
    if document_store is None:
        document_store = DocumentStoreClient(
            settings.document_store_url,
            settings.downstream_timeout_sec,
            logger=logger.bind(component="document_store"),
        )
    if counters is None:
        counters = CountersClient(
            settings.counters_url,
            settings.downstream_timeout_sec,
            logger=logger.bind(component="counters"),
        )
    if consumer is None and settings.completion_queue:
        consumer = CompletionConsumer(
            settings.rabbitmq_url,
            router,
            settings.completion_queue,
            exchange_name=settings.exchange_name,
            exchange_type=settings.exchange_type,
            routing_key=settings.completion_routing_key,
            logger=logger.bind(component="consumer"),
        )
    return GatewayContext(
        settings=settings,
        tokens=tokens,
        publisher=publisher,
        registry=registry,
        router=router,
        document_store=document_store,
        counters=counters,
        logger=logger,
        consumer=consumer,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the completion consumer (when configured); release everything on shutdown."""
    ctx: GatewayContext = app.state.context
    if ctx.consumer is not None:
        await ctx.consumer.start()
    ctx.logger.info(
        "gateway_started",
        exchange=ctx.settings.exchange_name,
        completion_queue=ctx.settings.completion_queue or None,
    )

    yield

    if ctx.consumer is not None:
        await ctx.consumer.stop()
    released = ctx.registry.close()
    await ctx.publisher.close()
    await ctx.document_store.aclose()
    await ctx.counters.aclose()
    ctx.logger.info("gateway_stopped", released_pending=released)


# -----------------------------------------------------------------------------
# Response helpers
# -----------------------------------------------------------------------------


def outcome_response(outcome: Outcome) -> Response:
    # 1xx cannot be a final HTTP status; "still processing" is reported as 202
    status_code = outcome.status_code if outcome.status_code >= 200 else 202
    body = outcome.body
    if isinstance(body, (dict, list)):
        return JSONResponse(status_code=status_code, content=body)
    return PlainTextResponse("" if body is None else str(body), status_code=status_code)


def store_response(reply: StoreReply) -> Response:
    return outcome_response(Outcome(reply.status_code, reply.message))


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def suspend_until_resolved(
    request: Request,
    ctx: GatewayContext,
    correlation_id: str,
    action: ActionKind,
    sink: asyncio.Future,
) -> Response:
    """
    Wait for the registered sink to get its outcome, for its expiry or for the
    client going away, whichever comes first.
    """
    disconnect = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({sink, disconnect}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        ctx.registry.cancel(correlation_id)
        raise
    finally:
        disconnect.cancel()
    if sink in done and not sink.cancelled():
        return outcome_response(sink.result())
    ctx.registry.cancel(correlation_id)
    ctx.logger.info("request_abandoned", correlation_id=correlation_id, action=action.value)
    return Response(status_code=CLIENT_CLOSED_REQUEST)


async def publish_and_suspend(
    request: Request,
    ctx: GatewayContext,
    action: ActionKind,
    correlation_id: str,
    command: dict[str, Any],
) -> Response:
    """
    Register the entry, then publish the primary command. A failed publish
    releases the entry before the PublishError propagates.
    """
    sink = ctx.registry.expect(correlation_id, action)
    try:
        await ctx.publisher.publish(ctx.settings.document_routing_key, command, correlation_id=correlation_id)
    except (PublishError, asyncio.CancelledError):
        ctx.registry.cancel(correlation_id)
        raise
    return await suspend_until_resolved(request, ctx, correlation_id, action, sink)


async def publish_and_queue(ctx: GatewayContext, command: dict[str, Any], message: str) -> Response:
    await ctx.publisher.publish(ctx.settings.document_routing_key, command)
    return PlainTextResponse(message, status_code=202)


async def publish_stat(ctx: GatewayContext, message: dict[str, Any]) -> None:
    await ctx.publisher.publish_best_effort(ctx.settings.stats_routing_key, message)


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(settings: GatewaySettings | None = None, *, context: GatewayContext | None = None) -> FastAPI:
    """Build the gateway app. Pass a prepared context to inject collaborators (tests)."""
    if context is None:
        context = build_context(settings or get_settings())
    settings = context.settings

    app = FastAPI(
        title="Coursebook API Gateway",
        description="Authenticates requests and bridges them to the broker-driven workers.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )
    app.add_middleware(RequestLoggingMiddleware, logger=context.logger.bind(component="http"))

    _register_exception_handlers(app)
    _register_routes(app)
    app.include_router(stats_router)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> Response:
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> Response:
        request.app.state.context.logger.warning(
            "auth_rejected", path=request.url.path, reason=exc.reason.value
        )
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(PublishError)
    async def publish_error_handler(request: Request, exc: PublishError) -> Response:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(DownstreamError)
    async def downstream_error_handler(request: Request, exc: DownstreamError) -> Response:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    # --- Users ---

    @app.put("/register")
    async def register(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        """Publish REGISTRATION and wait for the worker; 201 carries a fresh token."""
        creds = validate_credentials(await read_body(request), "Registration")
        ctx.logger.info("register_requested", username=creds["username"])
        await publish_stat(ctx, envelopes.stat_by_ip(ActionKind.REGISTRATION, client_ip(request)))

        correlation_id = new_correlation_id()
        command = envelopes.registration_command(correlation_id, creds["username"], creds["password"])
        return await publish_and_suspend(request, ctx, ActionKind.REGISTRATION, correlation_id, command)

    @app.post("/login")
    async def login(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        """Synchronous pass-through to the document store's login check."""
        creds = validate_credentials(await read_body(request), "Login")
        await publish_stat(
            ctx, envelopes.stat_by_ip(ActionKind.LOGIN, client_ip(request), creds["username"])
        )
        reply = await ctx.document_store.login(creds["username"], creds["password"])
        if reply.authorized:
            return PlainTextResponse(ctx.tokens.issue(creds["username"]), status_code=reply.status_code)
        return store_response(reply)

    # --- Courses ---

    @app.put("/course")
    async def create_course(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        course = validate_course(await read_body(request))
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_user(ActionKind.COURSE_CREATE, username))

        correlation_id = new_correlation_id()
        command = envelopes.course_create_command(correlation_id, username, course)
        return await publish_and_suspend(request, ctx, ActionKind.COURSE_CREATE, correlation_id, command)

    @app.get("/course")
    async def list_courses(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        page, per_page = parse_paging(request.query_params.get("page"), request.query_params.get("perPage"))
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.COURSE_FETCH, "ALL"))
        reply = await ctx.document_store.list_entities(
            "course", page, per_page, request.query_params.get("search")
        )
        return store_response(reply)

    @app.get("/course/{course_id}")
    async def get_course(course_id: str, ctx: GatewayContext = Depends(get_context)) -> Response:
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.COURSE_FETCH, course_id))
        return store_response(await ctx.document_store.get_entity("course", course_id))

    @app.post("/course/{course_id}")
    async def update_course(
        course_id: str, request: Request, ctx: GatewayContext = Depends(get_context)
    ) -> Response:
        course = validate_course(await read_body(request))
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.COURSE_UPDATE, course_id))
        command = envelopes.course_update_command(course_id, username, course)
        return await publish_and_queue(ctx, command, "Course update has been queued for processing")

    @app.delete("/course/{course_id}")
    async def delete_course(
        course_id: str, request: Request, ctx: GatewayContext = Depends(get_context)
    ) -> Response:
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_user(ActionKind.COURSE_DELETE, username))
        command = envelopes.course_delete_command(course_id, username)
        return await publish_and_queue(ctx, command, "Course has been queued for deletion.")

    # --- Wishes ---

    @app.put("/wish")
    async def create_wish(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        wish = validate_wish(await read_body(request))
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_user(ActionKind.WISH_CREATE, username))

        correlation_id = new_correlation_id()
        command = envelopes.wish_create_command(correlation_id, username, wish)
        return await publish_and_suspend(request, ctx, ActionKind.WISH_CREATE, correlation_id, command)

    @app.get("/wish")
    async def list_wishes(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        page, per_page = parse_paging(request.query_params.get("page"), request.query_params.get("perPage"))
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.WISH_FETCH, "ALL"))
        reply = await ctx.document_store.list_entities(
            "wish", page, per_page, request.query_params.get("search")
        )
        return store_response(reply)

    @app.get("/wish/{wish_id}")
    async def get_wish(wish_id: str, ctx: GatewayContext = Depends(get_context)) -> Response:
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.WISH_FETCH, wish_id))
        return store_response(await ctx.document_store.get_entity("wish", wish_id))

    @app.post("/wish/{wish_id}")
    async def update_wish(
        wish_id: str, request: Request, ctx: GatewayContext = Depends(get_context)
    ) -> Response:
        wish = validate_wish(await read_body(request))
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_id(ActionKind.WISH_UPDATE, wish_id))
        command = envelopes.wish_update_command(wish_id, username, wish)
        return await publish_and_queue(ctx, command, "Wish update has been queued for processing.")

    @app.delete("/wish/{wish_id}")
    async def delete_wish(
        wish_id: str, request: Request, ctx: GatewayContext = Depends(get_context)
    ) -> Response:
        username = authenticate(request, ctx)
        await publish_stat(ctx, envelopes.stat_by_user(ActionKind.WISH_DELETE, username))
        command = envelopes.wish_delete_command(wish_id, username)
        return await publish_and_queue(ctx, command, "Wish has been queued for deletion.")

    # --- Completions ---

    @app.post("/respond")
    async def respond(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
        """
        Completion callback from the workers. Always 200 for a well-formed
        completion, whether or not a caller was still waiting for it.
        """
        raw = await read_body(request)
        try:
            event = CompletionEvent.model_validate(raw)
        except PydanticValidationError:
            ctx.router.on_malformed(recover_correlation_id(raw))
            return PlainTextResponse("Malformed completion", status_code=400)
        delivered = ctx.router.on_completion(event)
        ctx.logger.info("respond_handled", correlation_id=event.correlation_id, delivered=delivered)
        return Response(status_code=200)
