"""ASGI application serving Docker Hub logos as `/<namespace>/<repository>.png`"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from hubicons.config import CacheControlConfig
from hubicons.model import (
    ImageIdentifier,
    InternalFault,
    InvalidIdentifierError,
    LogoOutcome,
    OutcomeStatus,
)
from hubicons.service import LogoService
from hubicons.store import CacheStore

log = structlog.get_logger()


def message_response(message: str, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"message": message}, status_code=status_code, headers=headers)


def method_not_allowed() -> JSONResponse:
    return message_response("method not allowed", 405, headers={"Allow": "GET"})


def build_response(outcome: LogoOutcome, cache_control: CacheControlConfig) -> Response:
    if outcome.status == OutcomeStatus.FOUND:
        return Response(
            outcome.content,
            media_type=outcome.content_type,
            headers={"Cache-Control": cache_control.official if outcome.official else cache_control.cached},
        )
    if outcome.status == OutcomeStatus.ABSENT:
        if outcome.cached:
            return Response(status_code=404)
        return message_response(outcome.message or "Not found", 404)
    if outcome.status == OutcomeStatus.TIMEOUT:
        return message_response(outcome.message or "timed out fetching logo", 504)
    return message_response(outcome.message or "failed to fetch logo", 502)


class LogoServer:
    """Owns the cache store and logo service shared by all requests"""

    def __init__(self, service: LogoService, cache_control: CacheControlConfig) -> None:
        self.service: LogoService = service
        self.store: CacheStore = service.store
        self.cache_control: CacheControlConfig = cache_control
        self.log: Any = structlog.get_logger().bind(component="server")

    @asynccontextmanager
    async def lifespan(self, _app: Starlette) -> AsyncIterator[None]:
        await self.store.initialize()
        try:
            yield
        finally:
            await self.store.close()

    async def handle_health(self, request: Request) -> Response:
        if request.method != "GET":
            return method_not_allowed()
        if not await self.store.ping():
            return message_response("cache store did not answer", 500)
        return JSONResponse({"ok": True})

    async def handle_logo(self, request: Request) -> Response:
        if request.method != "GET":
            return method_not_allowed()
        try:
            identifier: ImageIdentifier | None = ImageIdentifier.from_path(request.url.path)
        except InvalidIdentifierError as e:
            self.log.debug("Rejected image identifier: %s", e)
            return message_response("the image is not a valid docker hub image", 400)
        if identifier is None:
            return message_response("page not found", 404)

        outcome: LogoOutcome = await self.service.logo(identifier)
        return build_response(outcome, self.cache_control)

    async def handle_internal_fault(self, request: Request, exc: Exception) -> Response:
        self.log.error("Internal fault handling %s", request.url.path, exc_info=exc)
        return message_response(str(exc) or "internal error", 500)

    async def handle_method_not_allowed(self, _request: Request, _exc: HTTPException) -> Response:
        return method_not_allowed()


def create_app(service: LogoService, cache_control: CacheControlConfig) -> Starlette:
    server = LogoServer(service, cache_control)
    # routes also accept HEAD, the handlers reject it themselves
    routes = [
        Route("/health", server.handle_health, methods=["GET"]),
        Route("/{path:path}", server.handle_logo, methods=["GET"]),
    ]
    return Starlette(
        routes=routes,
        lifespan=server.lifespan,
        exception_handlers={
            405: server.handle_method_not_allowed,
            InternalFault: server.handle_internal_fault,
        },
    )
