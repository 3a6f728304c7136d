"""
spawner_mcp.transport

Session-aware HTTP transport: a Starlette app served by uvicorn.

Endpoints:
- POST   /mcp     MCP streamable-HTTP messages; the session id comes from the
                  `Mcp-Session-Id` header or the `sessionId` query parameter and is
                  echoed back in the `Mcp-Session-Id` response header. An initialize
                  request without a live session opens one.
- GET    /mcp     server-to-client event stream of a live session
- DELETE /mcp     explicit close of a session
- GET    /health  liveness, uptime and live session count

Protocol handling belongs to each session's MCP SDK transport; this module only
resolves sessions, serializes their requests and replays the body it peeked at.
The app lifespan runs the idle-session sweeper and closes all sessions on shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator

import uvicorn
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from mcp.types import INVALID_REQUEST, ErrorData, JSONRPCError, JSONRPCMessage, JSONRPCRequest
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from spawner_mcp.config import SERVER_NAME, SERVER_VERSION, get_logger
from spawner_mcp.sessions import SessionRegistry

SESSION_HEADER = "Mcp-Session-Id"
SESSION_QUERY_PARAM = "sessionId"
MCP_PATH = "/mcp"

logger = get_logger("transport")


def session_id_of(request: Request) -> str | None:
    return request.headers.get(SESSION_HEADER) or request.query_params.get(
        SESSION_QUERY_PARAM
    )


def opens_session(body: bytes) -> bool:
    """True when the body is a single MCP initialize request."""
    try:
        message = JSONRPCMessage.model_validate_json(body)
    except ValidationError:
        return False
    return isinstance(message.root, JSONRPCRequest) and message.root.method == "initialize"


def error_response(message: str, status_code: int, code: int = INVALID_REQUEST) -> Response:
    error = JSONRPCError(
        jsonrpc="2.0", id="server-error", error=ErrorData(code=code, message=message)
    )
    return Response(
        error.model_dump_json(by_alias=True, exclude_none=True),
        status_code=status_code,
        media_type="application/json",
    )


def _with_session_header(scope: Scope, session_id: str) -> Scope:
    # the SDK transport only reads the header; a query-param id is copied into it
    headers = [
        (name, value)
        for name, value in scope.get("headers", [])
        if name.lower() != MCP_SESSION_ID_HEADER.encode()
    ]
    headers.append((MCP_SESSION_ID_HEADER.encode(), session_id.encode()))
    return {**scope, "headers": headers}


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if sent:
            return await receive()
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return replay


class McpEndpoint:
    """ASGI endpoint routing /mcp requests onto per-session SDK transports."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = session_id_of(request)
        session = self.registry.touch(session_id)

        if request.method == "POST":
            body = await request.body()
            receive = _replay(body, receive)
            if session is None:
                if not opens_session(body):
                    response = (
                        error_response("Session not found", 404)
                        if session_id
                        else error_response("Bad Request: No valid session ID provided", 400)
                    )
                    await response(scope, receive, send)
                    return
                try:
                    session = await self.registry.open(session_id)
                except ValueError as exc:
                    await error_response(f"Bad Request: {exc}", 400)(scope, receive, send)
                    return
            async with session.lock:
                await session.transport.handle_request(
                    _with_session_header(scope, session.session_id), receive, send
                )
            session.last_active = self.registry.clock()
            return

        if session is None:
            await error_response("Session not found", 404)(scope, receive, send)
            return
        await session.transport.handle_request(
            _with_session_header(scope, session.session_id), receive, send
        )
        if request.method == "DELETE":
            await self.registry.close(session.session_id)


def create_app(registry: SessionRegistry, sweep_interval: float) -> Starlette:
    """
    function_purpose: Build the Starlette app bound to a session registry.
    """
    started_at = time.time()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(
            registry.run_sweeper(sweep_interval), name="SessionSweeper"
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await registry.close_all()
            logger.info("HTTP transport stopped")

    async def health(request: Request) -> Response:
        return JSONResponse(
            {
                "status": "ok",
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
                "uptime_seconds": round(time.time() - started_at, 1),
                "sessions": len(registry),
            }
        )

    return Starlette(
        routes=[
            Route(MCP_PATH, McpEndpoint(registry), methods=["GET", "POST", "DELETE"]),
            Route("/health", health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
                expose_headers=[SESSION_HEADER],
            )
        ],
        lifespan=lifespan,
    )


def serve(app: Starlette, host: str, port: int) -> None:
    logger.info("HTTP MCP endpoint: http://%s:%d%s", host, port, MCP_PATH)
    uvicorn.run(app, host=host, port=port)
