"""
spawner_mcp.sessions

Per-client sessions for the HTTP transport.

Lifecycle of a session id:

    absent --initialize--> active --each request--> active
    active --idle sweep--> reclaimed          (removed from the live map)
    active --DELETE /mcp--> closed            (removed from the live map)

Terminal states are final: an initialize that reuses a reclaimed or closed id gets a
brand new session. Each session owns one MCP SDK StreamableHTTPServerTransport, with
the shared low-level server running over it in its own task, and an asyncio.Lock; the
HTTP endpoint holds the lock for the whole request so one session's requests are
processed one at a time, in arrival order.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from mcp.server.streamable_http import StreamableHTTPServerTransport

from spawner_mcp.config import get_logger

logger = get_logger("sessions")


class SessionState(StrEnum):
    ACTIVE = "active"
    RECLAIMED = "reclaimed"
    CLOSED = "closed"


@dataclass
class Session:
    session_id: str
    transport: StreamableHTTPServerTransport
    last_active: float
    state: SessionState = SessionState.ACTIVE
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    task: asyncio.Task[None] | None = None


class SessionRegistry:
    """
    Live sessions keyed by id, with idle reclamation.

    `server` is the low-level MCP server (FastMCP's `_mcp_server`) that every session's
    transport is connected to; it holds no per-session state of its own.
    """

    def __init__(
        self,
        server: Any,
        idle_timeout: float,
        clock: Callable[[], float] = time.monotonic,
        json_response: bool = True,
    ) -> None:
        self.server = server
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.json_response = json_response
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def touch(self, session_id: str | None) -> Session | None:
        """Return the live session for an id with last_active refreshed, or None."""
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_active = self.clock()
        return session

    async def open(self, session_id: str | None = None) -> Session:
        """
        function_purpose: Start a fresh session with its own transport and server task.

        A missing id gets a server-generated one. Raises ValueError for ids the
        transport rejects (anything outside visible ASCII).
        """
        session_id = session_id or uuid.uuid4().hex
        transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=self.json_response,
        )
        session = Session(
            session_id=session_id, transport=transport, last_active=self.clock()
        )
        started = asyncio.Event()
        session.task = asyncio.create_task(
            self._serve(session, started), name=f"McpSession-{session_id}"
        )
        await started.wait()
        if session.task.done():
            raise RuntimeError(f"Session {session_id} failed to start")

        previous = self._sessions.get(session_id)
        if previous is not None:
            await self._end(previous, SessionState.CLOSED)
        self._sessions[session_id] = session
        logger.info("Session %s created (%d live)", session_id, len(self._sessions))
        return session

    async def _serve(self, session: Session, started: asyncio.Event) -> None:
        try:
            async with session.transport.connect() as (read_stream, write_stream):
                started.set()
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        except Exception:
            if session.state is SessionState.ACTIVE:
                logger.exception("Session %s server task failed", session.session_id)
        finally:
            started.set()
            if self._sessions.get(session.session_id) is session:
                self._sessions.pop(session.session_id)
                session.state = SessionState.CLOSED
                logger.info("Session %s ended by its transport", session.session_id)

    async def _end(self, session: Session, state: SessionState) -> None:
        if self._sessions.get(session.session_id) is session:
            self._sessions.pop(session.session_id)
        session.state = state
        await session.transport.terminate()

    async def close(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        await self._end(session, SessionState.CLOSED)
        logger.info("Session %s closed (%d live)", session_id, len(self._sessions))
        return True

    async def sweep(self, now: float | None = None) -> list[str]:
        """
        function_purpose: Reclaim sessions idle for longer than idle_timeout.

        Sessions with a request in flight are left alone. Returns reclaimed ids.
        """
        now = self.clock() if now is None else now
        expired = [
            s
            for s in self._sessions.values()
            if now - s.last_active > self.idle_timeout and not s.lock.locked()
        ]
        for session in expired:
            await self._end(session, SessionState.RECLAIMED)
        if expired:
            logger.info(
                "Reclaimed %d idle sessions (%d live)", len(expired), len(self._sessions)
            )
        return [s.session_id for s in expired]

    async def run_sweeper(self, interval: float) -> None:
        """Sweep every `interval` seconds until cancelled."""
        logger.info(
            "Session sweeper started (interval=%ss, idle_timeout=%ss)",
            interval,
            self.idle_timeout,
        )
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        for session in sessions:
            await self._end(session, SessionState.CLOSED)
        tasks = [s.task for s in sessions if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
