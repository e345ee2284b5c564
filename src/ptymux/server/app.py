"""FastAPI application for remote access to sessions.

HTTP endpoints:

    GET  /health          -> {"status": "ok", "sessions": 1, "active": 1}
    POST /api/login       <- {"password": "..."}   -> {"token": "..."}
    GET  /api/projects    (bearer) -> {"projects": [...], "binaryFound": true}
    GET  /api/sessions    (bearer) -> {"sessions": [...]}

WebSocket relay, one Process Session per connection:

    /ws?token=<bearer>&dir=<project path>

    inbound:  {"type": "input", "data": "..."}
              {"type": "submit", "data": "..."}
              {"type": "resize", "cols": 80, "rows": 24}
              {"type": "restart"}
    outbound: {"type": "data", "data": "..."}
              {"type": "exit", "exitCode": 0, "signal": null}
              {"type": "error", "data": "..."}
"""

from __future__ import annotations

import codecs
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket
from pydantic import BaseModel, Field

from ptymux import __version__
from ptymux.config.settings import Settings
from ptymux.domain.models import (
    DataMessage,
    ErrorMessage,
    ExitMessage,
    ExitStatus,
    Geometry,
    InputMessage,
    ProjectEntry,
    ResizeMessage,
    RestartMessage,
    SessionInfo,
    SubmitMessage,
    parse_inbound,
)
from ptymux.errors import DirectoryNotAllowed, MalformedMessage, Unauthorized
from ptymux.hub import SessionHub
from ptymux.relay import SessionConsumer
from ptymux.server.gate import RemoteGate
from ptymux.server.projects import list_projects

logger = logging.getLogger(__name__)

CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN_DIRECTORY = 4003


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    password: str = Field(description="Shared server password")


class LoginResponse(BaseModel):
    token: str


class ProjectsResponse(BaseModel):
    projects: list[ProjectEntry]
    binaryFound: bool


class SessionsResponse(BaseModel):
    sessions: list[SessionInfo]


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0
    active: int = 0


# ---------------------------------------------------------------------------
# WebSocket consumer
# ---------------------------------------------------------------------------

class WebSocketConsumer(SessionConsumer):
    """Relays one session's events as JSON text frames.

    Output is decoded incrementally so a UTF-8 sequence split across two
    pty reads is sent intact in the later frame.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    async def send_data(self, session_id: str, data: bytes) -> None:
        text = self._decoder.decode(data)
        if text:
            await self._websocket.send_json(DataMessage(data=text).model_dump())

    async def send_exit(self, session_id: str, status: ExitStatus) -> None:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            await self._websocket.send_json(DataMessage(data=tail).model_dump())
        self._decoder.reset()
        message = ExitMessage(exit_code=status.exit_code, signal=status.signal)
        await self._websocket.send_json(message.model_dump(by_alias=True))

    async def send_error(self, session_id: str, message: str) -> None:
        await self._websocket.send_json(ErrorMessage(data=message).model_dump())


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    hub: SessionHub | None = None,
    gate: RemoteGate | None = None,
) -> FastAPI:
    """Create the relay server application.

    Args:
        settings: Loaded configuration; defaults are used when None.
        hub: Optional pre-built SessionHub (for testing).
        gate: Optional pre-built RemoteGate (for testing).
    """
    settings = settings or Settings()
    server_config = settings.server

    if hub is None:
        hub = SessionHub.from_settings(
            settings,
            geometry=Geometry(columns=server_config.columns, rows=server_config.rows),
        )
    if gate is None:
        gate = RemoteGate(
            password=server_config.password.get_secret_value(),
            allowed_roots=[server_config.projects_dir, *server_config.allowed_roots],
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        g: RemoteGate = app.state.gate
        if g.password_generated:
            logger.warning("No password configured; generated password: %s", g.password)
        logger.info("Relay server started (projects=%s)", server_config.projects_dir)
        yield
        await app.state.hub.shutdown()
        logger.info("Relay server stopped")

    app = FastAPI(
        title="ptymux relay",
        description="WebSocket relay for pty-backed interactive sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub
    app.state.gate = gate
    app.state.settings = settings

    def require_token(request: Request) -> str:
        header = request.headers.get("authorization", "")
        token = header.removeprefix("Bearer ").strip() or request.query_params.get("token", "")
        try:
            app.state.gate.authorize(token)
        except Unauthorized as e:
            raise HTTPException(status_code=401, detail="Unauthorized") from e
        return token

    @app.get("/health")
    async def health_check() -> HealthResponse:
        h: SessionHub = app.state.hub
        return HealthResponse(
            status="ok",
            sessions=len(h.registry),
            active=h.registry.active_count,
        )

    @app.post("/api/login")
    async def login(request: LoginRequest) -> LoginResponse:
        try:
            token = app.state.gate.authenticate(request.password)
        except Unauthorized as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        return LoginResponse(token=token)

    @app.get("/api/projects", dependencies=[Depends(require_token)])
    async def projects() -> ProjectsResponse:
        h: SessionHub = app.state.hub
        return ProjectsResponse(
            projects=list_projects(server_config.projects_dir),
            binaryFound=await h.launcher.binary_available(),
        )

    @app.get("/api/sessions", dependencies=[Depends(require_token)])
    async def sessions() -> SessionsResponse:
        h: SessionHub = app.state.hub
        return SessionsResponse(sessions=[s.info() for s in h.registry.all()])

    @app.websocket("/ws")
    async def terminal_socket(
        websocket: WebSocket,
        token: str | None = Query(default=None),
        directory: str | None = Query(default=None, alias="dir"),
    ) -> None:
        h: SessionHub = app.state.hub
        g: RemoteGate = app.state.gate
        await websocket.accept()

        if not g.is_valid(token):
            logger.warning("WebSocket rejected: invalid token")
            await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Unauthorized")
            return

        try:
            cwd = g.resolve_directory(directory)
        except DirectoryNotAllowed as e:
            logger.warning("WebSocket rejected: %s", e)
            await websocket.close(code=CLOSE_FORBIDDEN_DIRECTORY, reason=str(e))
            return

        session_id = g.new_session_id()
        logger.info("WebSocket connected: session %s in %s", session_id, cwd)
        session = await h.spawn(session_id, WebSocketConsumer(websocket), working_directory=cwd)
        if not session.active:
            await h.close(session_id)
            await websocket.close()
            return

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await _dispatch(h, session_id, raw)
        finally:
            logger.info("WebSocket disconnected: session %s", session_id)
            await h.close(session_id)

    return app


async def _dispatch(hub: SessionHub, session_id: str, raw: str | bytes) -> None:
    """Apply one inbound envelope to the connection's session."""
    try:
        message = parse_inbound(raw)
    except MalformedMessage as e:
        logger.warning("Dropped malformed message on session %s: %s", session_id, e)
        return

    if isinstance(message, InputMessage):
        logger.debug("[input] %s %r", session_id, message.data[:80])
        hub.write(session_id, message.data)
    elif isinstance(message, SubmitMessage):
        logger.debug("[submit] %s %r", session_id, message.data[:80])
        await hub.submit_text(session_id, message.data)
    elif isinstance(message, ResizeMessage):
        logger.debug("[resize] %s %dx%d", session_id, message.cols, message.rows)
        hub.resize(session_id, message.cols, message.rows)
    elif isinstance(message, RestartMessage):
        logger.info("Restart requested for session %s", session_id)
        await hub.restart(session_id)


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(settings: Settings | None = None) -> None:
    """Run the relay server."""
    settings = settings or Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
