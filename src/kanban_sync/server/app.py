"""FastAPI application factory for the board service."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..api.router import create_router
from ..api.schemas import AuthStatus, LoginRequest, LoginResponse
from ..config import get_server_config
from ..errors import KanbanError
from ..events.bus import EventBus
from ..events.ws import WebSocketHub
from ..services.mutations import BoardService
from ..storage.container import Container
from .auth import AuthConfig, create_access_token, verify_credentials


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    backend: Optional[str] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Directory holding `.kanban_sync/`; defaults to the cwd.
        enable_cors: Whether to enable CORS.
        backend: Storage backend override (``file`` or ``memory``).
        container: Pre-built container; takes precedence over the other storage args.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Kanban Sync",
        description="Task board service with ordered columns and drag-and-drop moves",
        version=__version__,
    )

    container = container or Container(project_dir or Path.cwd(), backend=backend)
    if container.config_error:
        logger.warning("Ignoring board config: {}", container.config_error)
    hub = WebSocketHub()
    service = BoardService(container.store, EventBus(container.events, hub))
    auth_config = AuthConfig()

    app.state.container = container
    app.state.hub = hub
    app.state.service = service
    app.state.auth_config = auth_config

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=get_server_config(container.config)["cors_origins"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(KanbanError)
    async def kanban_error_handler(request: Request, exc: KanbanError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
        else:
            logger.debug("{} {} rejected: {}", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "version": __version__,
            "backend": container.backend,
            "websocket_clients": hub.client_count,
        }

    @app.post("/api/auth/login")
    async def login(request: LoginRequest) -> LoginResponse:
        if not verify_credentials(auth_config, request.username, request.password, service.authenticate):
            raise HTTPException(status_code=401, detail="Incorrect username or password")
        token = create_access_token(auth_config, request.username)
        return LoginResponse(access_token=token, token_type="bearer", username=request.username)

    @app.get("/api/auth/status")
    async def auth_status() -> AuthStatus:
        return AuthStatus(
            enabled=auth_config.enabled,
            authenticated=not auth_config.enabled,
            username=auth_config.username if not auth_config.enabled else None,
        )

    @app.websocket("/ws")
    async def websocket_events(websocket: WebSocket) -> None:
        await hub.handle_connection(websocket)

    app.include_router(create_router(lambda: app.state.service))
    return app
