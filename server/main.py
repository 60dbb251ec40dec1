"""
Siteadmin - FastAPI Application
===============================
Creates and configures the FastAPI web application that serves the
admin backend.

Responsibilities:
    - Load configuration and refuse to start without the required secrets
    - Create the shared service objects once (auth, statistics,
      WebSocket registry, notification log, update checker)
    - Create the FastAPI app instance with CORS and metadata
    - Register API routes and the WebSocket endpoint
    - Start and stop the periodic update check with the app lifespan

All service objects live on app.state and are handed to the routes
explicitly; nothing is kept in module-level globals.
"""

import os
import logging
import httpx
from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from server import __version__
from server.auth import AuthManager
from server.config import ConfigError, ConfigManager
from server.notifications import NotificationStore
from server.routes import create_router
from server.stats import StatisticsRecorder
from server.updater import UpdateChecker
from server.websocket import WebSocketManager


logger = logging.getLogger(__name__)


def create_app(
    project_dir: str | None = None,
    release_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        project_dir:       Root directory holding config.yaml and .env.
                           If None, auto-detected from this file's location.
        release_transport: Optional httpx transport for release checks
                           (used by tests to avoid network access).

    Returns:
        Configured FastAPI application ready to run with uvicorn.

    Raises:
        ConfigError: If config.yaml is unreadable, a required secret
                     (ADMIN_PASSWORD, JWT_SECRET) is not set, or the admin
                     password is unusable.
    """
    if project_dir is None:
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    # -- Configuration ---------------------------------------------------------
    config_manager = ConfigManager(project_dir)
    config = config_manager.load()
    secrets = config_manager.require_secrets()
    updates = config["updates"]
    current_version = str(updates.get("current_version") or __version__)

    # -- Initialize managers ---------------------------------------------------
    stats = StatisticsRecorder()
    try:
        auth_manager = AuthManager(secrets["ADMIN_PASSWORD"], secrets["JWT_SECRET"])
    except ValueError as e:
        raise ConfigError(str(e)) from e
    ws_manager = WebSocketManager(stats, version=current_version)
    notifications = NotificationStore(ws_manager)
    update_checker = UpdateChecker(
        notifications,
        ws_manager,
        stats,
        current_version=current_version,
        release_url=updates["release_url"],
        interval=float(updates["interval"]),
        timeout=float(updates["timeout"]),
        transport=release_transport,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if updates.get("enabled", True):
            update_checker.start()
        else:
            logger.info("[UPDATE] Periodic update check disabled")
        yield
        await update_checker.stop()

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="Siteadmin",
        description="Admin backend: authentication, statistics, notifications and update checks",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # -- CORS middleware -------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Store managers on app state -------------------------------------------
    app.state.config_manager = config_manager
    app.state.auth_manager = auth_manager
    app.state.stats = stats
    app.state.ws_manager = ws_manager
    app.state.notifications = notifications
    app.state.update_checker = update_checker

    # -- Register API routes ---------------------------------------------------
    api_router = create_router(
        auth_manager=auth_manager,
        config_manager=config_manager,
        stats=stats,
        notifications=notifications,
        update_checker=update_checker,
    )
    app.include_router(api_router)

    # -- WebSocket endpoint ----------------------------------------------------
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        Real-time channel. Clients receive a greeting, then every
        notification and update event. Client messages are only logged.
        """
        try:
            await ws_manager.connect(websocket)
            while True:
                ws_manager.on_message(await websocket.receive_text())
        except WebSocketDisconnect:
            pass
        except Exception as e:
            ws_manager.on_error(websocket, e)
        finally:
            ws_manager.disconnect(websocket)

    return app
