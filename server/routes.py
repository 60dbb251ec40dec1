"""
Siteadmin - REST API Routes
===========================
All HTTP API endpoints for the admin backend.

Route groups:
    /health              - Liveness check (public)
    /login, /logout      - Authentication
    /statistics          - Usage counters
    /notifications       - Notification log (list / mark read)
    /check-update        - Run an update check now
    /env, /update-env    - View / edit the .env file

All routes except /health and /login require a valid JWT token.
See auth.py for authentication details.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from server import __version__
from server.auth import AuthManager, require_auth, TOKEN_LIFETIME_SECONDS
from server.config import ConfigManager
from server.notifications import NotificationStore
from server.stats import StatisticsRecorder
from server.updater import UpdateChecker


logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models (Pydantic)
# =============================================================================

class LoginRequest(BaseModel):
    """Login with admin password."""
    # Optional so a missing password is answered with 400, not 422
    password: str | None = Field(None, description="Admin password")

class TokenResponse(BaseModel):
    """JWT token returned after successful login."""
    success: bool = True
    token: str
    expiresIn: int = Field(TOKEN_LIFETIME_SECONDS, description="Token lifetime in seconds")

class MarkReadRequest(BaseModel):
    """Ids of the notifications to mark as read."""
    ids: list[int] = Field(default_factory=list)


# =============================================================================
# Router Factory
# =============================================================================

def create_router(
    auth_manager: AuthManager,
    config_manager: ConfigManager,
    stats: StatisticsRecorder,
    notifications: NotificationStore,
    update_checker: UpdateChecker,
) -> APIRouter:
    """
    Create and configure the API router with all endpoints.

    Args:
        auth_manager:   Handles password verification and JWT tokens.
        config_manager: Reads/writes configuration files.
        stats:          Request, connection and error counters.
        notifications:  The notification log.
        update_checker: Runs release checks.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter()

    # Shorthand for the auth dependency
    auth = Depends(require_auth(auth_manager))

    def track(request: Request) -> None:
        stats.record_request(request.url.path)

    # =========================================================================
    # PUBLIC ROUTES
    # =========================================================================

    @router.get("/health")
    async def health(request: Request):
        """Liveness check."""
        track(request)
        return {"status": "ok", "version": __version__}

    @router.post("/login", response_model=TokenResponse)
    async def login(req: LoginRequest, request: Request):
        """
        Login with admin password. Returns a JWT token on success.
        """
        track(request)
        if not req.password:
            raise HTTPException(status_code=400, detail="Password is required")

        client = request.client.host if request.client else ""
        if not auth_manager.verify_password(req.password):
            logger.warning("[AUTH] Failed login attempt from %s", client or "unknown")
            raise HTTPException(status_code=401, detail="Invalid password")

        logger.info("[AUTH] Admin logged in from %s", client or "unknown")
        return TokenResponse(token=auth_manager.issue(client))

    # =========================================================================
    # PROTECTED ROUTES - Requires authentication
    # =========================================================================

    @router.post("/logout", dependencies=[auth])
    async def logout(request: Request):
        """
        Acknowledge a logout. Tokens are stateless, so the client simply
        discards its token; it stays valid until it expires.
        """
        track(request)
        return {"success": True}

    @router.get("/statistics", dependencies=[auth])
    async def get_statistics(request: Request):
        """Usage counters, uptime and update checker status."""
        track(request)
        try:
            snapshot = stats.snapshot()
            snapshot["unreadNotifications"] = notifications.unread_count()
            snapshot["updates"] = update_checker.status
            return snapshot
        except Exception as e:
            logger.exception("[API] Failed to build statistics")
            raise HTTPException(status_code=500, detail=f"Failed to read statistics: {e}")

    @router.get("/notifications", dependencies=[auth])
    async def list_notifications(request: Request):
        """All stored notifications, newest first."""
        track(request)
        try:
            return [n.to_dict() for n in notifications.list()]
        except Exception as e:
            logger.exception("[API] Failed to list notifications")
            raise HTTPException(status_code=500, detail=f"Failed to read notifications: {e}")

    @router.post("/notifications/read", dependencies=[auth])
    async def mark_notifications_read(req: MarkReadRequest, request: Request):
        """
        Mark notifications as read. Unknown ids are ignored.
        """
        track(request)
        notifications.mark_read(req.ids)
        return {"success": True}

    @router.post("/check-update", dependencies=[auth])
    async def check_update(request: Request):
        """
        Run an update check now and wait for its outcome.
        A failed check answers 500 with the failure message.
        """
        track(request)
        result = await update_checker.check()
        if not result.ok:
            raise HTTPException(status_code=500, detail=result.error)
        return {"success": True, "result": result.to_dict()}

    # =========================================================================
    # ENV ROUTES - Requires authentication
    # =========================================================================

    @router.get("/env", dependencies=[auth])
    async def get_env(request: Request):
        """
        Get the .env file contents. Secret values are masked.
        """
        track(request)
        try:
            return config_manager.get_env()
        except OSError as e:
            logger.error("[API] Failed to read .env: %s", e)
            raise HTTPException(status_code=500, detail="Failed to read .env file")

    @router.post("/update-env", dependencies=[auth])
    async def update_env(body: dict[str, Any], request: Request):
        """
        Set one or more keys in the .env file.
        Accepts a flat dict of {KEY_NAME: value} pairs. Changes take effect
        on the next restart.
        """
        track(request)
        if not body:
            raise HTTPException(status_code=400, detail="No values provided")
        try:
            config_manager.update_env({k: "" if v is None else str(v) for k, v in body.items()})
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except OSError as e:
            logger.error("[API] Failed to write .env: %s", e)
            raise HTTPException(status_code=500, detail="Failed to update .env file")
        return {"success": True, "message": "Successfully updated .env file"}

    return router
