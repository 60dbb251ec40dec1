"""
Siteadmin - Server Package
==========================
Administrative backend for a website: authentication, usage statistics,
system notifications and update checks, with a WebSocket push channel.

This package provides:
- FastAPI web application with the admin REST API
- WebSocket endpoint that pushes notifications and update events
- Token-based access control (single admin password, JWT tokens)
- Periodic check of the latest published release

Architecture:
    main.py          -> FastAPI app creation, middleware, lifespan
    auth.py          -> Password check, JWT tokens, route protection
    config.py        -> Read config.yaml and .env files
    routes.py        -> All REST API endpoint handlers
    stats.py         -> Request and connection counters
    notifications.py -> Bounded in-memory notification log
    websocket.py     -> WebSocket connection registry and broadcasting
    updater.py       -> Release polling and version comparison
"""

__version__ = "1.0.0"
