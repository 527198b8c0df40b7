"""
StudioManager - Flask Application Entry Point.

This is a slim app factory that:
1. Builds the AppContext from STORE_CONNECTION_CONFIG (fail-fast)
2. Starts the dashboard service (event-loop thread)
3. Waits a bounded time for the first sign-in
4. Registers route blueprints and JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Configuration + AppContext construction
    ├── Flask request handling (reads published DashboardState)
    └── Cleanup at exit (DashboardService registers its own stop)

    SyncLoop Thread (background)
    └── asyncio loop: session, synchronizers, mutation gateway

Request threads never touch store objects; writes are handed to the loop.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

from flask import Flask
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.context import AppContext
from core.exceptions import StoreConfigurationError
from services.dashboard_service import DashboardService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(
    config_object: str = "config.Config",
    overrides: Optional[Mapping[str, Any]] = None
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    FAIL-FAST: If the store connection config is missing or invalid,
    the app will not start.

    Args:
        config_object: Import path of the Config class to load
        overrides: Extra config values applied after the Config class

    Returns:
        Configured Flask application

    Raises:
        StoreConfigurationError: If STORE_CONNECTION_CONFIG is missing/invalid
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        app_name="studio_manager",
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting StudioManager in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE INITIALIZATION (FAIL-FAST)
    # =========================================================================

    try:
        context = AppContext.from_config(app.config)
    except StoreConfigurationError as e:
        logger.critical(f"FATAL: Cannot start application - {e} ({e.details})")
        raise

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    dashboard_service = DashboardService(
        context,
        mutation_timeout_seconds=app.config.get("MUTATION_TIMEOUT_SECONDS", 10.0),
    )
    dashboard_service.start()
    app.config["DASHBOARD_SERVICE"] = dashboard_service

    ready_timeout = app.config.get("SESSION_READY_TIMEOUT_SECONDS", 10.0)
    if dashboard_service.wait_until_ready(timeout=ready_timeout):
        logger.info("Dashboard service started, session ready")
    else:
        # Serve anyway: reads answer 503 until the session is ready
        logger.warning(f"Session not ready after {ready_timeout:.0f}s, serving in degraded mode")

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return {"error": e.name, "message": e.description}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {"error": "Internal Server Error", "message": "An unexpected error occurred."}, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    # The reloader would start a second sync loop in the child process
    app.run(debug=debug_mode, use_reloader=False)
