"""
Main routes.

The service renders no pages; the root just points at the JSON API.
"""

from flask import Blueprint, current_app, url_for

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    """List the entry points a view layer needs."""
    return {
        "service": "studio_manager",
        "tenant": current_app.config.get("TENANT_ID"),
        "endpoints": {
            "dashboard": url_for("api.dashboard"),
            "finance": url_for("api.finance"),
            "health": url_for("api.health"),
        },
    }
