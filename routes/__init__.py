"""
Flask route blueprints for StudioManager.

- main: landing endpoint listing what the service exposes
- api: JSON dashboard reads, mutations and the health check

Each blueprint is registered with the Flask app in create_app().
"""

from .main import main_bp
from .api import api_bp

__all__ = [
    "main_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)
