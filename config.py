"""
Configuration for StudioManager.

STORE_CONNECTION_CONFIG is required. It is a JSON object naming the
document-store backend and how to reach it:

    {"backend": "memory"}
    {"backend": "supabase", "url": "https://xyz.supabase.co", "key": "<anon key>"}

The application fails fast at startup if it is missing or not valid JSON.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent

DEFAULT_TENANT_ID = "anuarios-manager-v1"


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # JSON bodies only
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    JSON_SORT_KEYS = False

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Document store / identity
    # ==========================================================================
    # STORE_CONNECTION_CONFIG: raw JSON string, parsed by core.context.
    # TENANT_ID: partition for all three collections
    #   (tenants/{TENANT_ID}/orders, .../expenses, .../inventory)
    # INITIAL_AUTH_TOKEN: pre-issued token; when empty, sign in anonymously
    # ==========================================================================
    STORE_CONNECTION_CONFIG = os.environ.get("STORE_CONNECTION_CONFIG")
    TENANT_ID = os.environ.get("TENANT_ID") or DEFAULT_TENANT_ID
    INITIAL_AUTH_TOKEN = os.environ.get("INITIAL_AUTH_TOKEN") or None

    # ==========================================================================
    # Timeouts
    # ==========================================================================
    # How long an API request waits for a store write before giving up,
    # and how long startup waits for the first sign-in before serving anyway.
    MUTATION_TIMEOUT_SECONDS = float(
        os.environ.get("MUTATION_TIMEOUT_SECONDS", "10")
    )
    SESSION_READY_TIMEOUT_SECONDS = float(
        os.environ.get("SESSION_READY_TIMEOUT_SECONDS", "10")
    )


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    STORE_CONNECTION_CONFIG = '{"backend": "memory"}'
    TENANT_ID = "test-tenant"
    INITIAL_AUTH_TOKEN = None
    MUTATION_TIMEOUT_SECONDS = 5.0
    SESSION_READY_TIMEOUT_SECONDS = 5.0
