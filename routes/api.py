"""
API routes (JSON endpoints).

Handles:
- /api/dashboard - Metrics, recent orders and low-stock alerts
- /api/finance - Balance card and income by order
- /api/<collection> - Current snapshot of one collection (GET) or create (POST)
- /api/orders/<id>/status - Move an order through the workflow
- /api/inventory/<id>/increment|decrement - Stock buttons
- /api/<collection>/<id> - Delete
- /health - Health check endpoint

Reads come from the DashboardService's published state (no store call).
Writes are forwarded to the MutationGateway and block until the store
answers; their effect shows up in reads once the next snapshot arrives.
"""

import html
import math
from datetime import date
from typing import Any, Dict, Optional

import bleach
from flask import Blueprint, current_app, request
from werkzeug.exceptions import BadRequest, NotFound, ServiceUnavailable

from logging_config import get_logger
from models.dashboard import DashboardState
from models.mutation_result import MutationResult
from models.records import COLLECTIONS, EXPENSES, INVENTORY, ORDERS, ORDER_STATUSES, DEFAULT_MINIMUM_STOCK
from modules.metrics import income_by_order, low_stock_items, recent_orders


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)

# Constants
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_AMOUNT = 100_000_000
MAX_STOCK = 1_000_000

# Failed MutationResult.error_type -> HTTP status (anything else is 502)
_ERROR_STATUS = {
    "SessionNotReadyError": 503,
    "InvalidStatusError": 400,
    "DocumentNotFoundError": 404,
    "UnknownCollectionError": 404,
}


def _sanitize_text(text: Any, max_length: int = None) -> str:
    """Strip markup from user input text. The result is stored as plain text."""
    if not text:
        return ""
    text = str(text).strip()
    text = html.unescape(bleach.clean(text, tags=[], strip=True))
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def _get_dashboard():
    dashboard = current_app.config.get("DASHBOARD_SERVICE")
    if dashboard is None:
        raise ServiceUnavailable("Dashboard service unavailable")
    return dashboard


def _ready_state() -> DashboardState:
    """Current state, or 503 while the session is still signing in."""
    state = _get_dashboard().get_state()
    if not state.session_ready:
        raise ServiceUnavailable("Session is not ready")
    return state


def _payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def _number(
    payload: Dict[str, Any],
    key: str,
    default: Optional[float] = None,
    maximum: float = MAX_AMOUNT,
    integer: bool = False
):
    """Parse a non-negative number from the payload or raise 400."""
    raw = payload.get(key)
    if raw is None or raw == "":
        if default is None:
            raise BadRequest(f"'{key}' is required")
        return default

    if isinstance(raw, bool):
        raise BadRequest(f"'{key}' must be a number")
    try:
        value = int(raw) if integer else float(raw)
    except (TypeError, ValueError, OverflowError):
        raise BadRequest(f"'{key}' must be a number")

    if not math.isfinite(value) or value < 0:
        raise BadRequest(f"'{key}' must be zero or more")
    if value > maximum:
        raise BadRequest(f"'{key}' too large. Maximum is {maximum}.")
    return value


def _date(payload: Dict[str, Any], key: str) -> str:
    raw = _sanitize_text(payload.get(key))
    if not raw:
        return ""
    if len(raw) != 10:
        raise BadRequest(f"'{key}' must be a date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(raw).isoformat()
    except ValueError:
        raise BadRequest(f"'{key}' must be a date (YYYY-MM-DD)")


def _required_text(payload: Dict[str, Any], key: str, max_length: int) -> str:
    text = _sanitize_text(payload.get(key), max_length=max_length)
    if not text:
        raise BadRequest(f"'{key}' is required")
    return text


def _mutation_response(result: MutationResult, success_code: int = 200):
    if result.ok:
        return result.to_dict(), success_code
    status_code = _ERROR_STATUS.get(result.error_type, 502)
    logger.warning(f"{request.method} {request.path} -> {status_code}: {result.error}")
    return result.to_dict(), status_code


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


# =============================================================================
# Reads
# =============================================================================

@api_bp.route("/api/dashboard", methods=["GET"])
def dashboard():
    """
    Summary tab: metric cards, recent orders and low-stock alerts.

    Query params:
        newest_first: sort recent orders by creation time instead of
            taking the first five as delivered
    """
    state = _ready_state()
    return {
        "session_uid": state.session_uid,
        "updated_at": state.updated_at.isoformat(),
        "metrics": state.metrics.to_dict(),
        "recent_orders": [
            o.to_dict() for o in recent_orders(state.orders, newest_first=_flag("newest_first"))
        ],
        "low_stock": [i.to_dict() for i in low_stock_items(state.inventory)],
        "stale_collections": sorted(state.stale_collections),
    }


@api_bp.route("/api/finance", methods=["GET"])
def finance():
    """Finance tab: balance card, income by order and the expense list."""
    state = _ready_state()
    metrics = state.metrics
    return {
        "balance": {
            "total_collected": metrics.total_collected,
            "total_expenses": metrics.total_expenses,
            "balance": metrics.balance,
        },
        "income_by_order": [o.to_dict() for o in income_by_order(state.orders)],
        "expenses": [e.to_dict() for e in state.expenses],
    }


@api_bp.route("/api/<collection>", methods=["GET"])
def list_collection(collection: str):
    """Current snapshot of one collection, in store order."""
    if collection not in COLLECTIONS:
        raise NotFound(f"Unknown collection: {collection}")

    state = _ready_state()
    records = getattr(state, collection)
    if collection == INVENTORY and _flag("low_stock"):
        records = low_stock_items(records)

    return {
        "collection": collection,
        "stale": collection in state.stale_collections,
        "count": len(records),
        "records": [r.to_dict() for r in records],
    }


# =============================================================================
# Writes
# =============================================================================

@api_bp.route("/api/orders", methods=["POST"])
def create_order():
    """Register a new order (status defaults to Pendiente)."""
    payload = _payload()
    status = _sanitize_text(payload.get("estado"), max_length=MAX_NAME_LENGTH) or ORDER_STATUSES[0]

    result = _get_dashboard().create_order(
        client=_required_text(payload, "cliente", MAX_NAME_LENGTH),
        description=_sanitize_text(payload.get("descripcion"), max_length=MAX_DESCRIPTION_LENGTH),
        total=_number(payload, "total", default=0.0),
        advance=_number(payload, "adelanto", default=0.0),
        status=status,
        delivery_date=_date(payload, "fechaEntrega"),
    )
    return _mutation_response(result, 201)


@api_bp.route("/api/expenses", methods=["POST"])
def create_expense():
    """Record an expense (date defaults to today)."""
    payload = _payload()
    result = _get_dashboard().create_expense(
        _required_text(payload, "concepto", MAX_NAME_LENGTH),
        _number(payload, "monto"),
        _date(payload, "fecha") or None,
    )
    return _mutation_response(result, 201)


@api_bp.route("/api/inventory", methods=["POST"])
def create_inventory_item():
    """Add a supply to the stockroom."""
    payload = _payload()
    result = _get_dashboard().create_inventory_item(
        _required_text(payload, "item", MAX_NAME_LENGTH),
        _number(payload, "stock", default=0, maximum=MAX_STOCK, integer=True),
        _number(payload, "minimo", default=DEFAULT_MINIMUM_STOCK, maximum=MAX_STOCK, integer=True),
    )
    return _mutation_response(result, 201)


@api_bp.route("/api/orders/<order_id>/status", methods=["POST"])
def set_order_status(order_id: str):
    """Move an order to another workflow state."""
    payload = _payload()
    status = _required_text(payload, "estado", MAX_NAME_LENGTH)
    result = _get_dashboard().set_order_status(order_id, status)
    return _mutation_response(result)


@api_bp.route("/api/inventory/<item_id>/increment", methods=["POST"])
def increment_stock(item_id: str):
    return _mutation_response(_get_dashboard().increment_stock(item_id))


@api_bp.route("/api/inventory/<item_id>/decrement", methods=["POST"])
def decrement_stock(item_id: str):
    """Take one unit out of stock (never below zero)."""
    return _mutation_response(_get_dashboard().decrement_stock(item_id))


@api_bp.route("/api/<collection>/<document_id>", methods=["DELETE"])
def delete_document(collection: str, document_id: str):
    """Remove a document. No confirmation step, no cascade."""
    if collection not in COLLECTIONS:
        raise NotFound(f"Unknown collection: {collection}")
    return _mutation_response(_get_dashboard().delete(collection, document_id))


# =============================================================================
# Health
# =============================================================================

@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with session and subscription status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "tenant": current_app.config.get("TENANT_ID"),
        "checks": {}
    }

    dashboard_service = current_app.config.get("DASHBOARD_SERVICE")
    if dashboard_service is None or not dashboard_service.is_running:
        health_status["checks"]["sync_loop"] = "not_running"
        health_status["status"] = "degraded"
        return health_status, 503

    details = dashboard_service.get_health()
    health_status["checks"]["sync_loop"] = "ok"
    health_status["checks"]["session"] = "ready" if details["session"]["ready"] else "not_ready"
    if details["session"]["error"]:
        health_status["session_error"] = details["session"]["error"]
    if not details["session"]["ready"]:
        health_status["status"] = "degraded"

    for name in (ORDERS, EXPENSES, INVENTORY):
        collection = details["collections"][name]
        health_status["checks"][name] = collection["status"]
        if collection["status"] != "ok":
            health_status["status"] = "degraded"

    health_status["collections"] = details["collections"]

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
