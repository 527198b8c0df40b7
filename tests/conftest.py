"""
Shared fixtures for the StudioManager test suite.

Everything runs against the in-process memory backend; no network.
"""

import pytest

from core.context import AppContext
from core.memory_backend import MemoryDocumentStore, MemoryIdentityProvider
from models.records import Expense, InventoryItem, Order


TENANT = "test-tenant"


# Backends

@pytest.fixture
def memory_store():
    """Empty in-process document store."""
    return MemoryDocumentStore()


@pytest.fixture
def identity_provider():
    """Identity provider that accepts any sign-in."""
    return MemoryIdentityProvider()


@pytest.fixture
def context(memory_store, identity_provider):
    """AppContext without a pre-issued token (anonymous sign-in)."""
    return AppContext(memory_store, identity_provider, TENANT)


@pytest.fixture
def token_context(memory_store, identity_provider):
    """AppContext configured with a pre-issued token."""
    return AppContext(memory_store, identity_provider, TENANT, initial_auth_token="pre-issued-token")


# Records

@pytest.fixture
def sample_orders():
    """One open order and one delivered order."""
    return (
        Order.from_document("o1", {
            "cliente": "Colegio San José",
            "descripcion": "Anuario 2026",
            "total": 1000,
            "adelanto": 200,
            "estado": "Pendiente",
            "createdAt": "2026-01-10T09:00:00.000Z",
        }),
        Order.from_document("o2", {
            "cliente": "Liceo Norte",
            "descripcion": "Fotos de graduación",
            "total": 500,
            "adelanto": 500,
            "estado": "Entregado",
            "createdAt": "2026-02-01T15:30:00.000Z",
        }),
    )


@pytest.fixture
def sample_expenses():
    return (
        Expense.from_document("e1", {"concepto": "Papel couché", "monto": 300, "fecha": "2026-01-12"}),
    )


@pytest.fixture
def sample_inventory():
    return (
        InventoryItem.from_document("i1", {"item": "Tinta negra", "stock": 3, "minimo": 5}),
        InventoryItem.from_document("i2", {"item": "Tapas duras", "stock": 10, "minimo": 5}),
    )


# Flask

@pytest.fixture
def app():
    """Flask app on the memory backend with a running sync loop."""
    from app import create_app

    app = create_app("config.TestingConfig")
    yield app
    app.config["DASHBOARD_SERVICE"].stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def dashboard_service(app):
    return app.config["DASHBOARD_SERVICE"]
