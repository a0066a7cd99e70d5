"""
Shared fixtures for all tests.

Builders for orders and supplier configurations live here so both unit/ and
integration/ can use them. The mock wholesaler from mock_services/ is served
in-process through httpx.ASGITransport.
"""
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from mock_services.mock_pharmaml_server import create_app
from pharmaml_service.database import create_sql_repositories
from pharmaml_service.ledger import TransmissionLedger
from pharmaml_service.models import Order, OrderLine, SupplierConfig
from pharmaml_service.repositories import (
    InMemorySupplierConfigRepository,
    InMemoryTransmissionRepository,
)
from pharmaml_service.supplier_config import SupplierConfigStore

MOCK_URL = 'http://mock-pharmaml.test/pharmaml'
SUPPLIER_ID = 'SUP-UBIPHARM'
ORDER_ID = 'a1b2c3d4-0000-4000-8000-00000000abcd'


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_config(**overrides):
    values = {
        'enabled': True,
        'endpoint_url': MOCK_URL,
        'dispatcher_code': '28',
        'dispatcher_id': 'BZV04',
        'secret_key': 'PHDA',
        'officine_id': '201117',
        'country_code': 'CG',
    }
    values.update(overrides)
    return SupplierConfig(**values)


def build_order(**overrides):
    values = {
        'id': ORDER_ID,
        'supplier_id': SUPPLIER_ID,
        'created_at': datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc),
        'lines': [
            OrderLine(
                product_external_code='3400930000001',
                label='Paracétamol 500mg B/16',
                ordered_quantity=10,
                expected_unit_price=Decimal('1250.50'),
            ),
            OrderLine(
                product_external_code='3400930000002',
                label='Amoxicilline 1g B/12',
                ordered_quantity=3,
                expected_unit_price=Decimal('845'),
            ),
        ],
    }
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def config_factory():
    return build_config


@pytest.fixture
def order_factory():
    return build_order


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return SupplierConfigStore(InMemorySupplierConfigRepository())


@pytest.fixture
def configured_store(store):
    """Store with SUPPLIER_ID fully configured against the mock URL."""
    store.save(SUPPLIER_ID, build_config())
    return store


@pytest.fixture
def ledger():
    return TransmissionLedger(InMemoryTransmissionRepository())


@pytest.fixture(params=['memory', 'sqlite'])
def any_ledger(request):
    """Ledger on each repository implementation."""
    if request.param == 'memory':
        return TransmissionLedger(InMemoryTransmissionRepository())
    _, transmissions = create_sql_repositories('sqlite:///:memory:')
    return TransmissionLedger(transmissions)


# ---------------------------------------------------------------------------
# Mock wholesaler
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_server():
    """Fresh mock server: first accepted order gets PM-123."""
    return create_app(first_order_number=123)


@pytest.fixture
async def mock_http_client(mock_server):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=mock_server)) as client:
        yield client
