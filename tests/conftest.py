"""Pytest fixtures: one throwaway SQLite tenant per test, seeded catalogue, ASGI client."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ["TRACING_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["INVOICE_STORAGE_URL"] = ""

from contextlib import asynccontextmanager  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import event, select  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from main import app  # noqa: E402
from shared.config.database import TenantContext, create_schema, tenant_registry  # noqa: E402
from shared.security import create_access_token  # noqa: E402
from services.delivery_service.models import DeliveryAgent  # noqa: E402
from services.inventory_service.models import Product, ProductVariant  # noqa: E402
from services.order_service.models import Customer, Order, Shop  # noqa: E402

TENANT_ID = "acme"
PAYMENT_KEY_ID = "rzp_test_key"
PAYMENT_SECRET = "rzp_test_secret"
COURIER_KEY = "porter-test-key"

CUSTOMER_USER = 101
OTHER_CUSTOMER_USER = 102
VENDOR_USER = 201
OTHER_VENDOR_USER = 202
AGENT_USER = 301
SECOND_AGENT_USER = 302
OFFLINE_AGENT_USER = 303


def sqlite_engine(path, serialize_writes: bool = False):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    if serialize_writes:
        # SQLite ignores FOR UPDATE; each transaction takes the database write lock at BEGIN instead
        @event.listens_for(engine.sync_engine, "connect")
        def _no_driver_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    return engine


@asynccontextmanager
async def registered_tenant(tmp_path, serialize_writes: bool = False):
    """Register a file-backed SQLite tenant with the full schema."""
    engine = sqlite_engine(tmp_path / "tenant.db", serialize_writes)
    context = TenantContext(
        tenant_id=TENANT_ID,
        engine=engine,
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
        payment_key_id=PAYMENT_KEY_ID,
        payment_key_secret=PAYMENT_SECRET,
        courier_api_key=COURIER_KEY,
    )
    await create_schema(context)
    tenant_registry.register(context)
    try:
        yield context
    finally:
        tenant_registry.unregister(TENANT_ID)
        await engine.dispose()


@pytest.fixture
async def tenant(tmp_path):
    async with registered_tenant(tmp_path) as context:
        yield context


@pytest.fixture
async def db(tenant):
    async with tenant.session_factory() as session:
        yield session


@pytest.fixture
async def seed(tenant):
    """Two customers, two shops, a variant product and three plain products, three agents."""
    async with tenant.session_factory() as session:
        session.add_all([
            Customer(id=1, user_id=CUSTOMER_USER, name="Asha Rao", email="asha@example.com", phone="9000000001"),
            Customer(id=2, user_id=OTHER_CUSTOMER_USER, name="Vikram Shah", phone="9000000002"),
            Shop(id=1, user_id=VENDOR_USER, name="Corner Store", phone="8000000001", address="12 MG Road",
                 city="Bengaluru", state="KA", country="India", postal_code="560001",
                 latitude=12.97, longitude=77.59),
            Shop(id=2, user_id=OTHER_VENDOR_USER, name="Lamp House", city="Pune"),
        ])
        await session.flush()
        session.add_all([
            Product(id=1, shop_id=1, product_name="Cotton T-Shirt", sku="TS", selling_price=Decimal("100.00"),
                    tax_percentage=Decimal("5.00"), stock_quantity=5),
            Product(id=2, shop_id=1, product_name="Coffee Mug", sku="MUG", selling_price=Decimal("50.00"),
                    tax_percentage=Decimal("0"), stock_quantity=10),
            Product(id=3, shop_id=1, product_name="Notebook", sku="NB", selling_price=Decimal("20.00"),
                    tax_percentage=Decimal("0"), stock_quantity=1),
            Product(id=4, shop_id=2, product_name="Desk Lamp", sku="LAMP", selling_price=Decimal("300.00"),
                    tax_percentage=Decimal("18.00"), stock_quantity=4),
        ])
        await session.flush()
        session.add(ProductVariant(id=10, product_id=1, sku="TS-M", size="M", color="Blue",
                                   base_price=Decimal("120.00"), selling_price=Decimal("100.00"), stock=5))
        session.add_all([
            DeliveryAgent(id=1, user_id=AGENT_USER, name="Ravi", phone="7000000001"),
            DeliveryAgent(id=2, user_id=SECOND_AGENT_USER, name="Imran", phone="7000000002"),
            DeliveryAgent(id=3, user_id=OFFLINE_AGENT_USER, name="Sunil", is_active=False),
        ])
        await session.commit()
    return SimpleNamespace(customer_id=1, shop_id=1, other_shop_id=2, variant_product_id=1, variant_id=10)


@pytest.fixture
def auth():
    """Build bearer headers for a user in the test tenant."""

    def _auth(user_id: int, role: str = "CUSTOMER", tenant_id: str = TENANT_ID) -> dict:
        token = create_access_token({"sub": str(user_id), "role": role, "tenant_id": tenant_id})
        return {"Authorization": f"Bearer {token}"}

    return _auth


@pytest.fixture
async def client(tenant):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def order_payload():
    def _payload(*items, **overrides) -> dict:
        payload = {
            "delivery_address": "221B Residency Road",
            "delivery_city": "Bengaluru",
            "delivery_state": "KA",
            "delivery_country": "India",
            "delivery_postal_code": "560025",
            "delivery_latitude": 12.96,
            "delivery_longitude": 77.6,
            "items": list(items),
            "payment_method": "razorpay",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def place_order(client, auth, order_payload, seed):
    """Place an order through the API and return its order number."""

    async def _place(*items, user_id: int = CUSTOMER_USER) -> str:
        items = items or ({"product_id": 1, "product_variant_id": 10, "quantity": 2},)
        resp = await client.post("/orders/placeOrder", json=order_payload(*items), headers=auth(user_id))
        assert resp.status_code == 201, resp.text
        return resp.json()["order_number"]

    return _place


@pytest.fixture
def load_order(tenant):
    async def _load(order_number: str) -> Order:
        async with tenant.session_factory() as session:
            return (await session.execute(select(Order).where(Order.order_number == order_number))).scalars().one()

    return _load
