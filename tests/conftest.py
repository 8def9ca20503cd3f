import uuid
from datetime import timedelta
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from application.auth import TokenService
from application.use_cases import DuplicateKeyError, OrderService
from domain.order import Item, Order
from infrastructure.config import Settings


TEST_SETTINGS = Settings(
    service_name="order-service",
    jwt_secret="test-secret",
    jwt_expires_in=timedelta(minutes=30),
    dev_auth_user="dev",
    dev_auth_pass="dev",
)


def _incoming_order(order_id: str = "v10089015vdb-01", **overrides) -> dict:
    payload = {
        "numeroPedido": order_id,
        "valorTotal": 10000,
        "dataCriacao": "2023-07-19T12:24:11.5299601+00:00",
        "items": [{"idItem": "2434", "quantidadeItem": 1, "valorItem": 1000}],
    }
    payload.update(overrides)
    return payload


class InMemoryTransaction:
    """Stages writes on a copy of the store and publishes them on clean exit."""

    def __init__(self, store: "InMemoryOrderStore"):
        self.store = store
        self.orders: Dict[str, dict] = {}
        self.items: Dict[str, List[Item]] = {}

    async def __aenter__(self):
        self.orders = {k: dict(v) for k, v in self.store.orders.items()}
        self.items = {k: list(v) for k, v in self.store.items.items()}
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.store.orders = self.orders
            self.store.items = self.items
            self.store.commits += 1
        else:
            self.store.rollbacks += 1
        return False


class InMemoryOrderStore:
    def __init__(self):
        self.orders: Dict[str, dict] = {}
        self.items: Dict[str, List[Item]] = {}
        self.commits = 0
        self.rollbacks = 0
        self.fail_on_item_insert: Optional[int] = None
        self._item_inserts = 0

    def transaction(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)

    async def _run(self, tx, operation):
        if tx is not None:
            return operation(tx)
        async with self.transaction() as own:
            return operation(own)

    async def create_order(self, order: Order, tx=None) -> None:
        def op(t):
            if order.order_id in t.orders:
                raise DuplicateKeyError(order.order_id)
            t.orders[order.order_id] = {"value": order.value, "creation_date": order.creation_date}
            t.items[order.order_id] = []
        return await self._run(tx, op)

    async def create_item(self, order_id: str, item: Item, tx=None) -> None:
        def op(t):
            self._item_inserts += 1
            if self.fail_on_item_insert == self._item_inserts:
                raise RuntimeError("item insert failed")
            if order_id not in t.orders:
                raise RuntimeError("foreign key violation")
            t.items[order_id].append(item)
        return await self._run(tx, op)

    async def delete_items(self, order_id: str, tx=None) -> int:
        def op(t):
            removed = len(t.items.get(order_id, []))
            if order_id in t.items:
                t.items[order_id] = []
            return removed
        return await self._run(tx, op)

    async def update_order_scalars(self, order_id: str, order: Order, tx=None) -> int:
        def op(t):
            if order_id not in t.orders:
                return 0
            t.orders[order_id] = {"value": order.value, "creation_date": order.creation_date}
            return 1
        return await self._run(tx, op)

    @staticmethod
    def _build(t, order_id: str) -> Order:
        row = t.orders[order_id]
        return Order(
            order_id=order_id,
            value=row["value"],
            creation_date=row["creation_date"],
            items=list(t.items.get(order_id, [])),
        )

    async def find_order(self, order_id: str, tx=None) -> Order | None:
        def op(t):
            if order_id not in t.orders:
                return None
            return self._build(t, order_id)
        return await self._run(tx, op)

    async def find_orders(self, offset: int, limit: int, tx=None) -> List[Order]:
        def op(t):
            ordered = sorted(t.orders, key=lambda oid: oid)
            ordered = sorted(ordered, key=lambda oid: t.orders[oid]["creation_date"], reverse=True)
            return [self._build(t, oid) for oid in ordered[offset:offset + limit]]
        return await self._run(tx, op)

    async def count_orders(self, tx=None) -> int:
        return await self._run(tx, lambda t: len(t.orders))

    async def delete_order(self, order_id: str, tx=None) -> int:
        def op(t):
            if order_id not in t.orders:
                return 0
            del t.orders[order_id]
            t.items.pop(order_id, None)
            return 1
        return await self._run(tx, op)


@pytest.fixture
def incoming_order():
    """Factory for payloads in the legacy incoming shape."""
    return _incoming_order


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def token_service(settings) -> TokenService:
    return TokenService.from_settings(settings)


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def order_service(store) -> OrderService:
    return OrderService(store)


@pytest.fixture
def app(settings, store):
    """App wired to the in-memory store instead of PostgreSQL."""
    from app.main import create_app, get_order_service

    application = create_app(settings)
    application.dependency_overrides[get_order_service] = lambda: OrderService(store)
    return application


@pytest.fixture
def client(app):
    # raise_server_exceptions=False allows us to test error responses
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers(token_service) -> dict:
    issued = token_service.authenticate("dev", "dev")
    return {"Authorization": f"Bearer {issued.token}"}


@pytest.fixture(scope="session")
def postgres_container():
    """Start PostgreSQL container once for all tests that need it."""
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:15-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL container unavailable: {exc}")
    yield container
    container.stop()


@pytest.fixture
def postgres_dsn(postgres_container) -> str:
    return postgres_container.get_connection_url(driver="asyncpg")


@pytest_asyncio.fixture
async def db_engine(postgres_dsn):
    """Engine bound to a fresh schema so tests do not see each other's rows."""
    from infrastructure import db

    schema_name = f"test_{uuid.uuid4().hex[:8]}"
    engine = create_async_engine(postgres_dsn, future=True, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA {schema_name}"))
    await engine.dispose()

    engine = create_async_engine(
        postgres_dsn,
        future=True,
        poolclass=NullPool,
        connect_args={"server_settings": {"search_path": schema_name}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(db.metadata.create_all)

    yield engine

    await engine.dispose()
