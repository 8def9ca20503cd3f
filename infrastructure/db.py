from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from application.use_cases import DuplicateKeyError
from domain.order import Item, Order

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("order_id", String, primary_key=True),
    Column("value", Float, nullable=False),
    Column("creation_date", DateTime(timezone=True), nullable=False, index=True),
)

items = Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "order_id",
        String,
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("product_id", BigInteger, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Float, nullable=False),
)


def get_engine(dsn: Optional[str], **kwargs) -> AsyncEngine:
    if not dsn:
        raise RuntimeError("APP__DB_DSN not set")
    return create_async_engine(dsn, future=True, **kwargs)


def _is_unique_violation(exc: IntegrityError) -> bool:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate:
        return sqlstate == "23505"
    return "unique" in str(exc.orig).lower()


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_item(row) -> Item:
    data = row._mapping
    return Item(product_id=data["product_id"], quantity=data["quantity"], price=data["price"])


def _to_order(row, order_items: List[Item]) -> Order:
    data = row._mapping
    return Order(
        order_id=data["order_id"],
        value=data["value"],
        creation_date=_utc(data["creation_date"]),
        items=order_items,
    )


class SqlAlchemyUnitOfWork:
    """Transaction scope: commits on clean exit, rolls back on any exception."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.session:
            return
        try:
            if exc_type is None:
                await self.session.commit()
            else:
                await self.session.rollback()
        finally:
            await self.session.close()
            self.session = None


class SqlAlchemyOrderStore:
    """Order and item persistence; every operation accepts an optional ``tx``."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    def transaction(self) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self.engine)

    @asynccontextmanager
    async def _session(self, tx: Optional[SqlAlchemyUnitOfWork]) -> AsyncIterator[AsyncSession]:
        if tx is not None:
            if not tx.session:
                raise RuntimeError("Session not initialized")
            yield tx.session
            return
        async with self.transaction() as own:
            yield own.session

    async def create_order(self, order: Order, tx: Optional[SqlAlchemyUnitOfWork] = None) -> None:
        async with self._session(tx) as session:
            try:
                await session.execute(
                    insert(orders).values(
                        order_id=order.order_id,
                        value=order.value,
                        creation_date=order.creation_date,
                    )
                )
            except IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise DuplicateKeyError(order.order_id) from exc
                raise

    async def create_item(self, order_id: str, item: Item, tx: Optional[SqlAlchemyUnitOfWork] = None) -> None:
        async with self._session(tx) as session:
            await session.execute(
                insert(items).values(
                    order_id=order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price,
                )
            )

    async def delete_items(self, order_id: str, tx: Optional[SqlAlchemyUnitOfWork] = None) -> int:
        async with self._session(tx) as session:
            result = await session.execute(delete(items).where(items.c.order_id == order_id))
            return result.rowcount

    async def update_order_scalars(
        self, order_id: str, order: Order, tx: Optional[SqlAlchemyUnitOfWork] = None
    ) -> int:
        async with self._session(tx) as session:
            result = await session.execute(
                update(orders)
                .where(orders.c.order_id == order_id)
                .values(value=order.value, creation_date=order.creation_date)
            )
            return result.rowcount

    async def find_order(self, order_id: str, tx: Optional[SqlAlchemyUnitOfWork] = None) -> Order | None:
        async with self._session(tx) as session:
            result = await session.execute(select(orders).where(orders.c.order_id == order_id))
            row = result.first()
            if not row:
                return None
            item_rows = await session.execute(
                select(items).where(items.c.order_id == order_id).order_by(items.c.id)
            )
            return _to_order(row, [_to_item(r) for r in item_rows])

    async def find_orders(
        self, offset: int, limit: int, tx: Optional[SqlAlchemyUnitOfWork] = None
    ) -> List[Order]:
        async with self._session(tx) as session:
            result = await session.execute(
                select(orders)
                .order_by(orders.c.creation_date.desc(), orders.c.order_id)
                .offset(offset)
                .limit(limit)
            )
            rows = result.fetchall()
            if not rows:
                return []

            ids = [row._mapping["order_id"] for row in rows]
            item_rows = await session.execute(
                select(items).where(items.c.order_id.in_(ids)).order_by(items.c.id)
            )
            grouped: Dict[str, List[Item]] = defaultdict(list)
            for item_row in item_rows:
                grouped[item_row._mapping["order_id"]].append(_to_item(item_row))

            return [_to_order(row, grouped[row._mapping["order_id"]]) for row in rows]

    async def count_orders(self, tx: Optional[SqlAlchemyUnitOfWork] = None) -> int:
        async with self._session(tx) as session:
            result = await session.execute(select(func.count()).select_from(orders))
            return result.scalar_one()

    async def delete_order(self, order_id: str, tx: Optional[SqlAlchemyUnitOfWork] = None) -> int:
        async with self._session(tx) as session:
            await session.execute(delete(items).where(items.c.order_id == order_id))
            result = await session.execute(delete(orders).where(orders.c.order_id == order_id))
            return result.rowcount
