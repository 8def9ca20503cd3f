from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from application.use_cases import DuplicateKeyError, OrderService
from domain.errors import DuplicateEntityError
from domain.order import Item, Order
from infrastructure import db


def make_order(order_id: str = "ord-1", day: int = 1, items=None) -> Order:
    return Order(
        order_id=order_id,
        value=100.0,
        creation_date=datetime(2023, 1, day, 12, 0, tzinfo=timezone.utc),
        items=items if items is not None else [Item(product_id=7, quantity=2, price=50.0)],
    )


async def insert_order(store: db.SqlAlchemyOrderStore, order: Order) -> None:
    async with store.transaction() as tx:
        await store.create_order(order, tx=tx)
        for item in order.items:
            await store.create_item(order.order_id, item, tx=tx)


@pytest.mark.asyncio
async def test_store_create_and_find(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)
    order = make_order(items=[Item(7, 2, 50.0), Item(3, 1, 1.5)])

    await insert_order(store, order)
    fetched = await store.find_order("ord-1")

    assert fetched == order
    assert fetched.creation_date.tzinfo is not None


@pytest.mark.asyncio
async def test_store_find_missing_returns_none(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)

    assert await store.find_order("missing") is None


@pytest.mark.asyncio
async def test_store_duplicate_insert_raises_duplicate_key(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)
    await insert_order(store, make_order())

    with pytest.raises(DuplicateKeyError):
        await store.create_order(make_order())


@pytest.mark.asyncio
async def test_transaction_rolls_back_all_writes_on_failure(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)

    with pytest.raises(RuntimeError):
        async with store.transaction() as tx:
            await store.create_order(make_order(), tx=tx)
            await store.create_item("ord-1", Item(1, 1, 1.0), tx=tx)
            raise RuntimeError("boom")

    assert await store.find_order("ord-1") is None
    async with db_engine.begin() as conn:
        rows = (await conn.execute(select(db.items))).fetchall()
    assert rows == []


@pytest.mark.asyncio
async def test_store_lists_newest_first_with_count(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)
    for day, order_id in [(1, "a"), (3, "c"), (2, "b")]:
        await insert_order(store, make_order(order_id, day))

    first = await store.find_orders(offset=0, limit=2)
    rest = await store.find_orders(offset=2, limit=2)

    assert [o.order_id for o in first] == ["c", "b"]
    assert [o.order_id for o in rest] == ["a"]
    assert await store.count_orders() == 3
    assert first[0].items == [Item(7, 2, 50.0)]


@pytest.mark.asyncio
async def test_store_delete_order_removes_items(db_engine):
    store = db.SqlAlchemyOrderStore(db_engine)
    await insert_order(store, make_order())

    assert await store.delete_order("ord-1") == 1

    async with db_engine.begin() as conn:
        rows = (await conn.execute(select(db.items).where(db.items.c.order_id == "ord-1"))).fetchall()
    assert rows == []
    assert await store.delete_order("ord-1") == 0


@pytest.mark.asyncio
async def test_service_update_replaces_items_in_postgres(db_engine):
    service = OrderService(db.SqlAlchemyOrderStore(db_engine))
    await service.create_order(
        {
            "numeroPedido": "ord-1",
            "valorTotal": 10,
            "dataCriacao": "2023-01-01T00:00:00Z",
            "items": [
                {"idItem": "1", "quantidadeItem": 1, "valorItem": 5},
                {"idItem": "2", "quantidadeItem": 1, "valorItem": 5},
            ],
        }
    )

    updated = await service.update_order(
        "ord-1",
        {
            "orderId": "ord-1",
            "value": 30,
            "creationDate": "2023-02-01T00:00:00.000Z",
            "items": [{"productId": 2, "quantity": 6, "price": 5}],
        },
    )

    assert updated.items == [Item(2, 6, 5.0)]
    assert (await service.get_order("ord-1")) == updated


@pytest.mark.asyncio
async def test_service_duplicate_create_in_postgres(db_engine):
    service = OrderService(db.SqlAlchemyOrderStore(db_engine))
    payload = {
        "numeroPedido": "ord-dup",
        "valorTotal": 10,
        "dataCriacao": "2023-01-01T00:00:00Z",
        "items": [{"idItem": "1", "quantidadeItem": 1, "valorItem": 10}],
    }
    first = await service.create_order(payload)

    with pytest.raises(DuplicateEntityError):
        await service.create_order({**payload, "valorTotal": 99})

    assert await service.get_order("ord-dup") == first
