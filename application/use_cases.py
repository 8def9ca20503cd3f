from __future__ import annotations

from typing import Any, List, Optional, Protocol

from application.normalizer import normalize
from domain.errors import DuplicateEntityError, InvalidInputError, NotFoundError
from domain.order import Item, Order, OrderPage
from infrastructure.logging import StructuredLogger, get_logger
from infrastructure.metrics import metrics

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


class DuplicateKeyError(Exception):
    """Raised by a store when an insert hits the order_id uniqueness constraint."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Duplicate order_id {order_id!r}")


class Transaction(Protocol):
    async def __aenter__(self) -> "Transaction": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class OrderStore(Protocol):
    def transaction(self) -> Transaction: ...
    async def create_order(self, order: Order, tx: Optional[Transaction] = None) -> None: ...
    async def create_item(self, order_id: str, item: Item, tx: Optional[Transaction] = None) -> None: ...
    async def delete_items(self, order_id: str, tx: Optional[Transaction] = None) -> int: ...
    async def update_order_scalars(self, order_id: str, order: Order, tx: Optional[Transaction] = None) -> int: ...
    async def find_order(self, order_id: str, tx: Optional[Transaction] = None) -> Order | None: ...
    async def find_orders(self, offset: int, limit: int, tx: Optional[Transaction] = None) -> List[Order]: ...
    async def count_orders(self, tx: Optional[Transaction] = None) -> int: ...
    async def delete_order(self, order_id: str, tx: Optional[Transaction] = None) -> int: ...


class OrderService:
    """Order use cases: normalization plus transactional store calls.

    Business failures surface as ``domain.errors`` exceptions. Storage errors
    other than a duplicate key propagate unchanged.
    """

    def __init__(self, store: OrderStore, logger: Optional[StructuredLogger] = None):
        self.store = store
        self.logger = logger or get_logger("order-service")

    async def create_order(self, raw: Any) -> Order:
        order = normalize(raw)
        try:
            async with self.store.transaction() as tx:
                await self.store.create_order(order, tx=tx)
                for item in order.items:
                    await self.store.create_item(order.order_id, item, tx=tx)
                created = await self.store.find_order(order.order_id, tx=tx)
        except DuplicateKeyError as exc:
            self.logger.warning("order.duplicate", order_id=order.order_id)
            raise DuplicateEntityError(f"Order {order.order_id} already exists") from exc

        metrics.increment("orders_created_total")
        self.logger.info("order.created", order_id=order.order_id, items=len(order.items))
        return created

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.find_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(self, page: Optional[int] = None, size: Optional[int] = None) -> OrderPage:
        page = DEFAULT_PAGE if page is None else page
        size = DEFAULT_PAGE_SIZE if size is None else size
        if page < 1:
            raise InvalidInputError("page must be >= 1", details=[{"field": "page", "message": "must be >= 1"}])
        if size < 1:
            raise InvalidInputError("size must be >= 1", details=[{"field": "size", "message": "must be >= 1"}])

        total = await self.store.count_orders()
        data = await self.store.find_orders(offset=(page - 1) * size, limit=size)
        return OrderPage(total=total, page=page, size=size, data=data)

    async def update_order(self, order_id: str, raw: Any) -> Order:
        """Replace an order's value, date and full item set atomically."""
        if await self.store.find_order(order_id) is None:
            raise NotFoundError(f"Order {order_id} not found")

        incoming = normalize(raw)

        async with self.store.transaction() as tx:
            await self.store.delete_items(order_id, tx=tx)
            # the order may have been deleted since the existence check
            if await self.store.update_order_scalars(order_id, incoming, tx=tx) == 0:
                raise NotFoundError(f"Order {order_id} not found")
            for item in incoming.items:
                await self.store.create_item(order_id, item, tx=tx)
            updated = await self.store.find_order(order_id, tx=tx)

        metrics.increment("orders_updated_total")
        self.logger.info("order.updated", order_id=order_id, items=len(incoming.items))
        return updated

    async def delete_order(self, order_id: str) -> None:
        if await self.store.find_order(order_id) is None:
            raise NotFoundError(f"Order {order_id} not found")

        async with self.store.transaction() as tx:
            if await self.store.delete_order(order_id, tx=tx) == 0:
                raise NotFoundError(f"Order {order_id} not found")

        metrics.increment("orders_deleted_total")
        self.logger.info("order.deleted", order_id=order_id)
