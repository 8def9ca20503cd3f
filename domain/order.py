from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List


@dataclass(frozen=True)
class Item:
    product_id: int
    quantity: int
    price: float

    def to_dict(self) -> dict:
        return {"productId": self.product_id, "quantity": self.quantity, "price": self.price}


@dataclass(frozen=True)
class Order:
    order_id: str
    value: float
    creation_date: datetime
    items: List[Item] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "value": self.value,
            "creationDate": format_timestamp(self.creation_date),
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class OrderPage:
    total: int
    page: int
    size: int
    data: List[Order]


def format_timestamp(value: datetime) -> str:
    """Render an instant as UTC ISO-8601 with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"
