"""Normalization of order payloads into the canonical domain ``Order``.

Two wire shapes are accepted. The canonical shape mirrors the API output
(``orderId``, ``value``, ``creationDate``, ``items[].productId`` ...). The
incoming shape is the legacy one (``numeroPedido``, ``valorTotal``,
``dataCriacao``, ``items[].idItem`` ...). Both schemas are strict and reject
unknown fields.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from domain.errors import InvalidInputError, InvalidItemIdError
from domain.order import Item, Order

MAX_PRODUCT_ID = 2**63 - 1
MAX_QUANTITY = 2**31 - 1

_NUMERIC_ID = re.compile(r"[0-9]+")
_FRACTION = re.compile(r"\.(\d+)")


def _require_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("Input should be a number")
    return value


# JSON number; booleans and numeric strings are rejected
Number = Annotated[float, BeforeValidator(_require_number)]


class _StrictSchema(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)


class CanonicalItemSchema(_StrictSchema):
    productId: StrictInt = Field(..., ge=0, le=MAX_PRODUCT_ID)
    quantity: StrictInt = Field(..., ge=0, le=MAX_QUANTITY)
    price: Number = Field(..., ge=0)


class CanonicalOrderSchema(_StrictSchema):
    orderId: StrictStr = Field(..., min_length=1)
    value: Number = Field(..., ge=0)
    creationDate: StrictStr
    items: List[CanonicalItemSchema] = Field(..., min_length=1)


class IncomingItemSchema(_StrictSchema):
    idItem: StrictStr
    quantidadeItem: StrictInt = Field(..., ge=0, le=MAX_QUANTITY)
    valorItem: Number = Field(..., ge=0)


class IncomingOrderSchema(_StrictSchema):
    numeroPedido: StrictStr = Field(..., min_length=1)
    valorTotal: Number = Field(..., ge=0)
    dataCriacao: StrictStr
    items: List[IncomingItemSchema] = Field(..., min_length=1)


S = TypeVar("S", bound=BaseModel)


@dataclass(frozen=True)
class ParseResult(Generic[S]):
    """Outcome of validating a payload against one schema."""

    value: Optional[S] = None
    errors: Optional[List[dict]] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def parse_as(schema: Type[S], raw: Any) -> ParseResult[S]:
    try:
        return ParseResult(value=schema.model_validate(raw))
    except PydanticValidationError as exc:
        return ParseResult(errors=describe_errors(exc.errors(include_url=False)))


def describe_errors(errors: List[dict]) -> List[dict]:
    """Reduce pydantic error dicts to JSON-safe ``{field, message}`` pairs."""
    described = []
    for error in errors:
        loc = ".".join(str(part) for part in error.get("loc", ()))
        described.append({"field": loc or "body", "message": error.get("msg", "invalid value")})
    return described


def summarize(errors: List[dict]) -> str:
    return "; ".join(f"{e['field']} {e['message']}" for e in errors) or "Invalid request payload"


def parse_timestamp(value: str, field_name: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime truncated to ms."""
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    # fromisoformat needs exactly six fractional digits on older interpreters
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        # an offset can push calendar-edge dates outside datetime's range
        parsed = parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError) as exc:
        raise InvalidInputError(
            f"Invalid {field_name}",
            details=[{"field": field_name, "message": "must be a valid date"}],
        ) from exc

    return parsed.replace(microsecond=parsed.microsecond // 1000 * 1000)


def coerce_item_id(raw_id: str, index: int) -> int:
    text = raw_id.strip()
    if not _NUMERIC_ID.fullmatch(text):
        raise InvalidItemIdError(
            "idItem must be numeric",
            details=[{"field": f"items.{index}.idItem", "message": f"'{raw_id}' is not an integer"}],
        )
    return int(text)


def _from_canonical(schema: CanonicalOrderSchema) -> Order:
    return Order(
        order_id=schema.orderId,
        value=schema.value,
        creation_date=parse_timestamp(schema.creationDate, "creationDate"),
        items=[
            Item(product_id=item.productId, quantity=item.quantity, price=item.price)
            for item in schema.items
        ],
    )


def _from_incoming(schema: IncomingOrderSchema) -> Order:
    creation_date = parse_timestamp(schema.dataCriacao, "dataCriacao")
    items = [
        Item(
            product_id=coerce_item_id(item.idItem, index),
            quantity=item.quantidadeItem,
            price=item.valorItem,
        )
        for index, item in enumerate(schema.items)
    ]
    return Order(
        order_id=schema.numeroPedido,
        value=schema.valorTotal,
        creation_date=creation_date,
        items=items,
    )


def normalize(raw: Any) -> Order:
    """Turn a canonical or incoming payload into a validated ``Order``.

    Raises ``InvalidItemIdError`` when an incoming item id is not an integer
    and ``InvalidInputError`` for every other validation failure.
    """
    canonical = parse_as(CanonicalOrderSchema, raw)
    if canonical.ok:
        return _from_canonical(canonical.value)

    incoming = parse_as(IncomingOrderSchema, raw)
    if not incoming.ok:
        errors = canonical.errors if isinstance(raw, dict) and "orderId" in raw else incoming.errors
        raise InvalidInputError(summarize(errors), details=errors)

    order = _from_incoming(incoming.value)

    recheck = parse_as(CanonicalOrderSchema, order.to_dict())
    if not recheck.ok:
        raise InvalidInputError(summarize(recheck.errors), details=recheck.errors)
    return order
