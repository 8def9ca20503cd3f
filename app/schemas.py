"""Pydantic schemas for HTTP API requests and responses."""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from domain.order import Order, OrderPage


class LoginRequest(BaseModel):
    """Request body for ``POST /auth/login``."""
    model_config = ConfigDict(extra="forbid")

    username: StrictStr = Field(..., min_length=1)
    password: StrictStr = Field(..., min_length=1)


class TokenResponse(BaseModel):
    token: str
    expiresInMs: Optional[int] = None


class ItemResponse(BaseModel):
    productId: int
    quantity: int
    price: float


class OrderResponse(BaseModel):
    """Canonical order as returned by every order endpoint."""
    orderId: str
    value: float
    creationDate: str
    items: List[ItemResponse]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls.model_validate(order.to_dict())


class OrderListResponse(BaseModel):
    total: int
    page: int
    size: int
    data: List[OrderResponse]

    @classmethod
    def from_domain(cls, page: OrderPage) -> "OrderListResponse":
        return cls(
            total=page.total,
            page=page.page,
            size=page.size,
            data=[OrderResponse.from_domain(order) for order in page.data],
        )


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None
    requestId: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: ErrorBody
