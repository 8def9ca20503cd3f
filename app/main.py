from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from app.auth import TOKEN_COOKIE, get_token_service, require_user
from app.errors import domain_error_handler, generic_error_handler, request_validation_error_handler
from app.middleware import make_request_logging_middleware
from app.schemas import LoginRequest, OrderListResponse, OrderResponse, TokenResponse
from application.auth import TokenService
from application.use_cases import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, OrderService
from domain.errors import DomainError
from infrastructure import db
from infrastructure.config import Settings
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics


def get_order_service(request: Request) -> OrderService:
    engine = request.app.state.engine
    if engine is None:
        raise RuntimeError("Database not initialized")
    return OrderService(db.SqlAlchemyOrderStore(engine), logger=request.app.state.logger)


router = APIRouter()
auth_router = APIRouter(prefix="/auth", tags=["auth"])
order_router = APIRouter(prefix="/order", tags=["orders"], dependencies=[Depends(require_user)])


@router.get("/health")
async def health(request: Request) -> dict:
    return {"service": request.app.state.settings.service_name, "status": "ok"}


@router.get("/metrics", response_class=PlainTextResponse)
async def get_metrics() -> str:
    return metrics.get_prometheus_text()


@auth_router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    tokens: TokenService = Depends(get_token_service),
) -> TokenResponse:
    """Exchange credentials for a token, also set as an httpOnly cookie."""
    issued = tokens.authenticate(body.username, body.password)
    response.set_cookie(
        key=TOKEN_COOKIE,
        value=issued.token,
        expires=issued.expires_at,
        httponly=True,
        secure=request.app.state.settings.cookie_secure,
        samesite="lax",
        path="/",
    )
    return TokenResponse(token=issued.token, expiresInMs=issued.expires_in_ms)


@order_router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    response: Response,
    payload: Dict[str, Any] = Body(...),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Create an order from an incoming (legacy) or canonical payload."""
    order = await service.create_order(payload)
    response.headers["Location"] = f"/order/{order.order_id}"
    return OrderResponse.from_domain(order)


# Declared before /{order_id} so "list" is not captured as an id.
@order_router.get("/list", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(DEFAULT_PAGE, ge=1),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    result = await service.list_orders(page=page, size=size)
    return OrderListResponse.from_domain(result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, service: OrderService = Depends(get_order_service)) -> OrderResponse:
    order = await service.get_order(order_id)
    return OrderResponse.from_domain(order)


@order_router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Replace the order and its whole item set."""
    order = await service.update_order(order_id, payload)
    return OrderResponse.from_domain(order)


@order_router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: str, service: OrderService = Depends(get_order_service)) -> Response:
    await service.delete_order(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around an explicit ``Settings`` instance."""
    settings = settings or Settings.from_env()
    logger = get_logger(settings.service_name, settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the engine and tables on startup, dispose on shutdown."""
        owns_engine = app.state.engine is None
        if owns_engine:
            app.state.engine = db.get_engine(settings.db_dsn)
        async with app.state.engine.begin() as conn:
            await conn.run_sync(db.metadata.create_all)
        logger.info("Order service started")

        yield

        if owns_engine and app.state.engine is not None:
            await app.state.engine.dispose()
            app.state.engine = None

    app = FastAPI(title="Order Service", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.logger = logger
    app.state.engine = None
    app.state.token_service = TokenService.from_settings(settings, logger=logger)

    # Register error handlers
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    app.middleware("http")(make_request_logging_middleware(logger))

    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(order_router)
    return app


app = create_app()
