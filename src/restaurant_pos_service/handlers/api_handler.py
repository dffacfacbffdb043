"""FastAPI application for the POS terminal API."""

import logging
from typing import Annotated

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from restaurant_pos_service.errors import (
    AuthorizationError,
    ConcurrencyError,
    NotFoundError,
    PersistenceError,
    POSError,
    SettlementError,
    StateError,
    ValidationError,
)
from restaurant_pos_service.models.cash_models import CashMovementType, CashSession
from restaurant_pos_service.models.money import Money
from restaurant_pos_service.models.order_models import (
    CartLineItem,
    Order,
    OrderStatus,
    OrderType,
    Payment,
)
from restaurant_pos_service.services.cash_session_service import CashSessionService
from restaurant_pos_service.services.order_service import OrderService

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class SubmitOrderRequest(BaseModel):
    """Request model for order submission."""

    scope_id: str = Field(..., description="Terminal or shift submitting the order")
    order_type: OrderType
    line_items: list[CartLineItem]
    delivery_fee: Money | None = None
    table_ref: str | None = None
    service_fee_bps: int = Field(default=0, description="Service fee in basis points (DINE_IN)")
    notes: str | None = None


class SettlementRequest(BaseModel):
    """Request model for payment confirmation."""

    payments: list[Payment]


class SettlementResponse(BaseModel):
    """Response model for a confirmed settlement."""

    order: Order
    change_due: Money
    amount_paid: Money


class TransitionRequest(BaseModel):
    """Request model for a status change."""

    status: OrderStatus
    notes: str | None = None


class OpenSessionRequest(BaseModel):
    """Request model for opening a cash session."""

    opening_balance: Money


class MovementRequest(BaseModel):
    """Request model for a withdrawal or supply."""

    movement_type: CashMovementType
    amount: Money
    description: str = Field(..., min_length=1)


class CloseSessionRequest(BaseModel):
    """Request model for closing a cash session."""

    counted_balance: Money | None = None
    notes: str | None = None


class CashSessionResponse(BaseModel):
    """A cash session with its derived balances."""

    session: CashSession
    expected_balance: Money
    total_sales: Money
    difference: Money | None = None

    @classmethod
    def from_session(cls, session: CashSession) -> "CashSessionResponse":
        return cls(
            session=session,
            expected_balance=session.expected_balance,
            total_sales=session.total_sales,
            difference=session.difference,
        )


def status_code_for(error: POSError) -> int:
    """HTTP status code for an error family."""
    if isinstance(error, ValidationError | SettlementError):
        return 422
    if isinstance(error, StateError | ConcurrencyError):
        return 409
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, PersistenceError):
        return 503
    return 500


def create_app(order_service: OrderService, cash_session_service: CashSessionService) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        order_service: Service for orders, settlement and transitions
        cash_session_service: Service for cash sessions

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Restaurant POS Order Manager API",
        description="Order, settlement and cash session API for POS terminals",
        version="1.0.0",
    )

    # Store services in app state for access in route handlers
    app.state.order_service = order_service
    app.state.cash_session_service = cash_session_service

    @app.exception_handler(POSError)
    async def handle_pos_error(request: Request, exc: POSError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    @app.post("/orders", response_model=Order, status_code=201, tags=["Orders"])
    async def submit_order(request: SubmitOrderRequest) -> Order:
        """Submit a terminal's cart as a new order."""
        order: Order = await app.state.order_service.submit_order(
            scope_id=request.scope_id,
            order_type=request.order_type,
            line_items=request.line_items,
            delivery_fee=request.delivery_fee,
            table_ref=request.table_ref,
            service_fee_bps=request.service_fee_bps,
            notes=request.notes,
        )
        return order

    @app.get("/orders/board", response_model=dict[OrderStatus, list[Order]], tags=["Orders"])
    async def get_board(
        status: Annotated[list[OrderStatus] | None, Query()] = None,
        limit: int = 50,
    ) -> dict[OrderStatus, list[Order]]:
        """Orders grouped by status for the status board.

        Args:
            status: Columns to load; every non-terminal status when omitted
            limit: Maximum orders per column
        """
        board: dict[OrderStatus, list[Order]] = await app.state.order_service.list_board(
            statuses=status, limit=limit
        )
        return board

    @app.get("/orders/{order_id}", response_model=Order, tags=["Orders"])
    async def get_order(order_id: str) -> Order:
        order: Order = await app.state.order_service.get_order(order_id)
        return order

    @app.post("/orders/{order_id}/settlement", response_model=SettlementResponse, tags=["Orders"])
    async def settle_order(order_id: str, request: SettlementRequest) -> SettlementResponse:
        """Confirm the payments of an order.

        Responds 422 with the remaining amount when the payments fall short.
        """
        result = await app.state.order_service.settle_order(order_id, request.payments)
        return SettlementResponse(
            order=result.order,
            change_due=result.change_due,
            amount_paid=result.amount_paid,
        )

    @app.patch("/orders/{order_id}/status", response_model=Order, tags=["Orders"])
    async def change_status(
        order_id: str,
        request: TransitionRequest,
        x_acting_role: Annotated[str | None, Header()] = None,
    ) -> Order:
        """Request a status transition on behalf of the role in X-Acting-Role."""
        if not x_acting_role:
            raise HTTPException(status_code=400, detail="Missing X-Acting-Role header")

        order: Order = await app.state.order_service.request_transition(
            order_id=order_id,
            target_status=request.status,
            acting_role=x_acting_role,
            notes=request.notes,
        )
        return order

    @app.post("/orders/{order_id}/cash-session", response_model=Order, tags=["Orders"])
    async def fold_order(order_id: str) -> Order:
        """Record a completed, settled order in its scope's open cash session.

        Safe to repeat; an order already recorded is returned unchanged.
        """
        order: Order = await app.state.order_service.fold_settled_order(order_id)
        return order

    @app.get(
        "/cash-sessions/{scope_id}/current",
        response_model=CashSessionResponse,
        tags=["Cash Sessions"],
    )
    async def get_current_session(scope_id: str) -> CashSessionResponse:
        """The open session of a scope; 409 when the scope has none."""
        session = await app.state.cash_session_service.require_open_session(scope_id)
        return CashSessionResponse.from_session(session)

    @app.post(
        "/cash-sessions/{scope_id}/open",
        response_model=CashSessionResponse,
        status_code=201,
        tags=["Cash Sessions"],
    )
    async def open_session(scope_id: str, request: OpenSessionRequest) -> CashSessionResponse:
        session = await app.state.cash_session_service.open_session(
            scope_id, request.opening_balance
        )
        return CashSessionResponse.from_session(session)

    @app.post(
        "/cash-sessions/{scope_id}/movements",
        response_model=CashSessionResponse,
        tags=["Cash Sessions"],
    )
    async def record_movement(scope_id: str, request: MovementRequest) -> CashSessionResponse:
        session = await app.state.cash_session_service.record_movement(
            scope_id=scope_id,
            movement_type=request.movement_type,
            amount=request.amount,
            description=request.description,
        )
        return CashSessionResponse.from_session(session)

    @app.post(
        "/cash-sessions/{session_id}/close",
        response_model=CashSessionResponse,
        tags=["Cash Sessions"],
    )
    async def close_session(session_id: str, request: CloseSessionRequest) -> CashSessionResponse:
        session = await app.state.cash_session_service.close_session(
            session_id,
            counted_balance=request.counted_balance,
            notes=request.notes,
        )
        return CashSessionResponse.from_session(session)

    @app.get(
        "/cash-sessions/{scope_id}/history",
        response_model=list[CashSessionResponse],
        tags=["Cash Sessions"],
    )
    async def list_sessions(scope_id: str, limit: int = 20) -> list[CashSessionResponse]:
        sessions = await app.state.cash_session_service.list_sessions(scope_id, limit=limit)
        return [CashSessionResponse.from_session(session) for session in sessions]

    return app
