"""Credits API: balance, history, tool consumption, grants, and purchases."""

import asyncio
import contextlib
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_catalog, get_notifier
from app.core.config import settings
from app.core.database import get_db
from app.schemas.credits import (
    ConsumeRequest,
    ConsumeResponse,
    CreditBalanceResponse,
    CreditGrantRequest,
    CreditGrantResponse,
    CreditHistoryResponse,
    CreditPackageResponse,
    PurchaseCompleteRequest,
    PurchaseCompleteResponse,
    PurchaseOrderCreateRequest,
    PurchaseOrderResponse,
    ReconciliationResponse,
    ToolCostRefreshResponse,
    ToolCostResponse,
)
from app.services.credits import (
    InvalidReferenceError,
    RealtimeNotifier,
    ToolCostCatalog,
    consume,
    create_purchase_order,
    credit_purchase,
    get_balance,
    get_transaction_history,
    grant_credits,
    list_packages,
    reconcile_balance,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


@router.get("/balance", response_model=CreditBalanceResponse)
def get_credit_balance(
    account_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Get the credit balance for an account (zero if it has never been credited)."""
    return CreditBalanceResponse.model_validate(get_balance(db, account_id))


@router.get("/reconcile", response_model=ReconciliationResponse)
def reconcile_credit_balance(
    account_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Compare the stored balance against the sum of the transaction log."""
    return ReconciliationResponse.model_validate(reconcile_balance(db, account_id))


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/history", response_model=CreditHistoryResponse)
def get_credit_history(
    account_id: uuid.UUID = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.HISTORY_MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Get paginated credit transaction history for an account."""
    transactions, total = get_transaction_history(db, account_id, page, page_size)
    return CreditHistoryResponse(
        items=transactions,
        total=total,
        page=page,
        page_size=page_size,
    )


# ---------------------------------------------------------------------------
# Tool costs & consumption
# ---------------------------------------------------------------------------


@router.get("/tool-costs", response_model=list[ToolCostResponse])
def list_tool_costs(catalog: ToolCostCatalog = Depends(get_catalog)):
    return [ToolCostResponse.model_validate(tool) for tool in catalog.list_tools()]


@router.post("/tool-costs/refresh", response_model=ToolCostRefreshResponse)
def refresh_tool_costs(
    db: Session = Depends(get_db),
    catalog: ToolCostCatalog = Depends(get_catalog),
):
    """Reload tool prices after an admin edits them."""
    return ToolCostRefreshResponse(tools_loaded=catalog.refresh(db))


@router.post("/consume", response_model=ConsumeResponse)
def consume_credits_endpoint(
    payload: ConsumeRequest,
    db: Session = Depends(get_db),
    catalog: ToolCostCatalog = Depends(get_catalog),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Charge an account for one use of a billable tool.

    Returns 402 with the required and available amounts when the balance
    is too low; nothing is deducted in that case.
    """
    try:
        result = consume(
            db,
            payload.account_id,
            payload.tool_type,
            payload.metadata,
            catalog=catalog,
            notifier=notifier,
        )
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if not result.allowed:
        raise HTTPException(
            status_code=402,
            detail={
                "message": "Insufficient credits",
                "tool_type": result.tool_type,
                "required": result.required,
                "available": result.current_balance,
                "shortfall": result.shortfall,
            },
        )
    return ConsumeResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Admin grant
# ---------------------------------------------------------------------------


@router.post("/grant", response_model=CreditGrantResponse, status_code=201)
def grant_credits_endpoint(
    payload: CreditGrantRequest,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Add credits to an account (admin/internal)."""
    try:
        result = grant_credits(
            db,
            payload.account_id,
            payload.amount,
            payload.reason,
            granted_by=payload.granted_by,
            notifier=notifier,
        )
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CreditGrantResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Packages & purchases
# ---------------------------------------------------------------------------


@router.get("/packages", response_model=list[CreditPackageResponse])
def list_credit_packages(db: Session = Depends(get_db)):
    return list_packages(db)


@router.post("/purchase-orders", response_model=PurchaseOrderResponse, status_code=201)
def create_purchase_order_endpoint(
    payload: PurchaseOrderCreateRequest,
    db: Session = Depends(get_db),
):
    """Open a pending order for a credit package at checkout."""
    try:
        return create_purchase_order(db, payload.account_id, payload.package_id)
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/purchase-orders/{order_id}/complete", response_model=PurchaseCompleteResponse)
def complete_purchase_order(
    order_id: str,
    payload: PurchaseCompleteRequest | None = None,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Credit a confirmed payment. Repeated callbacks return ``already_processed``."""
    try:
        result = credit_purchase(
            db,
            order_id,
            payment_transaction_id=payload.payment_transaction_id if payload else None,
            notifier=notifier,
        )
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return PurchaseCompleteResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Realtime balance changes
# ---------------------------------------------------------------------------


@router.websocket("/ws/{account_id}")
async def credits_websocket(websocket: WebSocket, account_id: uuid.UUID) -> None:
    """Push a ``balance_changed`` hint every time the account's ledger changes.

    Clients re-fetch ``/credits/balance`` on each event. Incoming frames are
    ignored; the stream ends when the client disconnects.
    """
    notifier: RealtimeNotifier = websocket.app.state.notifier
    subscription = notifier.subscribe(account_id)
    try:
        await websocket.accept()
    except Exception:
        notifier.unsubscribe(subscription)
        raise

    async def _forward_events() -> None:
        while True:
            event = await subscription.get()
            await websocket.send_json(event)

    sender = asyncio.create_task(_forward_events())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Realtime client for account %s disconnected", account_id)
    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await sender
        notifier.unsubscribe(subscription)
