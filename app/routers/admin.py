"""Admin routes for reviewing and settling seller payment requests."""
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.auth import User
from app.commission import record_order_commission
from app.config import Settings
from app.database import get_session
from app.dependencies import get_app_settings, get_now
from app.errors import InvariantViolation, PaymentRequestError, StoreUnavailable
from app.models import PAID_ORDER_STATUSES, PaymentRequest, VisaOrder
from app.payment_requests import (
    approve_payment_request,
    complete_payment_request,
    get_payment_request,
    list_payment_requests,
    payment_request_stats,
    reject_payment_request,
)
from app.routers.auth import get_admin_user
from app.schemas import (
    CommissionRead,
    PaymentRequestComplete,
    PaymentRequestFilters,
    PaymentRequestRead,
    PaymentRequestReject,
    PaymentRequestStats,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/payment-requests", tags=["Admin"])
orders_router = APIRouter(prefix="/admin/orders", tags=["Admin"])


def _load_request(db: Session, request_id: int) -> PaymentRequest:
    request = get_payment_request(db, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return request


def _transition(db: Session, action, *args, **kwargs) -> PaymentRequest:
    try:
        return action(db, *args, **kwargs)
    except PaymentRequestError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvariantViolation:
        db.rollback()
        logger.critical("[COMMISSION_INVARIANT] Overdrawn commission data blocked %s", action.__name__, exc_info=True)
        raise HTTPException(status_code=500, detail="Commission balances are inconsistent; request left unchanged.")


@router.get("", response_model=list[PaymentRequestRead])
def list_requests(
    status: str | None = Query(None),
    seller_id: int | None = Query(None),
    payment_method: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int | None = Query(None, gt=0, le=500),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """List payment requests across sellers (admin only)."""
    try:
        filters = PaymentRequestFilters(
            status=status,
            seller_id=seller_id,
            payment_method=payment_method,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid payment request filters.") from exc
    try:
        return list_payment_requests(db, filters)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Unable to load payment requests, please retry.")


@router.get("/stats", response_model=PaymentRequestStats)
def request_stats(db: Session = Depends(get_session), admin: User = Depends(get_admin_user)):
    return payment_request_stats(db)


@router.get("/{request_id}", response_model=PaymentRequestRead)
def request_detail(request_id: int, db: Session = Depends(get_session), admin: User = Depends(get_admin_user)):
    return _load_request(db, request_id)


@router.post("/{request_id}/approve", response_model=PaymentRequestRead)
def approve_request(
    request_id: int,
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
    now: datetime = Depends(get_now),
):
    request = _load_request(db, request_id)
    return _transition(db, approve_payment_request, request, admin, now)


@router.post("/{request_id}/reject", response_model=PaymentRequestRead)
def reject_request(
    request_id: int,
    payload: PaymentRequestReject,
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
    now: datetime = Depends(get_now),
):
    request = _load_request(db, request_id)
    return _transition(db, reject_payment_request, request, admin, payload.reason, now)


@router.post("/{request_id}/complete", response_model=PaymentRequestRead)
def complete_request(
    request_id: int,
    payload: PaymentRequestComplete,
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
    now: datetime = Depends(get_now),
):
    request = _load_request(db, request_id)
    return _transition(
        db,
        complete_payment_request,
        request,
        admin,
        now,
        proof_url=payload.proof_url,
        proof_file_path=payload.proof_file_path,
    )


@orders_router.post("/{order_id}/commission", response_model=CommissionRead)
def accrue_order_commission(
    order_id: int,
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    """Record the seller commission for a paid order (idempotent)."""
    order = db.get(VisaOrder, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.payment_status not in PAID_ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="Order has not been paid.")
    try:
        record = record_order_commission(db, order, now, settings.commission_hold_days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=400, detail="Order has no seller.")
    logger.info("[ADMIN_COMMISSIONS] Order %s accrued by %s", order.order_number, admin.username)
    return record
