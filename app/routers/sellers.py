"""Seller-facing commission, balance and payment-request routes."""
from __future__ import annotations

import logging
from datetime import date, datetime

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.balance import get_seller_balance
from app.commission import get_commission_stats, list_seller_commissions
from app.config import Settings
from app.database import get_session
from app.dependencies import get_app_settings, get_now
from app.errors import InvariantViolation, PaymentRequestError, StoreUnavailable
from app.models import Seller
from app.payment_requests import create_payment_request, list_payment_requests
from app.routers.auth import get_current_seller
from app.schemas import (
    CommissionRead,
    CommissionStatsRead,
    PaymentRequestCreate,
    PaymentRequestFilters,
    PaymentRequestRead,
    SellerBalanceRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/seller", tags=["Seller"])

BALANCE_UNAVAILABLE = "Unable to load balance, please retry."
STATS_UNAVAILABLE = "Unable to load commissions, please retry."


def _parse_date_param(value: str | None, field_label: str) -> date | None:
    if not value:
        return None
    try:
        return date_parser.isoparse(value).date()
    except (ValueError, OverflowError) as exc:
        raise HTTPException(status_code=400, detail=f"{field_label} must be YYYY-MM-DD.") from exc


def _report_invariant_breach(seller: Seller, operation: str) -> None:
    # Not transient: overdrawn commission rows need manual correction.
    logger.critical(
        "[COMMISSION_INVARIANT] Overdrawn commission data blocked %s for seller %s",
        operation,
        seller.seller_id_public,
        exc_info=True,
    )


@router.get("/commissions", response_model=list[CommissionRead])
def commissions(
    period: str = Query("all"),
    start: str | None = Query(None),
    end: str | None = Query(None),
    seller: Seller = Depends(get_current_seller),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    start_date = _parse_date_param(start, "Start date")
    end_date = _parse_date_param(end, "End date")
    try:
        return list_seller_commissions(db, seller.id, now, settings.tz, period, start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail=STATS_UNAVAILABLE)


@router.get("/commissions/stats", response_model=CommissionStatsRead)
def commission_stats(
    period: str = Query("all"),
    start: str | None = Query(None),
    end: str | None = Query(None),
    seller: Seller = Depends(get_current_seller),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    start_date = _parse_date_param(start, "Start date")
    end_date = _parse_date_param(end, "End date")
    try:
        stats = get_commission_stats(
            db,
            seller.id,
            period,
            now=now,
            tz=settings.tz,
            pending_policy=settings.pending_policy,
            start=start_date,
            end=end_date,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InvariantViolation:
        _report_invariant_breach(seller, "commission stats")
        raise HTTPException(status_code=503, detail=STATS_UNAVAILABLE)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail=STATS_UNAVAILABLE)

    return CommissionStatsRead(
        currentMonth=stats.current_month,
        totalPending=stats.total_pending,
        totalPaid=stats.total_paid,
        totalAmount=stats.total_amount,
    )


@router.get("/balance", response_model=SellerBalanceRead)
def balance(
    seller: Seller = Depends(get_current_seller),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    """Balance and request eligibility; fails closed when it cannot be computed."""
    try:
        result = get_seller_balance(db, seller.id, now=now, tz=settings.tz, window=settings.withdrawal_window)
    except InvariantViolation:
        _report_invariant_breach(seller, "balance")
        return JSONResponse(status_code=503, content={"detail": BALANCE_UNAVAILABLE, "can_request": False})
    except StoreUnavailable:
        logger.error("[PAYMENT_REQUESTS] Balance unavailable for seller %s", seller.seller_id_public)
        return JSONResponse(status_code=503, content={"detail": BALANCE_UNAVAILABLE, "can_request": False})
    return result


@router.get("/payment-requests", response_model=list[PaymentRequestRead])
def my_payment_requests(
    status: str | None = Query(None),
    limit: int | None = Query(None, gt=0, le=500),
    seller: Seller = Depends(get_current_seller),
    db: Session = Depends(get_session),
):
    try:
        filters = PaymentRequestFilters(status=status, seller_id=seller.id, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid status filter.") from exc
    try:
        return list_payment_requests(db, filters)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Unable to load payment requests, please retry.")


@router.post("/payment-requests", response_model=PaymentRequestRead, status_code=201)
def request_payment(
    payload: PaymentRequestCreate,
    seller: Seller = Depends(get_current_seller),
    db: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_now),
):
    try:
        return create_payment_request(
            db,
            seller,
            payload,
            now=now,
            tz=settings.tz,
            window=settings.withdrawal_window,
        )
    except PaymentRequestError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvariantViolation:
        db.rollback()
        _report_invariant_breach(seller, "payment request")
        raise HTTPException(status_code=503, detail=BALANCE_UNAVAILABLE)
    except StoreUnavailable:
        db.rollback()
        raise HTTPException(status_code=503, detail=BALANCE_UNAVAILABLE)
