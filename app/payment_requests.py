"""Seller payment-request workflow.

A request moves pending -> approved -> completed, or to rejected from either
open state. Creating a request reserves the amount on the seller's released
commissions; rejection releases the reservation and completion turns it into
a withdrawal. The allocation rows record exactly which commissions were held.
"""
from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.auth import User
from app.balance import get_seller_balance
from app.commission import ZERO, check_invariant, is_released, load_seller_commissions, quantize_money
from app.config import WithdrawalWindow
from app.core.clock import as_utc
from app.errors import PaymentRequestError, StoreUnavailable
from app.models import (
    ACTIVE_PAYMENT_REQUEST_STATUSES,
    PAYMENT_REQUEST_STATUS_ENUM,
    CommissionRecord,
    PaymentRequest,
    PaymentRequestAllocation,
    Seller,
)
from app.schemas import PaymentRequestCreate, PaymentRequestFilters

logger = logging.getLogger(__name__)


def get_payment_request(db: Session, request_id: int) -> PaymentRequest | None:
    return db.get(PaymentRequest, request_id)


def list_payment_requests(db: Session, filters: PaymentRequestFilters | None = None) -> Sequence[PaymentRequest]:
    filters = filters or PaymentRequestFilters()
    stmt = select(PaymentRequest)

    if filters.status:
        stmt = stmt.where(PaymentRequest.status == filters.status)

    if filters.seller_id is not None:
        stmt = stmt.where(PaymentRequest.seller_id == filters.seller_id)

    if filters.payment_method:
        stmt = stmt.where(PaymentRequest.payment_method == filters.payment_method)

    if filters.start_date:
        stmt = stmt.where(PaymentRequest.requested_at >= filters.start_date)

    if filters.end_date:
        stmt = stmt.where(PaymentRequest.requested_at <= filters.end_date)

    stmt = stmt.order_by(PaymentRequest.requested_at.desc(), PaymentRequest.id.desc())
    if filters.limit:
        stmt = stmt.limit(filters.limit)
    try:
        return db.execute(stmt).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("[PAYMENT_REQUESTS] Error listing requests")
        raise StoreUnavailable("Payment requests could not be loaded.") from exc


def payment_request_stats(db: Session) -> dict[str, Decimal | int]:
    stmt = (
        select(
            PaymentRequest.status,
            func.count(PaymentRequest.id),
            func.coalesce(func.sum(PaymentRequest.amount), 0),
        )
        .group_by(PaymentRequest.status)
    )
    counts = {status: 0 for status in PAYMENT_REQUEST_STATUS_ENUM}
    amounts = {status: ZERO for status in PAYMENT_REQUEST_STATUS_ENUM}
    for status, count, amount in db.execute(stmt).all():
        counts[status] = int(count or 0)
        amounts[status] = Decimal(str(amount or 0))

    return {
        "total": sum(counts.values()),
        **counts,
        "totalAmount": quantize_money(sum(amounts.values(), ZERO)),
        "pendingAmount": quantize_money(amounts["pending"]),
    }


def _has_open_request(db: Session, seller_id: int) -> bool:
    stmt = select(func.count(PaymentRequest.id)).where(
        PaymentRequest.seller_id == seller_id,
        PaymentRequest.status.in_(ACTIVE_PAYMENT_REQUEST_STATUSES),
    )
    return (db.execute(stmt).scalar_one() or 0) > 0


OPEN_REQUEST_INDEX = "uq_payment_requests_one_open_per_seller"


def _is_open_request_conflict(exc: IntegrityError) -> bool:
    """True when the failed insert collided with the one-open-request index."""
    message = str(exc.orig)
    # SQLite names the indexed column rather than the index.
    return OPEN_REQUEST_INDEX in message or "seller_payment_requests.seller_id" in message


def _reserve_commissions(
    records: Sequence[CommissionRecord],
    amount: Decimal,
    now: datetime,
) -> list[PaymentRequestAllocation]:
    """Hold ``amount`` on released commissions, oldest release first."""
    released = sorted(
        (record for record in records if is_released(record, now) and record.unclaimed_amount > 0),
        key=lambda record: (as_utc(record.available_for_withdrawal_at), record.id),
    )
    remaining = amount
    allocations: list[PaymentRequestAllocation] = []
    for record in released:
        if remaining <= 0:
            break
        take = min(record.unclaimed_amount, remaining)
        record.reserved_amount = Decimal(record.reserved_amount or 0) + take
        check_invariant(record)
        allocations.append(PaymentRequestAllocation(commission_id=record.id, amount=take, created_at=now))
        remaining -= take

    if remaining > 0:
        raise PaymentRequestError("Requested amount exceeds the available balance.")
    return allocations


def create_payment_request(
    db: Session,
    seller: Seller,
    payload: PaymentRequestCreate,
    *,
    now: datetime,
    tz: tzinfo,
    window: WithdrawalWindow,
) -> PaymentRequest:
    """Open a withdrawal request for ``seller``.

    Eligibility is re-checked here, and the partial unique index on open
    requests rejects a concurrent second insert for the same seller.
    """
    now = as_utc(now)
    if seller.status != "active":
        raise PaymentRequestError("Only active sellers can request payments.")
    if quantize_money(payload.amount) <= 0:
        raise PaymentRequestError("Requested amount must be at least 0.01.")

    balance = get_seller_balance(db, seller.id, now=now, tz=tz, window=window)
    if not balance.is_in_request_window:
        raise PaymentRequestError(
            f"Payment requests are accepted only between day {window.start_day} "
            f"and day {window.end_day} of each month."
        )
    if _has_open_request(db, seller.id):
        raise PaymentRequestError("An open payment request already exists.")
    if payload.amount > balance.available_balance:
        raise PaymentRequestError("Requested amount exceeds the available balance.")

    records = load_seller_commissions(db, seller.id)
    try:
        allocations = _reserve_commissions(records, payload.amount, now)
    except PaymentRequestError:
        db.rollback()
        raise

    request = PaymentRequest(
        seller_id=seller.id,
        amount=payload.amount,
        payment_method=payload.payment_method,
        payment_details=payload.payment_details(),
        status="pending",
        requested_at=now,
        created_at=now,
        updated_at=now,
        allocations=allocations,
    )
    db.add(request)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _is_open_request_conflict(exc):
            logger.warning("[PAYMENT_REQUESTS] Rejected concurrent request for seller %s", seller.seller_id_public)
            raise PaymentRequestError("An open payment request already exists.") from exc
        logger.exception("[PAYMENT_REQUESTS] Request for seller %s violated a constraint", seller.seller_id_public)
        raise PaymentRequestError("Payment request could not be saved.") from exc
    db.refresh(request)
    logger.info(
        "[PAYMENT_REQUESTS] Seller %s requested %s via %s (request %s)",
        seller.seller_id_public,
        request.amount,
        request.payment_method,
        request.id,
    )
    return request


def _require_status(request: PaymentRequest, allowed: tuple[str, ...], action: str) -> None:
    if request.status not in allowed:
        raise PaymentRequestError(f"Cannot {action} a payment request that is {request.status}.")


def _release_allocations(request: PaymentRequest, withdraw: bool) -> None:
    for allocation in request.allocations:
        commission = allocation.commission
        amount = Decimal(allocation.amount or 0)
        commission.reserved_amount = Decimal(commission.reserved_amount or 0) - amount
        if withdraw:
            commission.withdrawn_amount = Decimal(commission.withdrawn_amount or 0) + amount
        check_invariant(commission)


def approve_payment_request(db: Session, request: PaymentRequest, admin: User, now: datetime) -> PaymentRequest:
    now = as_utc(now)
    _require_status(request, ("pending",), "approve")
    request.status = "approved"
    request.approved_at = now
    request.processed_by = admin.id
    request.updated_at = now
    db.add(request)
    db.commit()
    db.refresh(request)
    crud.log_admin_action(db, admin.id, "payment_request.approve", {"request_id": request.id, "amount": request.amount})
    logger.info("[ADMIN_PAYMENT_REQUESTS] Request %s approved by %s", request.id, admin.username)
    return request


def reject_payment_request(
    db: Session,
    request: PaymentRequest,
    admin: User,
    reason: str,
    now: datetime,
) -> PaymentRequest:
    now = as_utc(now)
    reason = (reason or "").strip()
    if not reason:
        raise PaymentRequestError("Rejection reason is required.")
    if not request.is_open:
        raise PaymentRequestError(f"Cannot reject a payment request that is {request.status}.")

    _release_allocations(request, withdraw=False)
    request.status = "rejected"
    request.rejected_at = now
    request.rejection_reason = reason
    request.processed_by = admin.id
    request.updated_at = now
    db.add(request)
    db.commit()
    db.refresh(request)
    crud.log_admin_action(
        db,
        admin.id,
        "payment_request.reject",
        {"request_id": request.id, "amount": request.amount, "reason": reason},
    )
    logger.info("[ADMIN_PAYMENT_REQUESTS] Request %s rejected by %s", request.id, admin.username)
    return request


def complete_payment_request(
    db: Session,
    request: PaymentRequest,
    admin: User,
    now: datetime,
    proof_url: str | None = None,
    proof_file_path: str | None = None,
) -> PaymentRequest:
    """Mark an approved request as paid and convert its reservations into withdrawals."""
    now = as_utc(now)
    _require_status(request, ("approved",), "complete")

    _release_allocations(request, withdraw=True)
    request.status = "completed"
    request.completed_at = now
    request.payment_proof_url = proof_url or None
    request.payment_proof_file_path = proof_file_path or None
    request.processed_by = admin.id
    request.updated_at = now
    db.add(request)
    db.commit()
    db.refresh(request)
    crud.log_admin_action(db, admin.id, "payment_request.complete", {"request_id": request.id, "amount": request.amount})
    logger.info("[ADMIN_PAYMENT_REQUESTS] Request %s completed by %s", request.id, admin.username)
    return request
