"""Seller balance and the monthly withdrawal-window gate."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.commission import ZERO, check_invariant, is_released, load_seller_commissions, quantize_money
from app.config import WithdrawalWindow
from app.core.clock import add_months, as_utc, day_after, local_midnight, month_start
from app.errors import StoreUnavailable
from app.models import ACTIVE_PAYMENT_REQUEST_STATUSES, CommissionRecord, PaymentRequest

logger = logging.getLogger(__name__)


@dataclass
class SellerBalance:
    available_balance: Decimal
    pending_balance: Decimal
    next_withdrawal_date: datetime | None
    can_request: bool
    last_request_date: datetime | None
    next_request_window_start: datetime
    next_request_window_end: datetime
    is_in_request_window: bool


def is_in_request_window(today: date, window: WithdrawalWindow) -> bool:
    return window.contains(today.day)


def next_request_window(now: datetime, tz: tzinfo, window: WithdrawalWindow) -> tuple[datetime, datetime]:
    """Start and (exclusive) end of the current or next request window.

    The current month's window is returned while it is upcoming or open;
    once its last day has passed the following month's window is returned.
    Both instants fall on local midnight in ``tz``.
    """
    now = as_utc(now)
    today = now.astimezone(tz).date()
    anchor = month_start(today)
    if today.day > window.end_day:
        anchor = add_months(anchor, 1)
    start = local_midnight(anchor.replace(day=window.start_day), tz)
    end = local_midnight(day_after(anchor.replace(day=window.end_day)), tz)
    return start, end


def compute_balance(
    records: Iterable[CommissionRecord],
    requests: Iterable[PaymentRequest],
    now: datetime,
    tz: tzinfo,
    window: WithdrawalWindow,
) -> SellerBalance:
    now = as_utc(now)
    available = ZERO
    pending = ZERO
    next_release: datetime | None = None

    for record in records:
        check_invariant(record)
        if is_released(record, now):
            available += record.unclaimed_amount
            continue
        pending += record.unclaimed_amount
        released_at = as_utc(record.available_for_withdrawal_at)
        if released_at is not None and (next_release is None or released_at < next_release):
            next_release = released_at

    last_request: datetime | None = None
    has_open_request = False
    for request in requests:
        requested_at = as_utc(request.requested_at)
        if requested_at is not None and (last_request is None or requested_at > last_request):
            last_request = requested_at
        if request.status in ACTIVE_PAYMENT_REQUEST_STATUSES:
            has_open_request = True

    in_window = is_in_request_window(now.astimezone(tz).date(), window)
    window_start, window_end = next_request_window(now, tz, window)
    available = quantize_money(available)

    return SellerBalance(
        available_balance=available,
        pending_balance=quantize_money(pending),
        next_withdrawal_date=next_release,
        can_request=in_window and available > 0 and not has_open_request,
        last_request_date=last_request,
        next_request_window_start=window_start,
        next_request_window_end=window_end,
        is_in_request_window=in_window,
    )


def load_seller_payment_requests(db: Session, seller_id: int) -> Sequence[PaymentRequest]:
    stmt = (
        select(PaymentRequest)
        .where(PaymentRequest.seller_id == seller_id)
        .order_by(PaymentRequest.requested_at.desc(), PaymentRequest.id.desc())
    )
    try:
        return db.execute(stmt).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("[PAYMENT_REQUESTS] Error fetching requests for seller %s", seller_id)
        raise StoreUnavailable("Payment requests could not be loaded.") from exc


def get_seller_balance(
    db: Session,
    seller_id: int,
    *,
    now: datetime,
    tz: tzinfo,
    window: WithdrawalWindow,
) -> SellerBalance:
    """Withdrawable and pending balance for a seller, plus request eligibility.

    Read-only. Raises ``StoreUnavailable`` rather than reporting a zero
    balance when the store cannot be read.
    """
    now = as_utc(now)
    records = load_seller_commissions(db, seller_id)
    requests = load_seller_payment_requests(db, seller_id)
    return compute_balance(records, requests, now, tz, window)
