"""Seller commission accrual and aggregation.

Aggregation is read-only: it loads a seller's commission rows in one query
and sums them in Python, so every figure in a ``CommissionStats`` comes from
the same snapshot.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import add_months, as_utc, day_after, local_midnight, month_start
from app.errors import InvariantViolation, StoreUnavailable
from app.models import CommissionRecord, Seller, VisaOrder

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

PERIOD_OPTIONS = [
    {"id": "last7days", "label": "Last 7 days", "days": 7},
    {"id": "last30days", "label": "Last 30 days", "days": 30},
    {"id": "last3months", "label": "Last 3 months", "months": 3},
    {"id": "last6months", "label": "Last 6 months", "months": 6},
    {"id": "lastyear", "label": "Last year", "months": 12},
]


@dataclass
class CommissionStats:
    current_month: Decimal
    total_pending: Decimal
    total_paid: Decimal
    total_amount: Decimal


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_period(
    period: str | None,
    today: date,
    start: date | None = None,
    end: date | None = None,
) -> tuple[date | None, date | None]:
    """Return the inclusive (start, end) dates selected by ``period``.

    ``all`` (or no period) means no filter.
    """
    identifier = (period or "all").strip().lower()
    if identifier == "all":
        return None, None
    if identifier in ("month", "thismonth"):
        first = month_start(today)
        last_day = calendar.monthrange(today.year, today.month)[1]
        return first, date(today.year, today.month, last_day)
    if identifier == "lastmonth":
        previous = add_months(month_start(today), -1)
        last_day = calendar.monthrange(previous.year, previous.month)[1]
        return previous, date(previous.year, previous.month, last_day)
    if identifier == "custom":
        if start is None or end is None:
            raise ValueError("Custom period requires both start and end dates.")
        if start > end:
            raise ValueError("Custom period start must not be after its end.")
        return start, end
    for option in PERIOD_OPTIONS:
        if option["id"] != identifier:
            continue
        if "days" in option:
            return today - timedelta(days=option["days"] - 1), today
        return add_months(today, -option["months"]), today
    raise ValueError(f"Unknown period {period!r}.")


def period_bounds(
    period: str | None,
    now: datetime,
    tz: tzinfo,
    start: date | None = None,
    end: date | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Translate a period into a half-open [lower, upper) instant range in ``tz``."""
    today = as_utc(now).astimezone(tz).date()
    first, last = resolve_period(period, today, start, end)
    lower = local_midnight(first, tz) if first else None
    upper = local_midnight(day_after(last), tz) if last else None
    return lower, upper


def _within(instant: datetime | None, lower: datetime | None, upper: datetime | None) -> bool:
    if instant is None:
        return False
    if lower is not None and instant < lower:
        return False
    if upper is not None and instant >= upper:
        return False
    return True


def check_invariant(record: CommissionRecord) -> None:
    """Raise if a commission has more paid out or held than it is worth."""
    commission = Decimal(record.commission_amount or 0)
    withdrawn = Decimal(record.withdrawn_amount or 0)
    reserved = Decimal(record.reserved_amount or 0)
    if commission < 0 or withdrawn < 0 or reserved < 0 or withdrawn + reserved > commission:
        logger.error(
            "[COMMISSIONS] Commission %s is overdrawn: amount=%s withdrawn=%s reserved=%s",
            record.id,
            commission,
            withdrawn,
            reserved,
        )
        raise InvariantViolation(
            f"Commission {record.id} has withdrawn {withdrawn} + reserved {reserved} "
            f"exceeding its amount {commission}."
        )


def is_released(record: CommissionRecord, now: datetime) -> bool:
    """A commission becomes withdrawable once its release instant has passed."""
    released_at = as_utc(record.available_for_withdrawal_at)
    return released_at is not None and released_at <= now


def summarize_commissions(
    records: Iterable[CommissionRecord],
    now: datetime,
    tz: tzinfo,
    *,
    lower: datetime | None = None,
    upper: datetime | None = None,
    pending_policy: str = "unreleased_and_reserved",
) -> CommissionStats:
    """Aggregate commission rows into the figures shown on the seller dashboard."""
    now = as_utc(now)
    month_lower, month_upper = period_bounds("month", now, tz)

    current_month = ZERO
    total_amount = ZERO
    total_paid = ZERO
    total_pending = ZERO

    for record in records:
        check_invariant(record)
        created_at = as_utc(record.created_at)
        amount = Decimal(record.commission_amount or 0)

        if _within(created_at, month_lower, month_upper):
            current_month += amount

        if (lower is not None or upper is not None) and not _within(created_at, lower, upper):
            continue

        total_amount += amount
        total_paid += Decimal(record.withdrawn_amount or 0)
        if not is_released(record, now):
            total_pending += record.unclaimed_amount
        if pending_policy == "unreleased_and_reserved":
            total_pending += Decimal(record.reserved_amount or 0)

    return CommissionStats(
        current_month=quantize_money(current_month),
        total_pending=quantize_money(total_pending),
        total_paid=quantize_money(total_paid),
        total_amount=quantize_money(total_amount),
    )


def load_seller_commissions(db: Session, seller_id: int) -> Sequence[CommissionRecord]:
    """Fetch every commission for a seller, newest first."""
    stmt = (
        select(CommissionRecord)
        .where(CommissionRecord.seller_id == seller_id)
        .order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc())
    )
    try:
        return db.execute(stmt).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("[COMMISSIONS] Error fetching commissions for seller %s", seller_id)
        raise StoreUnavailable("Commission records could not be loaded.") from exc


def list_seller_commissions(
    db: Session,
    seller_id: int,
    now: datetime,
    tz: tzinfo,
    period: str | None = "all",
    start: date | None = None,
    end: date | None = None,
) -> List[CommissionRecord]:
    now = as_utc(now)
    lower, upper = period_bounds(period, now, tz, start, end)
    return [
        record
        for record in load_seller_commissions(db, seller_id)
        if (lower is None and upper is None) or _within(as_utc(record.created_at), lower, upper)
    ]


def get_commission_stats(
    db: Session,
    seller_id: int,
    period: str | None,
    *,
    now: datetime,
    tz: tzinfo,
    pending_policy: str = "unreleased_and_reserved",
    start: date | None = None,
    end: date | None = None,
) -> CommissionStats:
    """Commission totals for a seller over ``period``.

    An unknown seller simply has no rows and yields all-zero stats.
    """
    now = as_utc(now)
    lower, upper = period_bounds(period, now, tz, start, end)
    records = load_seller_commissions(db, seller_id)
    return summarize_commissions(
        records,
        now,
        tz,
        lower=lower,
        upper=upper,
        pending_policy=pending_policy,
    )


# --- Accrual -------------------------------------------------------------------

def calculate_net_amount(total_price: Decimal | None, fee_amount: Decimal | None = None) -> Decimal:
    """Order value the commission is based on: price minus processor fee, never negative."""
    net = Decimal(total_price or 0) - Decimal(fee_amount or 0)
    return max(net, ZERO)


def record_order_commission(
    db: Session,
    order: VisaOrder,
    now: datetime,
    hold_days: int,
) -> CommissionRecord | None:
    """Create the commission owed for a finalized order.

    Returns the existing row when the order was already accrued, and ``None``
    for orders without a seller.
    """
    if order.seller_id is None:
        return None
    now = as_utc(now)

    existing = (
        db.query(CommissionRecord)
        .filter(
            CommissionRecord.seller_id == order.seller_id,
            CommissionRecord.order_id == order.id,
        )
        .first()
    )
    if existing:
        return existing

    seller = db.get(Seller, order.seller_id)
    if seller is None:
        raise ValueError(f"Seller {order.seller_id} not found for order {order.order_number}.")

    net_amount = quantize_money(calculate_net_amount(order.total_price_usd, order.fee_amount_usd))
    percentage = Decimal(seller.commission_percentage or 0)
    record = CommissionRecord(
        seller_id=seller.id,
        order_id=order.id,
        net_amount_usd=net_amount,
        commission_percentage=percentage,
        commission_amount=quantize_money(net_amount * percentage / Decimal("100")),
        calculation_method="individual",
        available_for_withdrawal_at=now + timedelta(days=hold_days),
        withdrawn_amount=ZERO,
        reserved_amount=ZERO,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # Another worker accrued the same order first.
        db.rollback()
        return (
            db.query(CommissionRecord)
            .filter(
                CommissionRecord.seller_id == order.seller_id,
                CommissionRecord.order_id == order.id,
            )
            .one()
        )
    db.refresh(record)
    logger.info(
        "[COMMISSIONS] Accrued %s for seller %s on order %s",
        record.commission_amount,
        seller.seller_id_public,
        order.order_number,
    )
    return record
