import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.balance import compute_balance, get_seller_balance
from app.commission import get_commission_stats
from app.config import WithdrawalWindow
from app.errors import InvariantViolation
from app.models import CommissionRecord, PaymentRequest, Seller, VisaOrder

UTC = timezone.utc
WINDOW = WithdrawalWindow()
_ORDER_SEQ = itertools.count(1)
THIRD = datetime(2025, 3, 3, 12, 0, tzinfo=UTC)
TENTH = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _seed_seller(session, code="SELLER-1"):
    seller = Seller(seller_id_public=code, full_name="Test Seller", email=f"{code.lower()}@example.com")
    session.add(seller)
    session.commit()
    return seller


def _add_commission(session, seller, amount, available_at, withdrawn="0", reserved="0", created_at=None):
    order = VisaOrder(
        order_number=f"ORD-{next(_ORDER_SEQ):05d}",
        seller_id=seller.id,
        total_price_usd=Decimal(amount) * 10,
    )
    session.add(order)
    session.flush()
    record = CommissionRecord(
        seller_id=seller.id,
        order_id=order.id,
        commission_amount=Decimal(amount),
        available_for_withdrawal_at=available_at,
        withdrawn_amount=Decimal(withdrawn),
        reserved_amount=Decimal(reserved),
        created_at=created_at or datetime(2025, 1, 15, tzinfo=UTC),
    )
    session.add(record)
    session.commit()
    return record


def _add_request(session, seller, status, requested_at, amount="10.00"):
    request = PaymentRequest(
        seller_id=seller.id,
        amount=Decimal(amount),
        payment_method="wise",
        payment_details={"email": "payee@example.com"},
        status=status,
        requested_at=requested_at,
    )
    session.add(request)
    session.commit()
    return request


def _balance(session, seller, now):
    return get_seller_balance(session, seller.id, now=now, tz=UTC, window=WINDOW)


def test_released_commission_is_available(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "100.00", THIRD - timedelta(days=1))

    balance = _balance(memory_db, seller, THIRD)

    assert balance.available_balance == Decimal("100.00")
    assert balance.pending_balance == Decimal("0.00")
    assert balance.next_withdrawal_date is None


def test_can_request_inside_window_only(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "100.00", THIRD - timedelta(days=1))

    inside = _balance(memory_db, seller, THIRD)
    assert inside.is_in_request_window is True
    assert inside.can_request is True

    outside = _balance(memory_db, seller, TENTH)
    assert outside.is_in_request_window is False
    assert outside.can_request is False
    assert outside.next_request_window_start == datetime(2025, 4, 1, tzinfo=UTC)


def test_unreleased_and_partially_withdrawn_split(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "50.00", None)
    _add_commission(memory_db, seller, "30.00", THIRD - timedelta(days=5), withdrawn="10.00")

    balance = _balance(memory_db, seller, THIRD)

    assert balance.pending_balance == Decimal("50.00")
    assert balance.available_balance == Decimal("20.00")


def test_next_withdrawal_date_is_earliest_future_release(memory_db):
    seller = _seed_seller(memory_db)
    later = THIRD + timedelta(days=20)
    sooner = THIRD + timedelta(days=4)
    _add_commission(memory_db, seller, "10.00", later)
    _add_commission(memory_db, seller, "15.00", sooner)
    _add_commission(memory_db, seller, "5.00", None)

    balance = _balance(memory_db, seller, THIRD)

    assert balance.next_withdrawal_date == sooner
    assert balance.pending_balance == Decimal("30.00")
    assert balance.can_request is False


@pytest.mark.parametrize("status", ["pending", "approved"])
def test_open_request_blocks_new_requests(memory_db, status):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "500.00", THIRD - timedelta(days=40))
    _add_request(memory_db, seller, status, THIRD - timedelta(days=1))

    balance = _balance(memory_db, seller, THIRD)

    assert balance.available_balance > 0
    assert balance.is_in_request_window is True
    assert balance.can_request is False


def test_closed_requests_do_not_block_and_last_request_date_tracks_latest(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "500.00", THIRD - timedelta(days=90))
    _add_request(memory_db, seller, "completed", THIRD - timedelta(days=60))
    latest = THIRD - timedelta(days=30)
    _add_request(memory_db, seller, "rejected", latest)

    balance = _balance(memory_db, seller, THIRD)

    assert balance.can_request is True
    assert balance.last_request_date == latest


def test_unknown_seller_has_empty_balance(memory_db):
    balance = get_seller_balance(memory_db, 999, now=THIRD, tz=UTC, window=WINDOW)
    assert balance.available_balance == Decimal("0.00")
    assert balance.pending_balance == Decimal("0.00")
    assert balance.can_request is False


def test_balance_matches_commission_totals(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "120.00", THIRD - timedelta(days=10), withdrawn="20.00")
    _add_commission(memory_db, seller, "80.00", THIRD + timedelta(days=10))
    _add_commission(memory_db, seller, "45.50", None, withdrawn="0.50")

    balance = _balance(memory_db, seller, THIRD)
    stats = get_commission_stats(memory_db, seller.id, "all", now=THIRD, tz=UTC)

    assert balance.available_balance + balance.pending_balance == stats.total_amount - stats.total_paid


def test_reserved_amounts_are_the_only_gap_between_balance_and_totals(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "100.00", THIRD - timedelta(days=10), reserved="40.00")
    _add_commission(memory_db, seller, "60.00", None)

    balance = _balance(memory_db, seller, THIRD)
    stats = get_commission_stats(memory_db, seller.id, "all", now=THIRD, tz=UTC)

    assert balance.available_balance == Decimal("60.00")
    gap = stats.total_amount - stats.total_paid - (balance.available_balance + balance.pending_balance)
    assert gap == Decimal("40.00")


def test_balance_is_read_only_and_repeatable(memory_db):
    seller = _seed_seller(memory_db)
    record = _add_commission(memory_db, seller, "75.00", THIRD - timedelta(days=1), withdrawn="5.00", reserved="10.00")

    first = _balance(memory_db, seller, THIRD)
    second = _balance(memory_db, seller, THIRD)

    assert first == second
    memory_db.refresh(record)
    assert record.withdrawn_amount == Decimal("5.00")
    assert record.reserved_amount == Decimal("10.00")
    assert record.withdrawn_amount + record.reserved_amount <= record.commission_amount


def test_overdrawn_record_is_surfaced_not_clamped():
    broken = CommissionRecord(
        id=7,
        commission_amount=Decimal("10.00"),
        withdrawn_amount=Decimal("8.00"),
        reserved_amount=Decimal("5.00"),
        available_for_withdrawal_at=THIRD - timedelta(days=1),
    )
    with pytest.raises(InvariantViolation):
        compute_balance([broken], [], THIRD, UTC, WINDOW)


def test_naive_now_is_read_as_utc(memory_db):
    seller = _seed_seller(memory_db)
    _add_commission(memory_db, seller, "100.00", THIRD - timedelta(days=1))
    _add_commission(memory_db, seller, "25.00", THIRD + timedelta(days=2))

    naive = _balance(memory_db, seller, THIRD.replace(tzinfo=None))

    assert naive == _balance(memory_db, seller, THIRD)
    assert naive.available_balance == Decimal("100.00")
    assert naive.pending_balance == Decimal("25.00")
