"""Database access helpers."""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import User, UserSession
from app.models import (
    AuditLog,
    CommissionRecord,
    GlobalPartnerApplication,
    PartnerTermsAcceptance,
    PaymentRequest,
    PaymentRequestAllocation,
    Seller,
    VisaContractViewToken,
    VisaOrder,
)


# --- Sellers -------------------------------------------------------------------

def get_seller_for_user(db: Session, user: User, active_only: bool = False) -> Seller | None:
    stmt = select(Seller).where(Seller.user_id == user.id)
    if active_only:
        stmt = stmt.where(Seller.status == "active")
    return db.execute(stmt).scalars().first()


def create_seller(
    db: Session,
    *,
    seller_id_public: str,
    full_name: str,
    email: str,
    commission_percentage: Decimal = Decimal("0"),
    user: User | None = None,
    status: str = "active",
) -> Seller:
    seller = Seller(
        seller_id_public=seller_id_public.strip(),
        full_name=full_name.strip(),
        email=email.strip(),
        commission_percentage=commission_percentage,
        user_id=user.id if user else None,
        status=status,
    )
    db.add(seller)
    db.commit()
    db.refresh(seller)
    return seller


# --- Sessions --------------------------------------------------------------------

def create_user_session(db: Session, user: User, now: datetime, hours: int) -> UserSession:
    session_row = UserSession.issue(user, now, hours)
    db.add(session_row)
    db.commit()
    db.refresh(session_row)
    return session_row


def resolve_session_user(db: Session, token: str | None, now: datetime) -> User | None:
    """Return the user behind a live session token, or ``None``."""
    if not token:
        return None
    session_row = db.execute(select(UserSession).where(UserSession.token == token)).scalars().first()
    if session_row is None or not session_row.is_valid(now):
        return None
    return session_row.user


def revoke_session(db: Session, token: str | None) -> None:
    if not token:
        return
    db.query(UserSession).filter(UserSession.token == token).delete(synchronize_session=False)
    db.commit()


# --- Maintenance and audit helpers ----------------------------------------

def log_admin_action(db: Session, user_id: int | None, action: str, details: dict | None = None) -> None:
    payload = AuditLog(
        user_id=user_id,
        action=action,
        details=json.dumps(details or {}, default=str),
    )
    db.add(payload)
    db.commit()


def list_audit_logs(db: Session, action: str | None = None, limit: int = 50) -> Sequence[AuditLog]:
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return db.execute(stmt).scalars().all()


def reset_application_data(db: Session) -> None:
    """Delete all domain rows, sessions and every account except the seeded admin."""
    for model in (
        PaymentRequestAllocation,
        PaymentRequest,
        CommissionRecord,
        VisaContractViewToken,
        PartnerTermsAcceptance,
        GlobalPartnerApplication,
        VisaOrder,
        Seller,
        AuditLog,
        UserSession,
    ):
        db.query(model).delete(synchronize_session=False)
    db.query(User).filter(User.username != "admin").delete(synchronize_session=False)
    db.commit()
