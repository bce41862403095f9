"""SQLAlchemy models for the partner desk application."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.auth import User  # noqa: F401  (users table backs the foreign keys below)
from app.core.clock import utcnow
from app.database import Base

SELLER_STATUS_ENUM = ("active", "inactive", "suspended")
CALCULATION_METHOD_ENUM = ("individual", "monthly_accumulated")
PAYMENT_REQUEST_STATUS_ENUM = ("pending", "approved", "rejected", "completed")
ACTIVE_PAYMENT_REQUEST_STATUSES = ("pending", "approved")
PAYMENT_METHOD_ENUM = ("stripe", "wise")
PAID_ORDER_STATUSES = ("completed",)


class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id_public: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    orders: Mapped[list["VisaOrder"]] = relationship(back_populates="seller")
    commissions: Mapped[list["CommissionRecord"]] = relationship(back_populates="seller")
    payment_requests: Mapped[list["PaymentRequest"]] = relationship(back_populates="seller")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'suspended')",
            name="ck_sellers_status_valid",
        ),
        CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="ck_sellers_percentage_range",
        ),
    )


class VisaOrder(Base):
    __tablename__ = "visa_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    seller_id: Mapped[int | None] = mapped_column(ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True, index=True)
    service_request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    total_price_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    fee_amount_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    seller: Mapped[Seller | None] = relationship(back_populates="orders")


class CommissionRecord(Base):
    """One commission per (seller, order); amounts only ever grow."""

    __tablename__ = "seller_commissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("sellers.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("visa_orders.id", ondelete="CASCADE"), nullable=False)
    net_amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    calculation_method: Mapped[str] = mapped_column(String(30), nullable=False, default="individual")
    available_for_withdrawal_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    withdrawn_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    reserved_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    seller: Mapped[Seller] = relationship(back_populates="commissions")
    order: Mapped[VisaOrder] = relationship()

    __table_args__ = (
        UniqueConstraint("seller_id", "order_id", name="uq_commission_seller_order"),
        CheckConstraint("commission_amount >= 0", name="ck_commission_amount_nonnegative"),
        CheckConstraint("withdrawn_amount >= 0", name="ck_commission_withdrawn_nonnegative"),
        CheckConstraint("reserved_amount >= 0", name="ck_commission_reserved_nonnegative"),
        CheckConstraint(
            "withdrawn_amount + reserved_amount <= commission_amount",
            name="ck_commission_not_overdrawn",
        ),
        CheckConstraint(
            "calculation_method IN ('individual', 'monthly_accumulated')",
            name="ck_commission_method_valid",
        ),
    )

    @property
    def unclaimed_amount(self) -> Decimal:
        """Portion neither paid out nor held against a request."""
        return Decimal(self.commission_amount or 0) - Decimal(self.withdrawn_amount or 0) - Decimal(self.reserved_amount or 0)


class PaymentRequest(Base):
    __tablename__ = "seller_payment_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("sellers.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_proof_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    seller: Mapped[Seller] = relationship(back_populates="payment_requests")
    allocations: Mapped[list["PaymentRequestAllocation"]] = relationship(
        back_populates="payment_request", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_requests_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'completed')",
            name="ck_payment_requests_status_valid",
        ),
        CheckConstraint(
            "payment_method IN ('stripe', 'wise')",
            name="ck_payment_requests_method_valid",
        ),
        # At most one open request per seller; enforced by the store so that
        # concurrent inserts cannot both pass the balance gate.
        Index(
            "uq_payment_requests_one_open_per_seller",
            "seller_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'approved')"),
            postgresql_where=text("status IN ('pending', 'approved')"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status in ACTIVE_PAYMENT_REQUEST_STATUSES


class PaymentRequestAllocation(Base):
    """Amount of one commission held against one payment request."""

    __tablename__ = "payment_request_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_request_id: Mapped[int] = mapped_column(
        ForeignKey("seller_payment_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    commission_id: Mapped[int] = mapped_column(
        ForeignKey("seller_commissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    payment_request: Mapped[PaymentRequest] = relationship(back_populates="allocations")
    commission: Mapped[CommissionRecord] = relationship()

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )


# --- Document access tokens --------------------------------------------------

class VisaContractViewToken(Base):
    __tablename__ = "visa_contract_view_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("visa_orders.id", ondelete="CASCADE"), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class GlobalPartnerApplication(Base):
    __tablename__ = "global_partner_applications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    seller_id: Mapped[int | None] = mapped_column(ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class PartnerTermsAcceptance(Base):
    __tablename__ = "partner_terms_acceptances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str | None] = mapped_column(
        ForeignKey("global_partner_applications.id", ondelete="CASCADE"), nullable=True
    )
    view_token: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    accepted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
