"""Pydantic schemas for API responses and forms."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import PAYMENT_METHOD_ENUM, PAYMENT_REQUEST_STATUS_ENUM


class CommissionRead(BaseModel):
    id: int
    order_id: int
    net_amount_usd: Decimal
    commission_percentage: Decimal
    commission_amount: Decimal
    calculation_method: str
    available_for_withdrawal_at: Optional[datetime]
    withdrawn_amount: Decimal
    reserved_amount: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommissionStatsRead(BaseModel):
    currentMonth: Decimal
    totalPending: Decimal
    totalPaid: Decimal
    totalAmount: Decimal


class SellerBalanceRead(BaseModel):
    available_balance: Decimal
    pending_balance: Decimal
    next_withdrawal_date: Optional[datetime]
    can_request: bool
    last_request_date: Optional[datetime]
    next_request_window_start: datetime
    next_request_window_end: datetime
    is_in_request_window: bool

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: str
    email: str = Field(..., max_length=200)
    account_id: Optional[str] = Field(None, max_length=200)

    @field_validator("payment_method")
    def validate_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in PAYMENT_METHOD_ENUM:
            raise ValueError("Payment method must be stripe or wise.")
        return normalized

    @field_validator("email", mode="before")
    def require_email(cls, value: Any) -> str:
        value_str = str(value or "").strip()
        if not value_str:
            raise ValueError("Email is required.")
        return value_str

    @field_validator("account_id", mode="before")
    def strip_account(cls, value: Any) -> str | None:
        if value is None:
            return None
        value_str = str(value).strip()
        return value_str or None

    @field_validator("amount")
    def quantize_amount(cls, value: Decimal) -> Decimal:
        quantized = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if quantized <= 0:
            raise ValueError("Amount must be at least 0.01.")
        return quantized

    def payment_details(self) -> dict[str, str]:
        details = {"email": self.email}
        if self.account_id:
            details["account_id"] = self.account_id
        return details


class PaymentRequestReject(BaseModel):
    reason: str = Field(..., max_length=2000)

    @field_validator("reason", mode="before")
    def require_reason(cls, value: Any) -> str:
        value_str = str(value or "").strip()
        if not value_str:
            raise ValueError("Rejection reason is required.")
        return value_str


class PaymentRequestComplete(BaseModel):
    proof_url: Optional[str] = Field(None, max_length=500)
    proof_file_path: Optional[str] = Field(None, max_length=500)


class PaymentRequestRead(BaseModel):
    id: int
    seller_id: int
    amount: Decimal
    payment_method: str
    payment_details: dict
    status: str
    requested_at: datetime
    approved_at: Optional[datetime]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    completed_at: Optional[datetime]
    payment_proof_url: Optional[str]
    payment_proof_file_path: Optional[str]
    processed_by: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestFilters(BaseModel):
    status: Optional[str] = None
    seller_id: Optional[int] = None
    payment_method: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = Field(None, gt=0, le=500)

    @field_validator("status")
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in PAYMENT_REQUEST_STATUS_ENUM:
            raise ValueError("Status must be pending, approved, rejected, or completed.")
        return normalized

    @field_validator("payment_method")
    def validate_method(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in PAYMENT_METHOD_ENUM:
            raise ValueError("Payment method must be stripe or wise.")
        return normalized


class PaymentRequestStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    completed: int
    totalAmount: Decimal
    pendingAmount: Decimal
