"""Runtime configuration read from the environment."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SQLITE_PATH = Path("data/partner_desk.db")

PENDING_POLICIES = ("unreleased", "unreleased_and_reserved")


@dataclass(frozen=True)
class WithdrawalWindow:
    """Recurring monthly range of days during which sellers may request payment."""

    start_day: int = 1
    end_day: int = 5

    def __post_init__(self) -> None:
        # Day 28 is the last day present in every month.
        if not 1 <= self.start_day <= self.end_day <= 28:
            raise ValueError(
                f"Invalid withdrawal window {self.start_day}-{self.end_day}; "
                "days must satisfy 1 <= start <= end <= 28."
            )

    def contains(self, day: int) -> bool:
        return self.start_day <= day <= self.end_day


class Settings(BaseSettings):
    """Partner desk settings; every field reads ``PARTNER_<NAME>`` except ``ENVIRONMENT``."""

    model_config = SettingsConfigDict(
        env_prefix="PARTNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = f"sqlite:///{DEFAULT_SQLITE_PATH}"
    environment: str = Field("development", validation_alias="ENVIRONMENT")
    reporting_timezone: str = "America/Sao_Paulo"
    withdrawal_window_start_day: int = Field(1, ge=1, le=28)
    withdrawal_window_end_day: int = Field(5, ge=1, le=28)
    commission_hold_days: int = Field(30, ge=0)
    pending_policy: str = "unreleased_and_reserved"
    storage_root: Path = Path("data/storage")
    session_hours: int = Field(24, gt=0)

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        return str(value or "development").strip().lower()

    @field_validator("reporting_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone {value!r}") from exc
        return value

    @field_validator("withdrawal_window_end_day")
    @classmethod
    def validate_window_order(cls, value: int, info: ValidationInfo) -> int:
        start_day = info.data.get("withdrawal_window_start_day")
        if start_day is not None and value < start_day:
            raise ValueError("Withdrawal window must not end before it starts.")
        return value

    @field_validator("pending_policy", mode="before")
    @classmethod
    def validate_pending_policy(cls, value: str) -> str:
        normalized = str(value).strip().lower()
        if normalized not in PENDING_POLICIES:
            raise ValueError(f"Pending policy must be one of {', '.join(PENDING_POLICIES)}.")
        return normalized

    @property
    def withdrawal_window(self) -> WithdrawalWindow:
        return WithdrawalWindow(self.withdrawal_window_start_day, self.withdrawal_window_end_day)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.reporting_timezone)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings; FastAPI routes receive this through a dependency."""
    return Settings()
