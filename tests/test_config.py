from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import Settings


def _load():
    return Settings(_env_file=None)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "PARTNER_DATABASE_URL",
        "PARTNER_REPORTING_TIMEZONE",
        "PARTNER_WITHDRAWAL_WINDOW_START_DAY",
        "PARTNER_WITHDRAWAL_WINDOW_END_DAY",
        "PARTNER_COMMISSION_HOLD_DAYS",
        "PARTNER_PENDING_POLICY",
        "PARTNER_STORAGE_ROOT",
        "PARTNER_SESSION_HOURS",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = _load()

    assert settings.reporting_timezone == "America/Sao_Paulo"
    assert (settings.withdrawal_window.start_day, settings.withdrawal_window.end_day) == (1, 5)
    assert settings.commission_hold_days == 30
    assert settings.pending_policy == "unreleased_and_reserved"
    assert settings.storage_root == Path("data/storage")
    assert settings.session_hours == 24
    assert settings.environment == "development"
    assert settings.is_production is False


def test_overrides(clean_env):
    clean_env.setenv("PARTNER_WITHDRAWAL_WINDOW_START_DAY", "10")
    clean_env.setenv("PARTNER_WITHDRAWAL_WINDOW_END_DAY", "12")
    clean_env.setenv("PARTNER_PENDING_POLICY", "Unreleased")
    clean_env.setenv("PARTNER_REPORTING_TIMEZONE", "Europe/Lisbon")
    clean_env.setenv("PARTNER_STORAGE_ROOT", "/srv/partner/files")
    clean_env.setenv("ENVIRONMENT", "Production")

    settings = _load()

    assert settings.withdrawal_window.contains(11)
    assert not settings.withdrawal_window.contains(13)
    assert settings.pending_policy == "unreleased"
    assert settings.tz.key == "Europe/Lisbon"
    assert settings.storage_root == Path("/srv/partner/files")
    assert settings.is_production is True


@pytest.mark.parametrize(
    "name, value",
    [
        ("PARTNER_PENDING_POLICY", "everything"),
        ("PARTNER_WITHDRAWAL_WINDOW_END_DAY", "31"),
        ("PARTNER_WITHDRAWAL_WINDOW_START_DAY", "0"),
        ("PARTNER_COMMISSION_HOLD_DAYS", "thirty"),
        ("PARTNER_SESSION_HOURS", "0"),
        ("PARTNER_REPORTING_TIMEZONE", "Mars/Olympus_Mons"),
    ],
)
def test_invalid_values_fail_fast(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ValidationError):
        _load()


def test_window_must_not_end_before_it_starts(clean_env):
    clean_env.setenv("PARTNER_WITHDRAWAL_WINDOW_START_DAY", "6")
    clean_env.setenv("PARTNER_WITHDRAWAL_WINDOW_END_DAY", "5")
    with pytest.raises(ValidationError):
        _load()
