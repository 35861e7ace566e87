import pytest

from cubems.config import AppConfig
from cubems.enums import SubscriptionTier


def test_defaults(monkeypatch):
    for name in ("CUBEMS_ENV", "CUBEMS_RATE_LIMIT_FREE", "CUBEMS_ENSEMBLE_ALGORITHMS"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig()

    assert config.environment == "development"
    assert config.rate_limit_for(SubscriptionTier.FREE) == 100
    assert config.rate_limit_for(SubscriptionTier.PROFESSIONAL) == 10_000
    assert config.ensemble_algorithms == ("statistical_zscore", "modified_zscore", "interquartile_range")
    assert config.as_flask_config()["SESSION_COOKIE_SECURE"] is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CUBEMS_RATE_LIMIT_FREE", "7")
    monkeypatch.setenv("CUBEMS_CACHE_ENABLED", "no")
    monkeypatch.setenv("CUBEMS_ENSEMBLE_ALGORITHMS", "modified_zscore, moving_average")

    config = AppConfig()

    assert config.rate_limit_free == 7
    assert config.cache_enabled is False
    assert config.ensemble_algorithms == ("modified_zscore", "moving_average")


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.setenv("CUBEMS_ENV", "production")
    monkeypatch.delenv("CUBEMS_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError, match="default secret key"):
        AppConfig()


@pytest.mark.parametrize(
    "name, value, match",
    [
        ("CUBEMS_RATE_LIMIT_FREE", "lots", "must be an integer"),
        ("CUBEMS_OPERATIONAL_CRITICALITY", "extreme", "must be one of"),
        ("CUBEMS_ENSEMBLE_ALGORITHMS", "fourier", "Unknown ensemble algorithm"),
    ],
)
def test_invalid_settings_are_rejected(monkeypatch, name, value, match):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=match):
        AppConfig()


def test_unknown_session_tier_falls_back_to_free():
    assert SubscriptionTier.from_session("Professional") is SubscriptionTier.PROFESSIONAL
    assert SubscriptionTier.from_session("enterprise") is SubscriptionTier.FREE
    assert SubscriptionTier.from_session(None) is SubscriptionTier.FREE
