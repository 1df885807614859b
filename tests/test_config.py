"""Tests for settings loading and validation."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from autofund.config import AppSettings, ExchangeSettings, StrategySettings


def test_strategy_defaults() -> None:
    settings = StrategySettings()

    assert settings.name == "replace"
    assert settings.dry_run is True
    assert settings.min_borrow_size == Decimal("150")
    assert settings.min_improvement == Decimal("0.00001")
    assert settings.interval == 19 * 60
    assert settings.target_rates == [Decimal(r) for r in ("30", "25", "20", "15", "10")]


def test_target_rates_sorted_descending() -> None:
    settings = StrategySettings(target_rates=[Decimal("10"), Decimal("30"), Decimal("20")])

    assert settings.target_rates == [Decimal("30"), Decimal("20"), Decimal("10")]


def test_env_prefixes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRATEGY_NAME", "target")
    monkeypatch.setenv("STRATEGY_DRY_RUN", "false")
    monkeypatch.setenv("STRATEGY_MIN_BORROW_SIZE", "200")
    monkeypatch.setenv("BITFINEX_SYMBOL", "fUST")

    strategy = StrategySettings()
    exchange = ExchangeSettings()

    assert strategy.name == "target"
    assert strategy.dry_run is False
    assert strategy.min_borrow_size == Decimal("200")
    assert exchange.symbol == "fUST"


def test_unknown_strategy_name_rejected() -> None:
    with pytest.raises(ValidationError):
        StrategySettings(name="martingale")  # type: ignore[arg-type]


def test_negative_min_borrow_size_rejected() -> None:
    with pytest.raises(ValidationError):
        StrategySettings(min_borrow_size=Decimal("-1"))


def test_zero_poll_attempts_rejected() -> None:
    with pytest.raises(ValidationError):
        StrategySettings(fill_poll_attempts=0)


def test_secrets_not_in_repr() -> None:
    settings = ExchangeSettings(api_key="key", api_secret="very-secret")  # type: ignore[arg-type]

    assert "very-secret" not in repr(settings)
    assert settings.api_secret.get_secret_value() == "very-secret"


def test_app_settings_composes(mock_settings: AppSettings) -> None:
    assert mock_settings.log_level == "DEBUG"
    assert mock_settings.exchange.api_key.get_secret_value() == "test-api-key"
    assert mock_settings.strategy.fill_poll_delay == 0
