"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    """Bitfinex connection settings."""

    model_config = SettingsConfigDict(env_prefix="BITFINEX_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    symbol: str = "fUSD"  # funding symbol under management
    ws_url: str = "wss://api.bitfinex.com/ws/2"
    book_length: int = 25
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    ping_interval: float = 12.0


class StrategySettings(BaseSettings):
    """Funding replacement strategy parameters.

    Rates are fractional daily rates (0.0002 is roughly 7.3% APR) except
    ``target_rates``, which are annual percentages as a human would quote them.
    """

    model_config = SettingsConfigDict(env_prefix="STRATEGY_")

    name: Literal["replace", "target"] = "replace"
    interval: float = 19 * 60  # seconds between timer ticks, 0 disables
    min_improvement: Decimal = Decimal("0.00001")
    min_borrow_size: Decimal = Decimal("150")
    borrow_period: int = 2  # days
    target_rates: list[Decimal] = Field(
        default_factory=lambda: [Decimal(r) for r in ("30", "25", "20", "15", "10")]
    )

    # When set, nothing is borrowed, cancelled or returned. Actions are logged only.
    dry_run: bool = True
    show_wallet_position: bool = False
    sound_on_change: bool = False

    # Replacement workflow timings
    fill_poll_attempts: int = 10
    fill_poll_delay: float = 5.0
    settle_delay: float = 5.0
    borrow_cooldown: float = 15.0
    replace_cooldown: float = 60.0

    # Target workflow timings
    cancel_drain_attempts: int = 10
    cancel_drain_delay: float = 1.0
    return_tolerance: Decimal = Decimal("1")

    startup_pause: float = 10.0
    first_timer_delay: float = 8.0

    @field_validator("target_rates")
    @classmethod
    def _sort_descending(cls, rates: list[Decimal]) -> list[Decimal]:
        return sorted(rates, reverse=True)

    @field_validator("min_borrow_size", "min_improvement")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("fill_poll_attempts", "cancel_drain_attempts", "borrow_period")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
