"""
Configuration management using Pydantic.

`BacktestOptions` is the explicit options structure handed to the engine.
`Settings` loads CLI defaults from environment variables and .env files; the
engine itself never reads it.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestOptions(BaseModel):
    """Account and market constraints applied to every simulated trade."""

    model_config = ConfigDict(frozen=True)

    capital: float = Field(default=20000.0, gt=0, description="Opening account balance")
    risk_fraction: float = Field(default=0.03, description="Fraction of equity risked per trade")
    min_stake: float = Field(default=0.5, ge=0, description="Broker minimum stake per point")
    stake_increment: float = Field(default=0.01, gt=0, description="Stake rounding increment")
    spread: float = Field(default=0.0, ge=0, description="Bid/ask spread in points")
    margin_requirement: float = Field(default=0.05, ge=0, description="Margin as a fraction of notional")
    min_stop_distance: float = Field(default=0.0, ge=0, description="Minimum entry-to-stop distance in points")
    trail_stop: bool = Field(default=True, description="Ratchet the stop along the Donchian channel")
    ema_tolerance: Optional[float] = Field(
        default=None,
        gt=0,
        lt=1,
        description="If set, suppress signals until the EMA seed weight decays below this value"
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Account
    capital: float = Field(default=20000.0, description="Opening account balance")
    risk_fraction: float = Field(default=0.03, description="Fraction of equity risked per trade")

    # Market
    min_stake: float = Field(default=0.5, description="Broker minimum stake per point")
    stake_increment: float = Field(default=0.01, description="Stake rounding increment")
    spread: float = Field(default=5.0, description="Bid/ask spread in points")
    margin_requirement: float = Field(default=0.05, description="Margin as a fraction of notional")
    min_stop_distance: float = Field(default=12.0, description="Minimum stop distance in points")
    trail_stop: bool = Field(default=True, description="Trail the stop along the Donchian channel")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="trend_engine.log", description="Log file path")

    # Optimization
    n_jobs: int = Field(default=1, description="Worker threads for grid sweeps")

    @field_validator("trail_stop", mode="before")
    @classmethod
    def parse_trail_stop(cls, v):
        """Parse trail_stop from string or bool."""
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return bool(v)

    def backtest_options(self) -> BacktestOptions:
        """Build the engine options structure from these settings."""
        return BacktestOptions(
            capital=self.capital,
            risk_fraction=self.risk_fraction,
            min_stake=self.min_stake,
            stake_increment=self.stake_increment,
            spread=self.spread,
            margin_requirement=self.margin_requirement,
            min_stop_distance=self.min_stop_distance,
            trail_stop=self.trail_stop,
        )
