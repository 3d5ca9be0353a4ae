"""
Configuration schema with validation.

All configuration is validated at load time using Pydantic.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from domain import ThresholdPair

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ThresholdsConfig(BaseModel):
    """NEUTRAL band of a source's classifier."""

    low: float = Field(ge=0.0, le=100.0)
    high: float = Field(ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _low_below_high(self) -> "ThresholdsConfig":
        if self.low >= self.high:
            raise ValueError(f"low threshold ({self.low}) must be below high threshold ({self.high})")
        return self

    def to_pair(self) -> ThresholdPair:
        return ThresholdPair(low=self.low, high=self.high)


class HttpConfig(BaseModel):
    """HTTP client configuration shared by all sources."""

    timeout_seconds: float = Field(default=10.0, ge=1.0, le=60.0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)


class CurrentRatioSourceConfig(BaseModel):
    """FXSSI current ratio page (HTML)."""

    enabled: bool = True
    url: str = Field(default="https://fxssi.com/tools/current-ratio")
    timeout_seconds: float = Field(default=10.0, ge=1.0, le=60.0)
    thresholds: ThresholdsConfig = Field(default_factory=lambda: ThresholdsConfig(low=40.0, high=60.0))

    # Emit tagged UNKNOWN rows when parsing finds nothing
    allow_placeholder: bool = True
    placeholder_instruments: list[str] = Field(default_factory=lambda: ["EUR/USD"])

    @field_validator("placeholder_instruments")
    @classmethod
    def _normalize_instruments(cls, v: list[str]) -> list[str]:
        return [p.strip().upper() for p in v if p.strip()]


class FearGreedSourceConfig(BaseModel):
    """CNN Fear & Greed index endpoint (JSON)."""

    enabled: bool = True
    endpoint: str = Field(default="https://production.dataviz.cnn.io/index/fearandgreed/graphdata")
    timeout_seconds: float = Field(default=15.0, ge=1.0, le=60.0)
    symbol: str = Field(default="BTC/USD", min_length=1)
    thresholds: ThresholdsConfig = Field(default_factory=lambda: ThresholdsConfig(low=45.0, high=55.0))
    anchor: str = Field(default='"fear_and_greed"', min_length=1)
    window_chars: int = Field(default=500, ge=50, le=10_000)


class SchedulerConfig(BaseModel):
    """Cadence and shutdown behavior of the periodic runner."""

    mode: Literal["hourly", "immediate", "interval"] = "hourly"
    interval_minutes: float = Field(default=60.0, gt=0.0, le=1440.0)
    grace_seconds: float = Field(default=10.0, ge=0.0, le=300.0)
    force_seconds: float = Field(default=5.0, ge=0.0, le=300.0)
    single_flight: bool = Field(default=False, description="Skip ticks while a run is pending")
    run_on_start: bool = Field(default=True, description="Run one cycle before arming the schedule")


class StorageConfig(BaseModel):
    """CSV persistence."""

    data_dir: str = Field(default="data", min_length=1)
    keep_days: int = Field(default=30, ge=1, le=3650)


class LoggingConfig(BaseModel):
    """Root logger setup used by the CLI."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class NotificationConfig(BaseModel):
    """Email notification on detected signal changes."""

    enabled: bool = False
    smtp_host: str = Field(default="mail.gmx.net", min_length=1)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    use_starttls: bool = True
    use_ssl: bool = Field(default=False, description="Implicit TLS (SMTP_SSL) instead of STARTTLS")
    timeout_seconds: float = Field(default=10.0, ge=1.0, le=120.0)
    username: str = ""
    password: str = ""
    from_email: str = ""
    from_name: str = "FXSSI Monitor"
    to_emails: list[str] = Field(default_factory=list)

    notify_critical: bool = True
    notify_high: bool = True
    notify_all: bool = Field(default=False, description="Also send MEDIUM and LOW changes")
    max_per_hour: int = Field(default=10, ge=1, le=1000)
    threshold_percent: float = Field(
        default=3.0, ge=0.0, le=100.0,
        description="Minimum buy share move since the last mail for the same pair",
    )

    @field_validator("to_emails", mode="before")
    @classmethod
    def _split_recipients(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @model_validator(mode="after")
    def _complete_when_enabled(self) -> "NotificationConfig":
        if self.enabled and not (self.from_email and self.to_emails):
            raise ValueError("from_email and to_emails are required when notifications are enabled")
        return self


class SourcesConfig(BaseModel):
    current_ratio: CurrentRatioSourceConfig = Field(default_factory=CurrentRatioSourceConfig)
    fear_greed: FearGreedSourceConfig = Field(default_factory=FearGreedSourceConfig)


class SentimentConfig(BaseModel):
    """
    Root configuration model.

    All settings are validated on load.
    """

    http: HttpConfig = Field(default_factory=HttpConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
