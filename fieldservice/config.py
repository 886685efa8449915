# fieldservice/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    allowed_origins: list[str] = ["*"]

    # Storage
    # "memory"   - in-process stores (single instance, lost on restart)
    # "postgres" - asyncpg-backed stores
    storage_backend: Literal["memory", "postgres"] = "memory"
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 2
    pg_pool_max: int = 20
    pg_connect_timeout: int = 5
    pg_statement_timeout_ms: int = 30000
    pg_idle_in_tx_timeout_ms: int = 30000

    # Location tracking
    location_throttle_seconds: int = 30       # Minimum gap between accepted reports per technician
    active_window_minutes: int = 5            # Reports newer than this count as "active"
    location_topic: str = "/topic/locations"
    live_queue_size: int = 100                # Per-subscriber buffer for live location updates
    seed_demo_users: bool = True              # memory backend only: dispatcher / technician / supervisor accounts

    # Notifications
    notification_max_retries: int = 3
    eta_travel_minutes: int = 30              # Fixed travel allowance added to assigned_at for ETA
    customer_notification_channel: Literal["EMAIL", "SMS", "BOTH"] = "EMAIL"
    # "smtp" / "twilio" - real delivery
    # "log"             - log the message instead of sending it
    email_provider: Literal["smtp", "log"] = "log"
    sms_provider: Literal["twilio", "log"] = "log"
    email_from: str = "noreply@fieldservices.com"

    # SMTP
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_timeout_seconds: int = 15

    # Twilio (SMS)
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None

    # Monitoring & Metrics
    enable_metrics: bool = True

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def smtp_enabled(self) -> bool:
        """Check if SMTP delivery is configured"""
        return bool(self.smtp_host and self.email_from)

    @property
    def twilio_enabled(self) -> bool:
        """Check if Twilio SMS delivery is configured"""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )

    @property
    def pg_connect_kwargs(self) -> dict:
        """asyncpg connection arguments: DATABASE_URL wins over discrete PG* settings."""
        server_settings = {
            "statement_timeout": str(self.pg_statement_timeout_ms),
            "idle_in_transaction_session_timeout": str(self.pg_idle_in_tx_timeout_ms),
        }
        if self.database_url:
            return {"dsn": self.database_url, "server_settings": server_settings}

        return {
            "host": self.pghost,
            "port": self.pgport,
            "user": self.pguser,
            "password": self.pgpassword,
            "database": self.pgdatabase,
            "timeout": self.pg_connect_timeout,
            "server_settings": server_settings,
        }

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        if self.storage_backend != "postgres":
            missing.append("storage_backend=postgres")

        if self.email_provider == "smtp":
            if not self.smtp_host:
                missing.append("smtp_host")
        if self.sms_provider == "twilio":
            for field_name, value in (
                ("twilio_account_sid", self.twilio_account_sid),
                ("twilio_auth_token", self.twilio_auth_token),
                ("twilio_phone_number", self.twilio_phone_number),
            ):
                if not value:
                    missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    if s.storage_backend == "memory":
        warnings.append("storage_backend=memory: tasks and locations are lost on restart.")

    if s.email_provider == "log":
        warnings.append("email_provider=log: customer emails are logged, not delivered.")
    elif s.smtp_host and not s.smtp_user:
        warnings.append("smtp_host is set but smtp_user is empty (unauthenticated relay).")

    if s.sms_provider == "twilio" and not s.twilio_enabled:
        warnings.append("sms_provider=twilio but twilio credentials are incomplete.")

    if s.location_throttle_seconds <= 0:
        warnings.append("location_throttle_seconds<=0: location reports are not throttled.")

    if s.notification_max_retries < 1:
        warnings.append("notification_max_retries<1: failed notifications are never retried.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
