"""
core/config.py -- ExpiryWatch settings, read once from the environment.

Every tunable lives on Settings: the database URL, sweep cadence, lookup and
SMTP timeouts, alerting behaviour and the HTTP surface. Each field maps to an
upper-case environment variable (tls_timeout -> TLS_TIMEOUT) and may also be
set in a .env file next to the working directory.

get_settings() caches one instance for the process. The stores, the API
lifespan and the CLI all call it; only the CLI formatter reads NO_COLOR and
FORCE_COLOR from os.environ itself.

Layer rule: this module imports nothing from api/, auth/, tracker/ or the
rest of core/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("expirywatch.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'expirywatch.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sweep scheduling
    # ------------------------------------------------------------------

    # One full sweep per day. Not configurable per owner.
    sweep_interval_seconds: int = 24 * 60 * 60
    scheduler_enabled: bool = True

    # ------------------------------------------------------------------
    # Verifier timeouts (seconds)
    # ------------------------------------------------------------------

    whois_timeout: float = 10.0
    tls_timeout: float = 5.0
    dns_timeout: float = 3.0
    rdap_base_url: str = "https://rdap.org/domain/"

    # Fabricate "Unknown" registrar + one-year expiry when WHOIS fails.
    # Off by default: failed verification leaves stored state untouched.
    domain_fallback: bool = False

    # ------------------------------------------------------------------
    # Alerting
    # ------------------------------------------------------------------

    smtp_timeout: float = 10.0
    mail_sender_name: str = "ExpiryWatch Alerts"
    # Fire on days_remaining <= threshold instead of exact-day equality.
    alert_catch_up: bool = False
    alert_log_limit: int = 50
    test_account_api_url: str = "https://api.nodemailer.com/user"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    sync_rate_limit: str = "10/minute"
    verify_rate_limit: str = "30/minute"
    # memory:// keeps counters per process; use redis:// or similar behind several workers.
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_timing(self) -> "Settings":
        """Reject configurations that would let one host stall a sweep.

        Every network call in a sweep needs a bounded, positive timeout.
        A sweep interval under a minute would overlap with itself on any
        realistically sized account, so it is refused at startup.
        """
        for name in ("whois_timeout", "tls_timeout", "dns_timeout", "smtp_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of seconds.")
        if self.sweep_interval_seconds < 60:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be at least 60.")
        if self.domain_fallback:
            logger.warning("DOMAIN_FALLBACK is enabled -- failed WHOIS lookups will store synthetic expiry dates.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings. Tests that change the environment call get_settings.cache_clear()."""
    return Settings()
