"""
core/notifications.py -- Versioned per-owner notification configuration.

One OwnerSettings document per owner: the outbound SMTP profile plus the
alert policy (global switch and per-threshold flags). Every recognized field is
enumerated; unknown keys are rejected rather than stored.

Schema versions:
  0 -- legacy free-form blob: {"smtp": {host, port, user, pass, secure,
       useAuth, fromEmail, toEmail}, "notifications": {...}} with no
       "version" key. Upgraded on read by the before-validators below.
  1 -- current shape defined below.

Wire format is camelCase (authRequired, fromAddress, ...) to match the HTTP
API; Python attributes are snake_case. populate_by_name allows either.

The same model guards both directions: PUT /settings rejects a document that
could never deliver an alert (enabled with no recipient, auth required with
no credentials), and the sweep refuses to act on a stored document that no
longer validates.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.errors import PolicyMisconfiguration

SCHEMA_VERSION = 1

# Legacy smtp key -> current key
_LEGACY_SMTP_KEYS = {
    "secure": "useTLS",
    "useAuth": "authRequired",
    "fromEmail": "fromAddress",
    "toEmail": "toAddress",
}
_LEGACY_MARKERS = frozenset(_LEGACY_SMTP_KEYS) | {"user", "pass"}


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class SMTPCredentials(_CamelModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class SMTPProfile(_CamelModel):
    host: str = ""
    port: int = Field(default=587, ge=1, le=65535)
    auth_required: bool = False
    credentials: Optional[SMTPCredentials] = None
    # Implicit TLS (SMTPS). When false, STARTTLS is used if the server offers it.
    use_tls: bool = Field(default=False, alias="useTLS")
    from_address: str = ""
    to_address: str = ""

    @field_validator("from_address", "to_address")
    @classmethod
    def single_line(cls, value: str) -> str:
        if "\r" in value or "\n" in value:
            raise ValueError("address must not contain line breaks")
        return value

    @model_validator(mode="before")
    @classmethod
    def upgrade(cls, data: Any) -> Any:
        if isinstance(data, dict) and _LEGACY_MARKERS.intersection(data):
            return upgrade_legacy_smtp(data)
        return data

    @model_validator(mode="after")
    def check_credentials(self) -> "SMTPProfile":
        if self.auth_required and self.credentials is None:
            raise PolicyMisconfiguration("SMTP authentication is required but no credentials were provided.")
        return self

    @property
    def is_deliverable(self) -> bool:
        return bool(self.host and self.from_address and self.to_address)


class AlertIntervals(_CamelModel):
    expired: bool = True
    day7: bool = True
    day15: bool = False
    day30: bool = False


class NotificationPolicy(_CamelModel):
    enabled: bool = False
    intervals: AlertIntervals = Field(default_factory=AlertIntervals)


class OwnerSettings(_CamelModel):
    version: Literal[1] = SCHEMA_VERSION
    smtp: SMTPProfile = Field(default_factory=SMTPProfile)
    notifications: NotificationPolicy = Field(default_factory=NotificationPolicy)

    @model_validator(mode="before")
    @classmethod
    def upgrade(cls, data: Any) -> Any:
        # Version 0 differs only in its smtp keys, which SMTPProfile upgrades.
        if isinstance(data, dict) and "version" not in data:
            return {**data, "version": SCHEMA_VERSION}
        return data

    @model_validator(mode="after")
    def check_deliverable(self) -> "OwnerSettings":
        """Alerts switched on must have somewhere to go."""
        if self.notifications.enabled:
            if not self.smtp.to_address:
                raise PolicyMisconfiguration("Alerts are enabled but no recipient address is set.")
            if not self.smtp.host or not self.smtp.from_address:
                raise PolicyMisconfiguration("Alerts are enabled but the SMTP host or sender address is missing.")
        return self


def upgrade_legacy_smtp(smtp_in: dict) -> dict:
    """Translate a version-0 smtp blob to the version-1 key set.

    Keys with no version-1 counterpart are passed through so extra="forbid"
    reports them instead of silently dropping them.
    """
    smtp_in = dict(smtp_in)
    user = smtp_in.pop("user", None)
    password = smtp_in.pop("pass", None)
    smtp_out: dict[str, Any] = {_LEGACY_SMTP_KEYS.get(k, k): v for k, v in smtp_in.items()}
    if user or password:
        smtp_out["credentials"] = {"username": user or "", "password": password or ""}
    if smtp_out.get("port") in ("", None):
        smtp_out.pop("port", None)
    return smtp_out
