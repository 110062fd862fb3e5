"""
API request and response models for ExpiryWatch REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in tracker/models.py and
core/models.py, which own the internal domain representation. Route handlers
map between the two.

JSON keys are camelCase (domainExpiry, sslIssuer, ownerId, ...). FastAPI
serializes response models by alias, and populate_by_name lets handlers build
them with snake_case keyword arguments.
"""

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.classifier import classify
from core.notifications import OwnerSettings, SMTPProfile
from tracker.models import AlertLogEntry, TrackedCertificate, TrackedDomain


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# Names end up in alert subject headers
_SINGLE_LINE = r"^[^\r\n]*$"
_Hostname = Annotated[str, Field(min_length=1, max_length=253, pattern=_SINGLE_LINE)]


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(_ApiModel):
    """Response for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
    last_sweep: Optional[str] = None


class SuccessResponse(_ApiModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class VerifyRequest(_ApiModel):
    """Body for POST /verify/domain and POST /verify/ssl."""

    domain: _Hostname


class DomainVerification(_ApiModel):
    registrar: str
    domain_expiry: str
    last_checked: str


class CertificateVerification(_ApiModel):
    ssl_issuer: str
    ssl_expiry: str
    ssl_type: str
    managed_by: str
    host: str
    last_checked: str
    ip_address: str


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class SyncResponse(_ApiModel):
    success: bool = True
    timestamp: str
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingsUpdate(OwnerSettings):
    """Body for PUT /settings: an OwnerSettings document plus its owner.

    Inherits every validator, so a policy that could never deliver is a 422
    here rather than a silent skip during the sweep.
    """

    owner_id: int = Field(ge=1)

    def to_owner_settings(self) -> OwnerSettings:
        return OwnerSettings(smtp=self.smtp, notifications=self.notifications)


class EmailTestRequest(_ApiModel):
    smtp: SMTPProfile


class EmailTestResponse(_ApiModel):
    success: bool
    message: str
    preview_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------


class DomainCreate(_ApiModel):
    owner_id: int = Field(ge=1)
    name: _Hostname
    managed_by: Optional[str] = Field(default=None, max_length=255)


class DomainUpdate(_ApiModel):
    name: _Hostname
    managed_by: Optional[str] = Field(default=None, max_length=255)


class DomainOut(_ApiModel):
    id: int
    owner_id: int
    name: str
    registrar: str
    expiry_date: str
    status: str
    days_remaining: Optional[int] = None
    last_checked: str
    managed_by: Optional[str] = None
    auto_renew: bool = True

    @classmethod
    def from_domain(cls, domain: TrackedDomain) -> "DomainOut":
        """Build the response with status recomputed against the current time."""
        status, days = _live_status(domain.expiry_date, domain.status)
        return cls(
            id=domain.id,
            owner_id=domain.owner_id,
            name=domain.name,
            registrar=domain.registrar,
            expiry_date=domain.expiry_date,
            status=status,
            days_remaining=days,
            last_checked=domain.last_checked,
            managed_by=domain.managed_by,
            auto_renew=domain.auto_renew,
        )


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


class CertificateCreate(_ApiModel):
    owner_id: int = Field(ge=1)
    domain: _Hostname
    host: Optional[str] = Field(default=None, max_length=253, pattern=_SINGLE_LINE)
    managed_by: Optional[str] = Field(default=None, max_length=255)


class CertificateUpdate(_ApiModel):
    domain: _Hostname
    host: Optional[str] = Field(default=None, max_length=253, pattern=_SINGLE_LINE)
    managed_by: Optional[str] = Field(default=None, max_length=255)
    ip_address: Optional[str] = Field(default=None, max_length=45)


class CertificateOut(_ApiModel):
    id: int
    owner_id: int
    domain: str
    host: str
    issuer: str
    expiry_date: str
    type: str
    status: str
    days_remaining: Optional[int] = None
    managed_by: Optional[str] = None
    ip_address: str
    last_checked: str

    @classmethod
    def from_certificate(cls, cert: TrackedCertificate) -> "CertificateOut":
        status, days = _live_status(cert.expiry_date, cert.status)
        return cls(
            id=cert.id,
            owner_id=cert.owner_id,
            domain=cert.domain,
            host=cert.target,
            issuer=cert.issuer,
            expiry_date=cert.expiry_date,
            type=cert.type,
            status=status,
            days_remaining=days,
            managed_by=cert.managed_by,
            ip_address=cert.ip_address,
            last_checked=cert.last_checked,
        )


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------


class BulkDeleteRequest(_ApiModel):
    ids: list[int] = Field(min_length=1, max_length=500)


class BulkDeleteResponse(_ApiModel):
    success: bool = True
    deleted: int


class BulkImportItem(_ApiModel):
    domain: str = Field(default="", max_length=253, pattern=_SINGLE_LINE)
    host: Optional[str] = Field(default=None, max_length=253, pattern=_SINGLE_LINE)
    managed_by: Optional[str] = Field(default=None, max_length=255)
    ip_address: Optional[str] = Field(default=None, max_length=45)


class BulkImportRequest(_ApiModel):
    owner_id: int = Field(ge=1)
    type: Literal["domains", "ssl"]
    data: list[BulkImportItem] = Field(max_length=500)


class BulkImportResponse(_ApiModel):
    success: int
    failed: int


# ---------------------------------------------------------------------------
# Owner data
# ---------------------------------------------------------------------------


class AlertLogOut(_ApiModel):
    id: int
    timestamp: str
    target_name: str
    entity_type: str
    interval_label: str
    outcome: str
    expiry_date: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: AlertLogEntry) -> "AlertLogOut":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            target_name=entry.target_name,
            entity_type=entry.entity_type,
            interval_label=entry.interval_label,
            outcome=entry.outcome,
            expiry_date=entry.expiry_date,
            detail=entry.detail,
        )


class OwnerDataResponse(_ApiModel):
    domains: list[DomainOut]
    ssl_certs: list[CertificateOut]
    settings: Optional[OwnerSettings] = None
    logs: list[AlertLogOut]


# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------


class CredentialsRequest(_ApiModel):
    """Body for POST /auth/register and POST /auth/login.

    max_length=72 keeps passwords inside bcrypt's input limit.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class OwnerOut(_ApiModel):
    id: int
    username: str


def _live_status(expiry_date: str, stored_status: str) -> tuple[str, Optional[int]]:
    if not expiry_date:
        return stored_status, None
    classification = classify(expiry_date)
    return classification.status.value, classification.days_remaining
