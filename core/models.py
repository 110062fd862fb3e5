"""
core/models.py -- Domain types for the expiry-audit engine.

Pure data containers. The verifier produces them, the classifier and policy
engine consume them, and the sweep orchestrator moves them into the store.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Generic, Optional, TypeVar

from core.errors import VerificationError

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Status(str, Enum):
    """Ordinal urgency status. Ordering follows declaration order."""

    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"
    EXPIRED = "Expired"

    @property
    def rank(self) -> int:
        return list(Status).index(self)


class Threshold(str, Enum):
    """Alert thresholds. The value is the label written to the alert log."""

    EXPIRED = "Expired"
    DAY7 = "7 Days"
    DAY15 = "15 Days"
    DAY30 = "30 Days"

    @property
    def days(self) -> int:
        return _THRESHOLD_DAYS[self]


_THRESHOLD_DAYS = {
    Threshold.EXPIRED: 0,
    Threshold.DAY7: 7,
    Threshold.DAY15: 15,
    Threshold.DAY30: 30,
}


class EntityType(str, Enum):
    DOMAIN = "Domain"
    SSL = "SSL"


class CertificateType(str, Enum):
    STANDARD = "Standard"
    WILDCARD = "Wildcard"


# ---------------------------------------------------------------------------
# Verifier output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainInfo:
    registrar: str
    expiry: date


@dataclass(frozen=True)
class CertificateInfo:
    issuer: str
    expiry: date
    type: CertificateType
    # Issuer CN, or "Direct" when absent. Used as the default managedBy label.
    managed_by: str = "Direct"


T = TypeVar("T")


@dataclass(frozen=True)
class VerificationResult(Generic[T]):
    """Either verified info or a typed error -- never both.

    Callers branch on .ok rather than catching exceptions, because "no data",
    "timed out" and "host unreachable" each need a different reaction.
    """

    info: Optional[T] = None
    error: Optional[VerificationError] = None

    @property
    def ok(self) -> bool:
        return self.info is not None

    @classmethod
    def success(cls, info: T) -> "VerificationResult[T]":
        return cls(info=info)

    @classmethod
    def failure(cls, error: VerificationError) -> "VerificationResult[T]":
        return cls(error=error)


# ---------------------------------------------------------------------------
# Classifier / policy output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Classification:
    status: Status
    days_remaining: int


@dataclass(frozen=True)
class MailResult:
    success: bool
    message: str = ""
    preview_url: Optional[str] = None
