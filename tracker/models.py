"""
tracker/models.py -- Domain dataclasses for tracked entities and the alert ledger.

Pure data containers with zero logic. Status recomputation lives in
core/classifier.py; persistence lives in tracker/store.py.

status on TrackedDomain / TrackedCertificate is a cache of
classify(expiry_date, last_checked). The read path recomputes it against the
current time, so a stale row can never report the wrong urgency.

id is None before the record is written to the database. version is bumped by
the store on every write and used for optimistic concurrency by the sweep.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TrackedDomain:
    owner_id: int
    name: str
    registrar: str = ""
    expiry_date: str = ""  # YYYY-MM-DD
    status: str = ""  # "Healthy" | "Warning" | "Critical" | "Expired"
    last_checked: str = ""  # ISO 8601
    managed_by: Optional[str] = None
    auto_renew: bool = True
    id: Optional[int] = None
    version: int = 0


@dataclass
class TrackedCertificate:
    """A TLS certificate tracked by display label, verified against host.

    host defaults to domain when the certificate is served from somewhere
    other than the name users know it by (load balancer, CDN edge, ...).
    """

    owner_id: int
    domain: str
    host: str = ""
    issuer: str = ""
    expiry_date: str = ""  # YYYY-MM-DD
    type: str = "Standard"  # "Standard" | "Wildcard"
    status: str = ""
    managed_by: Optional[str] = None
    ip_address: str = "N/A"
    last_checked: str = ""
    id: Optional[int] = None
    version: int = 0

    @property
    def target(self) -> str:
        return self.host or self.domain


@dataclass
class AlertLogEntry:
    """Immutable record of one alert attempt.

    Append-only: written once per send attempt, never updated or deleted.
    Doubles as the de-duplication ledger -- a Sent row for the same
    (entity_type, entity_id, interval_label, expiry_date) suppresses a resend.
    """

    owner_id: int
    target_name: str
    entity_type: str  # "Domain" | "SSL"
    interval_label: str  # "Expired" | "7 Days" | "15 Days" | "30 Days"
    outcome: str  # "Sent" | "Failed"
    timestamp: str = ""  # ISO 8601, set by store on insert
    entity_id: Optional[int] = None
    expiry_date: Optional[str] = None
    detail: Optional[str] = None
    id: Optional[int] = None
