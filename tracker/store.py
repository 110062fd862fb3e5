"""
tracker/store.py -- SQLAlchemy-backed persistence for tracked entities,
per-owner notification settings, and the alert ledger.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tracker/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. TrackerStore is the repository; the
_row_to_* functions are the mappers. Route handlers and the sweep never touch
SQL directly.

Concurrency: every entity row carries an integer version. record_*_check()
writes only if the version still matches what the sweep read, so two
overlapping sweeps of the same row cannot silently overwrite each other
(the loser gets False and counts it as a skipped write).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TrackerStore()                                # SQLite default
    store = TrackerStore("postgresql://user:pw@host/db")  # PostgreSQL
    domain_id = store.create_domain(TrackedDomain(owner_id=1, name="example.com"))
    store.append_alert_log(entry)
    logs = store.list_alert_logs(owner_id=1)
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, select, text
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.db import make_engine
from core.notifications import OwnerSettings
from tracker.models import AlertLogEntry, TrackedCertificate, TrackedDomain

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_domains = Table(
    "domains",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("registrar", String(255)),
    Column("expiry_date", String(10)),  # YYYY-MM-DD
    Column("status", String(20)),
    Column("last_checked", String(32)),
    Column("managed_by", String(255)),
    Column("auto_renew", Integer, nullable=False, server_default="1"),
    Column("version", Integer, nullable=False, server_default="0"),
)

_certificates = Table(
    "certificates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("domain", String(255), nullable=False),
    Column("host", String(255)),
    Column("issuer", String(255)),
    Column("expiry_date", String(10)),
    Column("type", String(20), nullable=False, server_default="Standard"),
    Column("status", String(20)),
    Column("managed_by", String(255)),
    Column("ip_address", String(45)),
    Column("last_checked", String(32)),
    Column("version", Integer, nullable=False, server_default="0"),
)

_owner_settings = Table(
    "owner_settings",
    metadata,
    Column("owner_id", Integer, primary_key=True),
    Column("schema_version", Integer, nullable=False),
    Column("document", Text, nullable=False),  # OwnerSettings JSON
    Column("updated_at", String(32), nullable=False),
)

_alert_logs = Table(
    "alert_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("target_name", String(255), nullable=False),
    Column("entity_type", String(10), nullable=False),
    Column("entity_id", Integer),
    Column("interval_label", String(20), nullable=False),
    Column("expiry_date", String(10)),
    Column("outcome", String(10), nullable=False),
    Column("detail", Text),
    Index("ix_alert_logs_owner_ts", "owner_id", "timestamp"),
    Index("ix_alert_logs_dedup", "entity_type", "entity_id", "interval_label", "expiry_date"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TrackerStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Domains
    # ------------------------------------------------------------------

    def create_domain(self, domain: TrackedDomain) -> int:
        """Insert a new tracked domain and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _domains.insert().values(
                    owner_id=domain.owner_id,
                    name=domain.name,
                    registrar=domain.registrar,
                    expiry_date=domain.expiry_date,
                    status=domain.status,
                    last_checked=domain.last_checked or _now_iso(),
                    managed_by=domain.managed_by,
                    auto_renew=1 if domain.auto_renew else 0,
                    version=0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_domain(self, domain_id: int) -> Optional[TrackedDomain]:
        with self.engine.connect() as conn:
            row = conn.execute(_domains.select().where(_domains.c.id == domain_id)).fetchone()
        return _row_to_domain(row) if row is not None else None

    def list_domains(self, owner_id: int) -> list[TrackedDomain]:
        """Return an owner's domains ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _domains.select().where(_domains.c.owner_id == owner_id).order_by(_domains.c.name)
            ).fetchall()
        return [_row_to_domain(r) for r in rows]

    def update_domain(self, domain_id: int, **fields) -> bool:
        """Update mutable fields and bump the row version.

        Returns True if a row was updated, False if domain_id was not found.
        """
        if "auto_renew" in fields:
            fields["auto_renew"] = 1 if fields["auto_renew"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(
                _domains.update()
                .where(_domains.c.id == domain_id)
                .values(**fields, version=_domains.c.version + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def record_domain_check(
        self,
        domain_id: int,
        expected_version: int,
        *,
        registrar: str,
        expiry_date: str,
        status: str,
        last_checked: str,
    ) -> bool:
        """Write a sweep's verification outcome if nobody else wrote the row first."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _domains.update()
                .where((_domains.c.id == domain_id) & (_domains.c.version == expected_version))
                .values(
                    registrar=registrar,
                    expiry_date=expiry_date,
                    status=status,
                    last_checked=last_checked,
                    version=expected_version + 1,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_domain(self, domain_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_domains.delete().where(_domains.c.id == domain_id))
            conn.commit()
        return result.rowcount > 0

    def delete_domains(self, domain_ids: Iterable[int]) -> int:
        """Delete several domains in one statement. Returns the number removed."""
        ids = list(domain_ids)
        with self.engine.connect() as conn:
            result = conn.execute(_domains.delete().where(_domains.c.id.in_(ids)))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    def create_certificate(self, cert: TrackedCertificate) -> int:
        """Insert a new tracked certificate. host defaults to domain."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _certificates.insert().values(
                    owner_id=cert.owner_id,
                    domain=cert.domain,
                    host=cert.host or cert.domain,
                    issuer=cert.issuer,
                    expiry_date=cert.expiry_date,
                    type=cert.type,
                    status=cert.status,
                    managed_by=cert.managed_by,
                    ip_address=cert.ip_address,
                    last_checked=cert.last_checked or _now_iso(),
                    version=0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_certificate(self, cert_id: int) -> Optional[TrackedCertificate]:
        with self.engine.connect() as conn:
            row = conn.execute(_certificates.select().where(_certificates.c.id == cert_id)).fetchone()
        return _row_to_certificate(row) if row is not None else None

    def list_certificates(self, owner_id: int) -> list[TrackedCertificate]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _certificates.select().where(_certificates.c.owner_id == owner_id).order_by(_certificates.c.domain)
            ).fetchall()
        return [_row_to_certificate(r) for r in rows]

    def update_certificate(self, cert_id: int, **fields) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _certificates.update()
                .where(_certificates.c.id == cert_id)
                .values(**fields, version=_certificates.c.version + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def record_certificate_check(
        self,
        cert_id: int,
        expected_version: int,
        *,
        issuer: str,
        expiry_date: str,
        cert_type: str,
        status: str,
        last_checked: str,
    ) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _certificates.update()
                .where((_certificates.c.id == cert_id) & (_certificates.c.version == expected_version))
                .values(
                    issuer=issuer,
                    expiry_date=expiry_date,
                    type=cert_type,
                    status=status,
                    last_checked=last_checked,
                    version=expected_version + 1,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_certificate(self, cert_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_certificates.delete().where(_certificates.c.id == cert_id))
            conn.commit()
        return result.rowcount > 0

    def delete_certificates(self, cert_ids: Iterable[int]) -> int:
        ids = list(cert_ids)
        with self.engine.connect() as conn:
            result = conn.execute(_certificates.delete().where(_certificates.c.id.in_(ids)))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Owner settings
    # ------------------------------------------------------------------

    def get_settings_document(self, owner_id: int) -> Optional[dict]:
        """Return the raw stored settings JSON for an owner, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_owner_settings.c.document).where(_owner_settings.c.owner_id == owner_id)
            ).fetchone()
        return json.loads(row.document) if row is not None else None

    def get_owner_settings(self, owner_id: int) -> Optional[OwnerSettings]:
        """Return validated settings, or None if the owner never saved any.

        Raises pydantic.ValidationError when the stored document no longer
        validates -- callers decide whether that is fatal.
        """
        document = self.get_settings_document(owner_id)
        if document is None:
            return None
        return OwnerSettings.model_validate(document)

    def save_owner_settings(self, owner_id: int, owner_settings: OwnerSettings) -> None:
        """Insert or replace an owner's settings document."""
        document = owner_settings.model_dump_json(by_alias=True)
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _owner_settings.update()
                .where(_owner_settings.c.owner_id == owner_id)
                .values(schema_version=owner_settings.version, document=document, updated_at=now)
            )
            if result.rowcount == 0:
                conn.execute(
                    _owner_settings.insert().values(
                        owner_id=owner_id,
                        schema_version=owner_settings.version,
                        document=document,
                        updated_at=now,
                    )
                )
            conn.commit()

    # ------------------------------------------------------------------
    # Alert ledger
    # ------------------------------------------------------------------

    def append_alert_log(self, entry: AlertLogEntry) -> int:
        """Append one alert attempt. Records are never updated or deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _alert_logs.insert().values(
                    owner_id=entry.owner_id,
                    timestamp=entry.timestamp or _now_iso(),
                    target_name=entry.target_name,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    interval_label=entry.interval_label,
                    expiry_date=entry.expiry_date,
                    outcome=entry.outcome,
                    detail=entry.detail,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_alert_logs(self, owner_id: int, limit: int = 50) -> list[AlertLogEntry]:
        """Return an owner's most recent alert attempts, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _alert_logs.select()
                .where(_alert_logs.c.owner_id == owner_id)
                .order_by(_alert_logs.c.timestamp.desc(), _alert_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_alert(r) for r in rows]

    def sent_alert_labels(self, entity_type: str, entity_id: int, expiry_date: str) -> set[str]:
        """Return threshold labels already delivered for this entity's current expiry.

        Only Sent rows count; a Failed attempt does not block a later retry.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_alert_logs.c.interval_label).where(
                    (_alert_logs.c.entity_type == entity_type)
                    & (_alert_logs.c.entity_id == entity_id)
                    & (_alert_logs.c.expiry_date == expiry_date)
                    & (_alert_logs.c.outcome == "Sent")
                )
            ).fetchall()
        return {r.interval_label for r in rows}

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_domain(row) -> TrackedDomain:
    return TrackedDomain(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        registrar=row.registrar or "",
        expiry_date=row.expiry_date or "",
        status=row.status or "",
        last_checked=row.last_checked or "",
        managed_by=row.managed_by,
        auto_renew=bool(row.auto_renew),
        version=row.version,
    )


def _row_to_certificate(row) -> TrackedCertificate:
    return TrackedCertificate(
        id=row.id,
        owner_id=row.owner_id,
        domain=row.domain,
        host=row.host or row.domain,
        issuer=row.issuer or "",
        expiry_date=row.expiry_date or "",
        type=row.type,
        status=row.status or "",
        managed_by=row.managed_by,
        ip_address=row.ip_address or "N/A",
        last_checked=row.last_checked or "",
        version=row.version,
    )


def _row_to_alert(row) -> AlertLogEntry:
    return AlertLogEntry(
        id=row.id,
        owner_id=row.owner_id,
        timestamp=row.timestamp,
        target_name=row.target_name,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        interval_label=row.interval_label,
        expiry_date=row.expiry_date,
        outcome=row.outcome,
        detail=row.detail,
    )
