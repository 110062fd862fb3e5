"""
core/sweep.py -- The sweep orchestrator: re-verify every tracked entity and alert.

AuditService is built once at startup with its store, verifier, mailer and
clock injected, and shared by the scheduler, the manual sync route and the CLI.

One pass per owner:
  1. Load the owner's notification settings. A stored document that no longer
     validates disables alerts for this pass; verification still runs.
  2. Domains: verify -> classify -> persist -> notify, one at a time.
  3. Certificates, same steps. A failed lookup skips the entity entirely:
     no write, no alert, previous state untouched.

Failure isolation: every entity runs inside its own try block. A database
error or an unexpected exception is logged and counted in SweepStats.failed,
and the loop moves on to the next entity.

Concurrency: a non-blocking per-owner lock. A manual sync that finds the
owner busy raises SweepInProgress; the scheduled sweep just skips that owner.
Sweep writes are version-checked in the store, so even a writer outside this
process cannot be overwritten silently.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from auth.store import UserStore
from core.classifier import classify
from core.config import Settings, get_settings
from core.errors import SweepInProgress
from core.mailer import Mailer
from core.models import EntityType
from core.notifications import OwnerSettings
from core.policy import OUTCOME_SENT, NotificationEngine
from core.verifier import Verifier
from tracker.models import TrackedCertificate, TrackedDomain
from tracker.store import TrackerStore

logger = logging.getLogger("expirywatch.sweep")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepStats:
    owners: int = 0
    checked: int = 0
    updated: int = 0
    skipped: int = 0  # verification failed or a concurrent write won the row
    failed: int = 0  # persistence or unexpected error
    alerts_sent: int = 0
    alerts_failed: int = 0
    timestamp: str = ""

    def merge(self, other: "SweepStats") -> None:
        for name in ("owners", "checked", "updated", "skipped", "failed", "alerts_sent", "alerts_failed"):
            setattr(self, name, getattr(self, name) + getattr(other, name))


class AuditService:
    def __init__(
        self,
        store: TrackerStore,
        user_store: UserStore,
        verifier: Verifier,
        mailer: Mailer,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.user_store = user_store
        self.verifier = verifier
        self.settings = settings or get_settings()
        self.clock = clock
        self.notifier = NotificationEngine(store, mailer, catch_up=self.settings.alert_catch_up)
        self.last_sweep: Optional[str] = None
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, owner_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(owner_id, threading.Lock())

    def is_busy(self, owner_id: int) -> bool:
        return self._lock_for(owner_id).locked()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def sync_owner(self, owner_id: int) -> SweepStats:
        """Sweep one owner now. Raises SweepInProgress if one is already running."""
        lock = self._lock_for(owner_id)
        if not lock.acquire(blocking=False):
            raise SweepInProgress(owner_id)
        try:
            stats = self._sweep_owner(owner_id)
        finally:
            lock.release()
        self.last_sweep = stats.timestamp
        return stats

    def sweep_all(self) -> SweepStats:
        """One pass over every owner. Busy owners are skipped, failures are counted."""
        total = SweepStats()
        for owner_id in self.user_store.list_user_ids():
            lock = self._lock_for(owner_id)
            if not lock.acquire(blocking=False):
                logger.info("Owner %d already being swept, skipping", owner_id)
                continue
            try:
                total.merge(self._sweep_owner(owner_id))
            except Exception:
                # Listing the owner's rows failed; the next owner still runs.
                logger.exception("Sweep aborted for owner %d", owner_id)
                total.failed += 1
            finally:
                lock.release()
        total.timestamp = self.clock().isoformat()
        self.last_sweep = total.timestamp
        logger.info(
            "Sweep complete: owners=%d checked=%d updated=%d skipped=%d failed=%d alerts_sent=%d alerts_failed=%d",
            total.owners,
            total.checked,
            total.updated,
            total.skipped,
            total.failed,
            total.alerts_sent,
            total.alerts_failed,
        )
        return total

    # ------------------------------------------------------------------
    # Per owner
    # ------------------------------------------------------------------

    def _load_owner_settings(self, owner_id: int) -> Optional[OwnerSettings]:
        try:
            return self.store.get_owner_settings(owner_id)
        except ValidationError as e:
            logger.warning("Owner %d has invalid notification settings, alerts skipped: %s", owner_id, e)
            return None

    def _sweep_owner(self, owner_id: int) -> SweepStats:
        stats = SweepStats(owners=1)
        now = self.clock()
        owner_settings = self._load_owner_settings(owner_id)

        for domain in self.store.list_domains(owner_id):
            self._run_isolated(stats, "domain", domain.name, self._check_domain, domain, now, owner_settings)
        for cert in self.store.list_certificates(owner_id):
            self._run_isolated(stats, "certificate", cert.target, self._check_certificate, cert, now, owner_settings)

        stats.timestamp = now.isoformat()
        logger.info(
            "Owner %d swept: checked=%d updated=%d skipped=%d failed=%d",
            owner_id,
            stats.checked,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        return stats

    def _run_isolated(self, stats: SweepStats, kind: str, label: str, check, *args) -> None:
        stats.checked += 1
        try:
            check(stats, *args)
        except SQLAlchemyError:
            logger.exception("Could not persist %s %s", kind, label)
            stats.failed += 1
        except Exception:
            logger.exception("Unexpected error while checking %s %s", kind, label)
            stats.failed += 1

    # ------------------------------------------------------------------
    # Per entity
    # ------------------------------------------------------------------

    def _check_domain(
        self, stats: SweepStats, domain: TrackedDomain, now: datetime, owner_settings: Optional[OwnerSettings]
    ) -> None:
        result = self.verifier.verify_domain(domain.name)
        if not result.ok:
            logger.warning("Domain %s not verified (%s), keeping previous state", domain.name, result.error)
            stats.skipped += 1
            return
        info = result.info
        classification = classify(info.expiry, now)
        expiry_date = info.expiry.isoformat()
        written = self.store.record_domain_check(
            domain.id,
            domain.version,
            registrar=info.registrar,
            expiry_date=expiry_date,
            status=classification.status.value,
            last_checked=now.isoformat(),
        )
        if not written:
            logger.warning("Domain %s changed during the sweep, update dropped", domain.name)
            stats.skipped += 1
            return
        stats.updated += 1
        if owner_settings is not None:
            self._notify(stats, domain.owner_id, owner_settings, EntityType.DOMAIN, domain.id, domain.name,
                         expiry_date, classification.days_remaining)

    def _check_certificate(
        self, stats: SweepStats, cert: TrackedCertificate, now: datetime, owner_settings: Optional[OwnerSettings]
    ) -> None:
        result = self.verifier.verify_certificate(cert.target)
        if not result.ok:
            logger.warning("Certificate for %s not retrieved (%s), keeping previous state", cert.target, result.error)
            stats.skipped += 1
            return
        info = result.info
        classification = classify(info.expiry, now)
        expiry_date = info.expiry.isoformat()
        written = self.store.record_certificate_check(
            cert.id,
            cert.version,
            issuer=info.issuer,
            expiry_date=expiry_date,
            cert_type=info.type.value,
            status=classification.status.value,
            last_checked=now.isoformat(),
        )
        if not written:
            logger.warning("Certificate %s changed during the sweep, update dropped", cert.domain)
            stats.skipped += 1
            return
        stats.updated += 1
        if owner_settings is not None:
            self._notify(stats, cert.owner_id, owner_settings, EntityType.SSL, cert.id, cert.domain,
                         expiry_date, classification.days_remaining)

    def _notify(self, stats: SweepStats, owner_id: int, owner_settings: OwnerSettings, entity_type: EntityType,
                entity_id: int, target: str, expiry_date: str, days_remaining: int) -> None:
        # Runs after the status write, so errors here count as alert failures only.
        try:
            entry = self.notifier.notify(owner_id, owner_settings, entity_type, entity_id, target, expiry_date,
                                         days_remaining)
        except Exception:
            logger.exception("Alerting failed for %s %s", entity_type.value, target)
            stats.alerts_failed += 1
            return
        if entry is None:
            return
        if entry.outcome == OUTCOME_SENT:
            stats.alerts_sent += 1
        else:
            stats.alerts_failed += 1
