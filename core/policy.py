"""
core/policy.py -- Notification policy: decide whether a threshold fires, send, log.

evaluate() is pure. NotificationEngine wraps it with the two side effects an
alert needs: delivery through the Mailer and one append-only AlertLogEntry per
attempt, written whatever the delivery outcome.

Triggering modes:
  exact    (default) -- Expired on days <= 0, otherwise only on the exact day
           count 7 / 15 / 30. A sweep that skips that day misses the alert.
  catch-up -- the tightest enabled threshold with days <= t fires, unless it
           has already been sent for this expiry date. Resistant to gaps.

In both modes the ledger is authoritative: a Sent row for the same
(entity, threshold, expiry date) suppresses a resend, so two sweeps on the
same day produce one email. Failed rows do not suppress a later retry.
"""

import logging
from typing import AbstractSet, Optional

from core.mailer import Mailer
from core.models import EntityType, Threshold
from core.notifications import AlertIntervals, OwnerSettings
from tracker.models import AlertLogEntry
from tracker.store import TrackerStore

logger = logging.getLogger("expirywatch.policy")

OUTCOME_SENT = "Sent"
OUTCOME_FAILED = "Failed"

# Tightest first. Catch-up mode relies on this order.
_THRESHOLD_ORDER = (Threshold.EXPIRED, Threshold.DAY7, Threshold.DAY15, Threshold.DAY30)


def _interval_enabled(intervals: AlertIntervals, threshold: Threshold) -> bool:
    return {
        Threshold.EXPIRED: intervals.expired,
        Threshold.DAY7: intervals.day7,
        Threshold.DAY15: intervals.day15,
        Threshold.DAY30: intervals.day30,
    }[threshold]


def evaluate(
    owner_settings: OwnerSettings,
    days_remaining: int,
    catch_up: bool = False,
    already_sent: AbstractSet[str] = frozenset(),
) -> Optional[Threshold]:
    """Return the threshold that should fire for days_remaining, or None.

    already_sent holds threshold labels delivered for the current expiry date;
    a threshold in it never fires again.
    """
    policy = owner_settings.notifications
    if not policy.enabled or not owner_settings.smtp.to_address:
        return None

    if catch_up:
        for threshold in _THRESHOLD_ORDER:
            if days_remaining <= threshold.days and _interval_enabled(policy.intervals, threshold):
                return None if threshold.value in already_sent else threshold
        return None

    if days_remaining <= 0:
        candidate = Threshold.EXPIRED
    else:
        candidate = next((t for t in _THRESHOLD_ORDER[1:] if t.days == days_remaining), None)
    if candidate is None or not _interval_enabled(policy.intervals, candidate):
        return None
    if candidate.value in already_sent:
        return None
    return candidate


def compose_alert(entity_type: EntityType, target: str, threshold: Threshold, expiry_date: str) -> tuple[str, str]:
    """Return (subject, body) for an alert email."""
    subject = f"Alert: {entity_type.value} {target} is {threshold.value}"
    if threshold == Threshold.EXPIRED:
        state = "now expired"
    else:
        state = f"expiring in {threshold.value}"
    body = f"The {entity_type.value} for {target} is {state}. Expiry date: {expiry_date}."
    return subject, body


class NotificationEngine:
    def __init__(self, store: TrackerStore, mailer: Mailer, catch_up: bool = False) -> None:
        self.store = store
        self.mailer = mailer
        self.catch_up = catch_up

    def notify(
        self,
        owner_id: int,
        owner_settings: OwnerSettings,
        entity_type: EntityType,
        entity_id: int,
        target: str,
        expiry_date: str,
        days_remaining: int,
    ) -> Optional[AlertLogEntry]:
        """Evaluate, send and log one alert. Returns the logged entry, or None if nothing fired."""
        already_sent = self.store.sent_alert_labels(entity_type.value, entity_id, expiry_date)
        threshold = evaluate(owner_settings, days_remaining, self.catch_up, already_sent)
        if threshold is None:
            return None

        subject, body = compose_alert(entity_type, target, threshold, expiry_date)
        result = self.mailer.send(owner_settings.smtp, subject, body)
        entry = AlertLogEntry(
            owner_id=owner_id,
            target_name=target,
            entity_type=entity_type.value,
            interval_label=threshold.value,
            outcome=OUTCOME_SENT if result.success else OUTCOME_FAILED,
            entity_id=entity_id,
            expiry_date=expiry_date,
            detail=None if result.success else result.message,
        )
        entry.id = self.store.append_alert_log(entry)
        logger.info(
            "Alert %s for %s %s (%s): %s", threshold.value, entity_type.value, target, expiry_date, entry.outcome
        )
        return entry
