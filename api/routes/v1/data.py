"""
api/routes/v1/data.py -- Owner dashboard payload and bulk import.

  GET  /data/{owner_id}   -- domains, certificates, settings, recent alert log
  POST /bulk-import       -- verify and insert many domains or certificates

Status and daysRemaining in GET /data are recomputed from each row's cached
expiry date on every request; the stored status column is never served as-is.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import ValidationError

from api.dependencies import require_owner
from api.limiter import limiter
from api.models import (
    AlertLogOut,
    BulkImportItem,
    BulkImportRequest,
    BulkImportResponse,
    CertificateOut,
    DomainOut,
    OwnerDataResponse,
)
from core.classifier import classify
from core.config import get_settings
from core.verifier import Verifier, normalize_host
from tracker.models import TrackedCertificate, TrackedDomain
from tracker.store import TrackerStore

logger = logging.getLogger("expirywatch.api.data")

router = APIRouter()


@router.get("/data/{owner_id}", response_model=OwnerDataResponse)
def owner_data(request: Request, owner_id: int) -> OwnerDataResponse:
    require_owner(request, owner_id)
    store: TrackerStore = request.app.state.store
    try:
        owner_settings = store.get_owner_settings(owner_id)
    except ValidationError as e:
        logger.warning("Stored settings for owner %d do not validate: %s", owner_id, e)
        owner_settings = None
    return OwnerDataResponse(
        domains=[DomainOut.from_domain(d) for d in store.list_domains(owner_id)],
        ssl_certs=[CertificateOut.from_certificate(c) for c in store.list_certificates(owner_id)],
        settings=owner_settings,
        logs=[AlertLogOut.from_entry(e) for e in store.list_alert_logs(owner_id, get_settings().alert_log_limit)],
    )


@limiter.limit("5/minute")
@router.post("/bulk-import", response_model=BulkImportResponse)
def bulk_import(request: Request, body: BulkImportRequest) -> BulkImportResponse:
    """Verify each row and insert the ones that check out.

    Rows are independent: a row that fails verification is counted and the
    rest still import.
    """
    require_owner(request, body.owner_id)
    store: TrackerStore = request.app.state.store
    verifier: Verifier = request.app.state.verifier
    importer = _import_domain if body.type == "domains" else _import_certificate
    succeeded = failed = 0
    for item in body.data:
        if not item.domain:
            failed += 1
            continue
        if importer(store, verifier, body.owner_id, item):
            succeeded += 1
        else:
            failed += 1
    logger.info("Bulk import (%s) for owner %d: %d ok, %d failed", body.type, body.owner_id, succeeded, failed)
    return BulkImportResponse(success=succeeded, failed=failed)


def _import_domain(store: TrackerStore, verifier: Verifier, owner_id: int, item: BulkImportItem) -> bool:
    name = normalize_host(item.domain)
    result = verifier.verify_domain(name)
    if not result.ok:
        return False
    store.create_domain(
        TrackedDomain(
            owner_id=owner_id,
            name=name,
            registrar=result.info.registrar,
            expiry_date=result.info.expiry.isoformat(),
            status=classify(result.info.expiry).status.value,
            last_checked=datetime.now(timezone.utc).isoformat(),
            managed_by=item.managed_by,
        )
    )
    return True


def _import_certificate(store: TrackerStore, verifier: Verifier, owner_id: int, item: BulkImportItem) -> bool:
    host = normalize_host(item.host or item.domain)
    result = verifier.verify_certificate(host)
    if not result.ok:
        return False
    info = result.info
    store.create_certificate(
        TrackedCertificate(
            owner_id=owner_id,
            domain=item.domain,
            host=host,
            issuer=info.issuer,
            expiry_date=info.expiry.isoformat(),
            type=info.type.value,
            status=classify(info.expiry).status.value,
            managed_by=item.managed_by or info.managed_by,
            ip_address=item.ip_address or verifier.resolve_ip(host),
            last_checked=datetime.now(timezone.utc).isoformat(),
        )
    )
    return True
