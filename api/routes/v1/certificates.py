"""
api/routes/v1/certificates.py -- Tracked TLS certificate management.

  POST   /ssl             -- read the certificate on host:443, then track it
  DELETE /ssl/bulk        -- delete several by id
  PUT    /ssl/{cert_id}   -- edit label, host, owner label or IP; no re-verification
  DELETE /ssl/{cert_id}

domain is the display label; host is where the handshake goes and defaults to
domain. The next sweep picks up a changed host.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Body, Request

from api.dependencies import not_found, require_owner, verification_failed
from api.limiter import limiter
from api.models import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CertificateCreate,
    CertificateOut,
    CertificateUpdate,
    SuccessResponse,
)
from core.classifier import classify
from core.verifier import Verifier, normalize_host
from tracker.models import TrackedCertificate
from tracker.store import TrackerStore

router = APIRouter()


@limiter.limit("30/minute")
@router.post("/ssl", response_model=CertificateOut, status_code=201)
def create_certificate(request: Request, body: CertificateCreate) -> CertificateOut:
    require_owner(request, body.owner_id)
    store: TrackerStore = request.app.state.store
    verifier: Verifier = request.app.state.verifier
    host = normalize_host(body.host or body.domain)
    result = verifier.verify_certificate(host)
    if not result.ok:
        raise verification_failed(result.error, "No SSL certificate found for this host.")
    info = result.info
    cert = TrackedCertificate(
        owner_id=body.owner_id,
        domain=body.domain,
        host=host,
        issuer=info.issuer,
        expiry_date=info.expiry.isoformat(),
        type=info.type.value,
        status=classify(info.expiry).status.value,
        managed_by=body.managed_by or info.managed_by,
        ip_address=verifier.resolve_ip(host),
        last_checked=datetime.now(timezone.utc).isoformat(),
    )
    cert_id = store.create_certificate(cert)
    return CertificateOut.from_certificate(store.get_certificate(cert_id))


@router.delete("/ssl/bulk", response_model=BulkDeleteResponse)
def delete_certificates(request: Request, body: BulkDeleteRequest = Body(...)) -> BulkDeleteResponse:
    store: TrackerStore = request.app.state.store
    return BulkDeleteResponse(deleted=store.delete_certificates(body.ids))


@router.put("/ssl/{cert_id}", response_model=CertificateOut)
def update_certificate(request: Request, cert_id: int, body: CertificateUpdate) -> CertificateOut:
    store: TrackerStore = request.app.state.store
    existing = store.get_certificate(cert_id)
    if existing is None:
        raise not_found("Certificate not found.")
    store.update_certificate(
        cert_id,
        domain=body.domain,
        host=normalize_host(body.host or body.domain),
        managed_by=body.managed_by,
        ip_address=body.ip_address or existing.ip_address,
    )
    return CertificateOut.from_certificate(store.get_certificate(cert_id))


@router.delete("/ssl/{cert_id}", response_model=SuccessResponse)
def delete_certificate(request: Request, cert_id: int) -> SuccessResponse:
    store: TrackerStore = request.app.state.store
    if not store.delete_certificate(cert_id):
        raise not_found("Certificate not found.")
    return SuccessResponse()
