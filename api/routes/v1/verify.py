"""
api/routes/v1/verify.py -- One-off live lookups, no persistence.

  POST /verify/domain  -- WHOIS (RDAP fallback) registrar + expiry
  POST /verify/ssl     -- TLS handshake issuer + expiry + type, plus resolved IP

The UI calls these before saving a new entity so the user can confirm what
was found.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from api.dependencies import verification_failed
from api.limiter import limiter
from api.models import CertificateVerification, DomainVerification, VerifyRequest
from core.config import get_settings
from core.verifier import Verifier

router = APIRouter()

_settings = get_settings()


@limiter.limit(_settings.verify_rate_limit)
@router.post("/verify/domain", response_model=DomainVerification)
def verify_domain(request: Request, body: VerifyRequest) -> DomainVerification:
    verifier: Verifier = request.app.state.verifier
    result = verifier.verify_domain(body.domain)
    if not result.ok:
        raise verification_failed(result.error, f"Could not verify domain {body.domain}.")
    return DomainVerification(
        registrar=result.info.registrar,
        domain_expiry=result.info.expiry.isoformat(),
        last_checked=datetime.now(timezone.utc).isoformat(),
    )


@limiter.limit(_settings.verify_rate_limit)
@router.post("/verify/ssl", response_model=CertificateVerification)
def verify_ssl(request: Request, body: VerifyRequest) -> CertificateVerification:
    """Read the certificate served by body.domain on port 443.

    404 when no certificate could be read. IP resolution is best effort and
    never fails the request.
    """
    verifier: Verifier = request.app.state.verifier
    result = verifier.verify_certificate(body.domain)
    if not result.ok:
        raise verification_failed(result.error, "No SSL certificate found for this host.")
    info = result.info
    return CertificateVerification(
        ssl_issuer=info.issuer,
        ssl_expiry=info.expiry.isoformat(),
        ssl_type=info.type.value,
        managed_by=info.managed_by,
        host=body.domain,
        last_checked=datetime.now(timezone.utc).isoformat(),
        ip_address=verifier.resolve_ip(body.domain),
    )
