"""
core/verifier.py -- Live expiry lookups: WHOIS/RDAP for domains, TLS for certificates.

Stateless request/response. Every network call carries its own bounded timeout
so a single unreachable host cannot stall a sweep. Nothing here raises for
network trouble: each lookup returns a VerificationResult carrying either the
verified info or a VerificationError whose kind tells the caller how to react.

Lookup order for domains:
  1. WHOIS via python-whois, first expiry-like field present wins.
  2. RDAP via requests when WHOIS answered but carried no expiry.

Certificates are fetched without chain validation -- the goal is reading
notAfter/issuer metadata, not establishing trust -- and decoded from DER with
the cryptography package, because ssl.getpeercert() returns an empty dict
once verification is disabled.
"""

import logging
import socket
import ssl
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import requests
import whois
from cryptography import x509
from cryptography.x509.oid import NameOID
from whois.exceptions import PywhoisError

from core.config import Settings, get_settings
from core.errors import VerificationError, VerificationErrorKind
from core.models import CertificateInfo, CertificateType, DomainInfo, VerificationResult

logger = logging.getLogger("expirywatch.verifier")

TLS_PORT = 443
UNKNOWN_REGISTRAR = "Unknown"

# Prioritized python-whois keys; the first present one is the expiry.
_WHOIS_EXPIRY_FIELDS = (
    "registry_expiry_date",
    "expiry_date",
    "expiration_date",
    "expires_date",
    "expires",
)

# python-whois and getaddrinfo have no reliable per-call timeout, so both run
# on this pool and the caller waits at most the configured number of seconds.
_lookup_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="expirywatch-lookup")

_session = requests.Session()
_session.max_redirects = 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_host(value: str) -> str:
    """Strip scheme, path and port; lowercase. 'https://Example.com:443/x' -> 'example.com'."""
    host = value.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0]
    if ":" in host:
        host = host.split(":", 1)[0]
    return host.strip().lower().rstrip(".")


def _to_date(value: Any) -> Optional[date]:
    """Coerce a python-whois date value (datetime, list of datetimes, or string) to a date.

    When the registry reports several dates the earliest one is used.
    """
    if isinstance(value, (list, tuple)):
        dates = [d for d in (_to_date(v) for v in value) if d is not None]
        return min(dates) if dates else None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return _to_date(datetime.fromisoformat(raw))
        except ValueError:
            pass
        for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%d-%b-%Y", "%Y.%m.%d"):
            try:
                return datetime.strptime(raw, fmt).date()
            except ValueError:
                continue
    return None


def _first_str(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _classify_socket_error(exc: BaseException) -> VerificationErrorKind:
    if isinstance(exc, (socket.timeout, TimeoutError, FutureTimeout)):
        return VerificationErrorKind.TIMEOUT
    return VerificationErrorKind.UNREACHABLE


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------


def lookup_whois(name: str, timeout: float) -> VerificationResult[DomainInfo]:
    """Query WHOIS and extract registrar + expiry. Bounded by timeout seconds."""
    future = _lookup_pool.submit(whois.whois, name)
    try:
        record = future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("WHOIS lookup timed out for %s after %.1fs", name, timeout)
        return VerificationResult.failure(VerificationError(VerificationErrorKind.TIMEOUT, "whois timed out"))
    except PywhoisError as e:
        logger.warning("WHOIS returned no record for %s: %s", name, e)
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, str(e)))
    except OSError as e:
        logger.warning("WHOIS lookup failed for %s: %s", name, e)
        return VerificationResult.failure(VerificationError(_classify_socket_error(e), str(e)))

    if not record:
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, "empty whois record"))

    expiry: Optional[date] = None
    for field in _WHOIS_EXPIRY_FIELDS:
        expiry = _to_date(record.get(field))
        if expiry is not None:
            break
    if expiry is None:
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, "no expiry field in whois"))

    registrar = _first_str(record.get("registrar")) or "Unknown Registrar"
    return VerificationResult.success(DomainInfo(registrar=registrar, expiry=expiry))


def lookup_rdap(name: str, base_url: str, timeout: float) -> VerificationResult[DomainInfo]:
    """Query an RDAP service for the domain's expiration event."""
    try:
        resp = _session.get(
            base_url + name,
            headers={"Accept": "application/rdap+json, application/json"},
            timeout=timeout,
        )
        if resp.status_code == 404:
            return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, "rdap: not found"))
        resp.raise_for_status()
        data = resp.json()
    except requests.Timeout:
        return VerificationResult.failure(VerificationError(VerificationErrorKind.TIMEOUT, "rdap timed out"))
    except (requests.RequestException, ValueError) as e:
        logger.warning("RDAP lookup failed for %s: %s", name, e)
        return VerificationResult.failure(VerificationError(VerificationErrorKind.UNREACHABLE, str(e)))

    expiry = None
    for event in data.get("events") or []:
        if isinstance(event, dict) and str(event.get("eventAction", "")).lower() == "expiration":
            expiry = _to_date(event.get("eventDate"))
            if expiry:
                break
    if expiry is None:
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, "rdap: no expiration event"))

    registrar = "Unknown Registrar"
    for entity in data.get("entities") or []:
        if "registrar" in (entity.get("roles") or []):
            # vcardArray = ["vcard", [["fn", {}, "text", "Name"], ...]]
            for prop in (entity.get("vcardArray") or [None, []])[1]:
                if prop and prop[0] == "fn" and len(prop) > 3:
                    registrar = str(prop[3])
                    break
    return VerificationResult.success(DomainInfo(registrar=registrar, expiry=expiry))


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def fetch_peer_certificate(host: str, timeout: float, port: int = TLS_PORT) -> bytes:
    """Return the DER-encoded leaf certificate presented by host:port.

    Chain and hostname validation are disabled on purpose: expired and
    self-signed certificates are exactly what this service needs to read.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as ssock:
            der = ssock.getpeercert(binary_form=True)
    if not der:
        raise ValueError(f"{host} presented no certificate")
    return der


def _name_attr(name: x509.Name, oid) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    return str(attrs[0].value) if attrs else None


def parse_certificate(der: bytes) -> CertificateInfo:
    """Extract expiry, issuer and wildcard type from a DER certificate."""
    cert = x509.load_der_x509_certificate(der)
    not_after = cert.not_valid_after_utc
    issuer_org = _name_attr(cert.issuer, NameOID.ORGANIZATION_NAME)
    issuer_cn = _name_attr(cert.issuer, NameOID.COMMON_NAME)
    subject_cn = _name_attr(cert.subject, NameOID.COMMON_NAME) or ""
    return CertificateInfo(
        issuer=issuer_org or issuer_cn or "Unknown Issuer",
        expiry=not_after.date(),
        type=CertificateType.WILDCARD if subject_cn.startswith("*") else CertificateType.STANDARD,
        managed_by=issuer_cn or "Direct",
    )


def lookup_certificate(host: str, timeout: float) -> VerificationResult[CertificateInfo]:
    """Handshake with host:443 and read the leaf certificate. No synthetic fallback."""
    try:
        der = fetch_peer_certificate(host, timeout)
    except (OSError, ssl.SSLError) as e:
        kind = _classify_socket_error(e)
        logger.warning("TLS lookup failed for %s (%s): %s", host, kind.value, e)
        return VerificationResult.failure(VerificationError(kind, str(e)))
    except ValueError as e:
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, str(e)))
    try:
        return VerificationResult.success(parse_certificate(der))
    except ValueError as e:
        logger.warning("Could not parse certificate from %s: %s", host, e)
        return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, str(e)))


def resolve_ip(host: str, timeout: float) -> str:
    """Best-effort forward DNS lookup. Returns 'N/A' on any failure or timeout."""
    future = _lookup_pool.submit(socket.gethostbyname, host)
    try:
        return future.result(timeout=timeout)
    except (FutureTimeout, OSError):
        return "N/A"


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class Verifier:
    """Binds the lookups above to configured timeouts.

    The sweep orchestrator and HTTP routes receive one instance; tests swap in
    a stub with the same three methods.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def verify_domain(self, name: str) -> VerificationResult[DomainInfo]:
        name = normalize_host(name)
        result = lookup_whois(name, self.settings.whois_timeout)
        if not result.ok and result.error.kind == VerificationErrorKind.NO_DATA and self.settings.rdap_base_url:
            rdap = lookup_rdap(name, self.settings.rdap_base_url, self.settings.whois_timeout)
            if rdap.ok:
                result = rdap
        if not result.ok and self.settings.domain_fallback:
            logger.warning("Using synthetic expiry for %s (%s)", name, result.error)
            fallback = DomainInfo(
                registrar=UNKNOWN_REGISTRAR,
                expiry=datetime.now(timezone.utc).date() + timedelta(days=365),
            )
            return VerificationResult.success(fallback)
        return result

    def verify_certificate(self, host: str) -> VerificationResult[CertificateInfo]:
        return lookup_certificate(normalize_host(host), self.settings.tls_timeout)

    def resolve_ip(self, host: str) -> str:
        return resolve_ip(normalize_host(host), self.settings.dns_timeout)
