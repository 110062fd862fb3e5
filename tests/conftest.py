"""
tests/conftest.py -- Shared test fixtures for ExpiryWatch.

This module provides:
  - StubVerifier / StubMailer: in-process stand-ins for WHOIS, TLS and SMTP
  - FrozenClock: injectable clock for the AuditService
  - make_stores(): isolated shared-memory SQLite stores
  - stores: function-scoped (TrackerStore, UserStore) pair
  - api_client: TestClient with a patched lifespan wiring the stubs into app.state

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore
from core.config import Settings
from core.errors import VerificationError, VerificationErrorKind
from core.models import CertificateInfo, CertificateType, DomainInfo, MailResult, VerificationResult
from core.sweep import AuditService
from tracker.store import TrackerStore

# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------


class StubVerifier:
    """Answers lookups from dicts. Unknown names fail with the given kind.

    raise_for holds names whose lookup raises, to simulate an unexpected
    error inside the verifier.
    """

    def __init__(self) -> None:
        self.domains: dict[str, DomainInfo] = {}
        self.certificates: dict[str, CertificateInfo] = {}
        self.ips: dict[str, str] = {}
        self.failures: dict[str, VerificationErrorKind] = {}
        self.raise_for: set[str] = set()
        self.calls: list[str] = []

    def set_domain(self, name: str, expiry: date, registrar: str = "Example Registrar") -> None:
        self.domains[name] = DomainInfo(registrar=registrar, expiry=expiry)
        self.failures.pop(name, None)

    def set_certificate(
        self,
        host: str,
        expiry: date,
        issuer: str = "Example CA",
        cert_type: CertificateType = CertificateType.STANDARD,
    ) -> None:
        self.certificates[host] = CertificateInfo(issuer=issuer, expiry=expiry, type=cert_type, managed_by="Example CA R3")
        self.failures.pop(host, None)

    def fail(self, name: str, kind: VerificationErrorKind = VerificationErrorKind.TIMEOUT) -> None:
        self.failures[name] = kind

    def _lookup(self, table: dict, name: str) -> VerificationResult:
        self.calls.append(name)
        if name in self.raise_for:
            raise RuntimeError(f"lookup exploded for {name}")
        if name in self.failures:
            return VerificationResult.failure(VerificationError(self.failures[name], "stubbed failure"))
        if name not in table:
            return VerificationResult.failure(VerificationError(VerificationErrorKind.NO_DATA, "unknown"))
        return VerificationResult.success(table[name])

    def verify_domain(self, name: str) -> VerificationResult[DomainInfo]:
        return self._lookup(self.domains, name)

    def verify_certificate(self, host: str) -> VerificationResult[CertificateInfo]:
        return self._lookup(self.certificates, host)

    def resolve_ip(self, host: str) -> str:
        return self.ips.get(host, "N/A")


@dataclass
class SentMail:
    to_address: str
    subject: str
    body: str


class StubMailer:
    def __init__(self) -> None:
        self.sent: list[SentMail] = []
        self.fail_with: str | None = None

    def send(self, profile, subject: str, body: str) -> MailResult:
        if self.fail_with is not None:
            return MailResult(success=False, message=self.fail_with)
        self.sent.append(SentMail(profile.to_address, subject, body))
        preview = "https://ethereal.email/messages" if profile.host.endswith("ethereal.email") else None
        return MailResult(success=True, message="Message sent.", preview_url=preview)


class FrozenClock:
    """Callable clock; advance() moves it forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now = self.now + timedelta(days=days, hours=hours)


# Midday UTC keeps day counts away from the midnight boundary.
NOON = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(suffix: str | None = None) -> tuple[TrackerStore, UserStore]:
    suffix = suffix or uuid.uuid4().hex
    url = f"sqlite:///file:expirywatch_{suffix}?mode=memory&cache=shared&uri=true"
    return TrackerStore(url), UserStore(url)


def create_owner(user_store: UserStore, username: str = "owner", password: str = "secret-pass") -> int:
    return user_store.create_user(User(username=username, hashed_password=hash_password(password)))


@dataclass
class SweepHarness:
    store: TrackerStore
    user_store: UserStore
    verifier: StubVerifier
    mailer: StubMailer
    clock: FrozenClock
    owner_id: int
    settings: Settings = field(default_factory=Settings)

    def service(self, **overrides) -> AuditService:
        settings = self.settings.model_copy(update=overrides) if overrides else self.settings
        return AuditService(self.store, self.user_store, self.verifier, self.mailer, settings, clock=self.clock)


@pytest.fixture
def stores() -> Generator[tuple[TrackerStore, UserStore], None, None]:
    store, user_store = make_stores()
    yield store, user_store
    store.close()
    user_store.close()


@pytest.fixture
def harness(stores) -> SweepHarness:
    store, user_store = stores
    return SweepHarness(
        store=store,
        user_store=user_store,
        verifier=StubVerifier(),
        mailer=StubMailer(),
        clock=FrozenClock(NOON),
        owner_id=create_owner(user_store),
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    owner_id: int
    store: TrackerStore
    user_store: UserStore
    verifier: StubVerifier
    mailer: StubMailer
    audit: AuditService


def _patch_lifespan(store: TrackerStore, user_store: UserStore, verifier: StubVerifier, mailer: StubMailer):
    """Return an async context manager that replaces the real lifespan.

    No scheduler task is started; tests trigger sweeps explicitly.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.user_store = user_store
        app.state.verifier = verifier
        app.state.mailer = mailer
        app.state.audit = AuditService(store, user_store, verifier, mailer, Settings())
        app.state.sweep_task = None
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    One TestClient per test module for speed. Rate limiting is switched off
    so modules can call the same route many times.
    """
    store, user_store = make_stores()
    verifier = StubVerifier()
    mailer = StubMailer()
    owner_id = create_owner(user_store, username="testowner", password="testpass123")

    app.router.lifespan_context = _patch_lifespan(store, user_store, verifier, mailer)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=False) as client:
        yield ApiHarness(client, owner_id, store, user_store, verifier, mailer, app.state.audit)

    limiter.enabled = True
    store.close()
    user_store.close()
