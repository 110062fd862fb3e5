"""
tests/test_api_routes.py -- Integration tests for the v1 HTTP routes.

These tests exercise the full stack: FastAPI routing -> request model
validation -> TrackerStore/UserStore operations -> response model
serialization. The verifier and mailer are stubs wired in through the patched
lifespan, so no network traffic happens.

Coverage:
  - Owners: register 201 / duplicate 400, login 200 / 401
  - Verification: domain and certificate lookups, 404 and 504 mapping
  - Domains and certificates: create, edit, delete, bulk delete
  - Bulk import and the owner data payload (live status recomputation)
  - Settings: save 200, misconfiguration 422, legacy keys, test email 200/502
  - Sync: 200 with counts, unknown owner 404, busy owner 409

Fixtures used (from conftest.py):
  - api_client: ApiHarness with a registered owner "testowner"/"testpass123".
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest

import api.routes.v1.settings as settings_routes
from core.errors import VerificationErrorKind
from core.notifications import SMTPCredentials, SMTPProfile
from tracker.models import TrackedDomain

if TYPE_CHECKING:
    from conftest import ApiHarness


def _today():
    return datetime.now(timezone.utc).date()


def _smtp(**overrides) -> dict:
    smtp = {"host": "smtp.example.com", "port": 587, "fromAddress": "alerts@example.com", "toAddress": "ops@example.com"}
    smtp.update(overrides)
    return smtp


@pytest.fixture(autouse=True)
def _reset_stubs(api_client: ApiHarness):
    api_client.mailer.fail_with = None
    api_client.mailer.sent.clear()
    yield


class TestOwners:
    def test_register_creates_owner(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/auth/register", json={"username": "newowner", "password": "pw-123456"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["username"] == "newowner"
        assert api_client.user_store.get_by_id(body["id"]) is not None

    def test_register_duplicate_is_400(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/auth/register", json={"username": "testowner", "password": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "username_taken"

    def test_login_valid(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/auth/login", json={"username": "testowner", "password": "testpass123"})
        assert resp.status_code == 200
        assert resp.json()["id"] == api_client.owner_id
        assert resp.headers["cache-control"] == "no-store"

    def test_login_wrong_password(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/auth/login", json={"username": "testowner", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_login_unknown_user_same_error(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/auth/login", json={"username": "ghost", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"


class TestVerification:
    def test_verify_domain(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_domain("lookup.example", _today() + timedelta(days=90), registrar="Registrar Inc.")
        resp = api_client.client.post("/api/v1/verify/domain", json={"domain": "lookup.example"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["registrar"] == "Registrar Inc."
        assert body["domainExpiry"] == (_today() + timedelta(days=90)).isoformat()
        assert body["lastChecked"]

    def test_verify_domain_no_data_is_404(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/verify/domain", json={"domain": "unknown.example"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "verification_no_data"

    def test_verify_domain_timeout_is_504(self, api_client: ApiHarness) -> None:
        api_client.verifier.fail("slow.example", VerificationErrorKind.TIMEOUT)
        resp = api_client.client.post("/api/v1/verify/domain", json={"domain": "slow.example"})
        assert resp.status_code == 504

    def test_verify_ssl(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("secure.example", _today() + timedelta(days=60), issuer="Example CA")
        api_client.verifier.ips["secure.example"] = "10.0.0.1"
        resp = api_client.client.post("/api/v1/verify/ssl", json={"domain": "secure.example"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["sslIssuer"] == "Example CA"
        assert body["sslType"] == "Standard"
        assert body["ipAddress"] == "10.0.0.1"
        assert body["host"] == "secure.example"

    def test_verify_ssl_unreachable_is_404(self, api_client: ApiHarness) -> None:
        api_client.verifier.fail("closed.example", VerificationErrorKind.UNREACHABLE)
        resp = api_client.client.post("/api/v1/verify/ssl", json={"domain": "closed.example"})
        assert resp.status_code == 404

    def test_verify_empty_domain_is_422(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/verify/domain", json={"domain": ""})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestDomains:
    def test_create_domain(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_domain("tracked.example", _today() + timedelta(days=20))
        resp = api_client.client.post(
            "/api/v1/domains",
            json={"ownerId": api_client.owner_id, "name": "HTTPS://Tracked.example/", "managedBy": "IT"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["name"] == "tracked.example"
        assert body["status"] == "Warning"
        assert body["daysRemaining"] == 20
        assert body["managedBy"] == "IT"

    def test_create_domain_unverifiable_is_not_stored(self, api_client: ApiHarness) -> None:
        before = len(api_client.store.list_domains(api_client.owner_id))
        resp = api_client.client.post("/api/v1/domains", json={"ownerId": api_client.owner_id, "name": "nope.example"})
        assert resp.status_code == 404
        assert len(api_client.store.list_domains(api_client.owner_id)) == before

    def test_create_domain_unknown_owner(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/domains", json={"ownerId": 9999, "name": "tracked.example"})
        assert resp.status_code == 404

    def test_update_domain_reverifies(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_domain("before.example", _today() + timedelta(days=100))
        api_client.verifier.set_domain("after.example", _today() + timedelta(days=5), registrar="New Registrar")
        domain_id = api_client.client.post(
            "/api/v1/domains", json={"ownerId": api_client.owner_id, "name": "before.example"}
        ).json()["id"]

        resp = api_client.client.put(f"/api/v1/domains/{domain_id}", json={"name": "after.example"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "after.example"
        assert body["registrar"] == "New Registrar"
        assert body["status"] == "Critical"

    def test_update_domain_failed_verification_is_400(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_domain("keep.example", _today() + timedelta(days=100))
        domain_id = api_client.client.post(
            "/api/v1/domains", json={"ownerId": api_client.owner_id, "name": "keep.example"}
        ).json()["id"]

        resp = api_client.client.put(f"/api/v1/domains/{domain_id}", json={"name": "missing.example"})

        assert resp.status_code == 400
        assert api_client.store.get_domain(domain_id).name == "keep.example"

    def test_update_missing_domain_is_404(self, api_client: ApiHarness) -> None:
        resp = api_client.client.put("/api/v1/domains/99999", json={"name": "x.example"})
        assert resp.status_code == 404

    def test_delete_and_bulk_delete(self, api_client: ApiHarness) -> None:
        ids = [
            api_client.store.create_domain(TrackedDomain(owner_id=api_client.owner_id, name=f"gone{i}.example"))
            for i in range(3)
        ]
        assert api_client.client.delete(f"/api/v1/domains/{ids[0]}").status_code == 200
        assert api_client.client.delete(f"/api/v1/domains/{ids[0]}").status_code == 404

        resp = api_client.client.request("DELETE", "/api/v1/domains/bulk", json={"ids": ids[1:]})
        assert resp.status_code == 200
        assert resp.json()["deleted"] == 2


class TestCertificates:
    def test_create_certificate_with_separate_host(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("edge.cdn.example", _today() + timedelta(days=3))
        resp = api_client.client.post(
            "/api/v1/ssl",
            json={"ownerId": api_client.owner_id, "domain": "shop.example", "host": "edge.cdn.example"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["domain"] == "shop.example"
        assert body["host"] == "edge.cdn.example"
        assert body["status"] == "Critical"
        assert body["managedBy"] == "Example CA R3"

    def test_create_certificate_timeout_is_504(self, api_client: ApiHarness) -> None:
        api_client.verifier.fail("slowtls.example", VerificationErrorKind.TIMEOUT)
        resp = api_client.client.post("/api/v1/ssl", json={"ownerId": api_client.owner_id, "domain": "slowtls.example"})
        assert resp.status_code == 504

    def test_update_certificate_does_not_reverify(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("label.example", _today() + timedelta(days=200))
        cert_id = api_client.client.post(
            "/api/v1/ssl", json={"ownerId": api_client.owner_id, "domain": "label.example"}
        ).json()["id"]
        calls = len(api_client.verifier.calls)

        resp = api_client.client.put(
            f"/api/v1/ssl/{cert_id}", json={"domain": "label.example", "host": "lb.example", "managedBy": "Ops"}
        )

        assert resp.status_code == 200
        assert resp.json()["host"] == "lb.example"
        assert resp.json()["managedBy"] == "Ops"
        assert len(api_client.verifier.calls) == calls

    def test_update_without_host_connects_to_normalized_label(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("relabel.example", _today() + timedelta(days=200))
        cert_id = api_client.client.post(
            "/api/v1/ssl", json={"ownerId": api_client.owner_id, "domain": "relabel.example"}
        ).json()["id"]

        resp = api_client.client.put(f"/api/v1/ssl/{cert_id}", json={"domain": "https://Shop.Example.com/"})

        assert resp.status_code == 200
        assert resp.json()["domain"] == "https://Shop.Example.com/"
        assert resp.json()["host"] == "shop.example.com"

    def test_label_with_line_break_is_rejected(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(
            "/api/v1/ssl", json={"ownerId": api_client.owner_id, "domain": "Shop\nFront", "host": "shop.example"}
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_delete_certificates(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("del.example", _today() + timedelta(days=200))
        cert_id = api_client.client.post(
            "/api/v1/ssl", json={"ownerId": api_client.owner_id, "domain": "del.example"}
        ).json()["id"]
        resp = api_client.client.request("DELETE", "/api/v1/ssl/bulk", json={"ids": [cert_id]})
        assert resp.json()["deleted"] == 1
        assert api_client.client.delete(f"/api/v1/ssl/{cert_id}").status_code == 404


class TestOwnerData:
    def test_bulk_import_counts_rows(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_domain("imp1.example", _today() + timedelta(days=50))
        api_client.verifier.set_domain("imp2.example", _today() + timedelta(days=50))
        resp = api_client.client.post(
            "/api/v1/bulk-import",
            json={
                "ownerId": api_client.owner_id,
                "type": "domains",
                "data": [{"domain": "imp1.example"}, {"domain": "imp2.example"}, {"domain": "bad.example"}, {"domain": ""}],
            },
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": 2, "failed": 2}

    def test_bulk_import_certificates(self, api_client: ApiHarness) -> None:
        api_client.verifier.set_certificate("impssl.example", _today() + timedelta(days=50))
        resp = api_client.client.post(
            "/api/v1/bulk-import",
            json={"ownerId": api_client.owner_id, "type": "ssl", "data": [{"domain": "impssl.example", "ipAddress": "10.1.1.1"}]},
        )
        assert resp.json() == {"success": 1, "failed": 0}
        certs = [c for c in api_client.store.list_certificates(api_client.owner_id) if c.domain == "impssl.example"]
        assert certs[0].ip_address == "10.1.1.1"

    def test_bulk_import_rejects_unknown_type(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(
            "/api/v1/bulk-import", json={"ownerId": api_client.owner_id, "type": "servers", "data": []}
        )
        assert resp.status_code == 422

    def test_data_recomputes_stale_status(self, api_client: ApiHarness) -> None:
        api_client.store.create_domain(
            TrackedDomain(
                owner_id=api_client.owner_id,
                name="stale.example",
                expiry_date=(_today() - timedelta(days=1)).isoformat(),
                status="Healthy",
            )
        )
        resp = api_client.client.get(f"/api/v1/data/{api_client.owner_id}")
        assert resp.status_code == 200
        body = resp.json()
        stale = next(d for d in body["domains"] if d["name"] == "stale.example")
        assert stale["status"] == "Expired"
        assert stale["daysRemaining"] == -1
        assert set(body) == {"domains", "sslCerts", "settings", "logs"}

    def test_data_unknown_owner_is_404(self, api_client: ApiHarness) -> None:
        assert api_client.client.get("/api/v1/data/9999").status_code == 404


class TestSettings:
    def test_save_settings(self, api_client: ApiHarness) -> None:
        resp = api_client.client.put(
            "/api/v1/settings",
            json={
                "ownerId": api_client.owner_id,
                "smtp": _smtp(),
                "notifications": {"enabled": True, "intervals": {"expired": True, "day7": True, "day15": True, "day30": False}},
            },
        )
        assert resp.status_code == 200
        saved = api_client.store.get_owner_settings(api_client.owner_id)
        assert saved.notifications.intervals.day15 is True
        data = api_client.client.get(f"/api/v1/data/{api_client.owner_id}").json()
        assert data["settings"]["smtp"]["toAddress"] == "ops@example.com"

    def test_enabled_without_recipient_is_422(self, api_client: ApiHarness) -> None:
        resp = api_client.client.put(
            "/api/v1/settings",
            json={"ownerId": api_client.owner_id, "smtp": _smtp(toAddress=""), "notifications": {"enabled": True}},
        )
        assert resp.status_code == 422

    def test_auth_without_credentials_is_422(self, api_client: ApiHarness) -> None:
        resp = api_client.client.put(
            "/api/v1/settings", json={"ownerId": api_client.owner_id, "smtp": _smtp(authRequired=True)}
        )
        assert resp.status_code == 422

    def test_unknown_key_is_422(self, api_client: ApiHarness) -> None:
        resp = api_client.client.put(
            "/api/v1/settings", json={"ownerId": api_client.owner_id, "smtp": _smtp(), "theme": "dark"}
        )
        assert resp.status_code == 422

    def test_legacy_keys_are_upgraded(self, api_client: ApiHarness) -> None:
        legacy_smtp = {
            "host": "smtp.legacy.example",
            "port": 465,
            "user": "mailer",
            "pass": "secret",
            "secure": True,
            "useAuth": True,
            "fromEmail": "from@legacy.example",
            "toEmail": "to@legacy.example",
        }
        resp = api_client.client.put(
            "/api/v1/settings",
            json={"ownerId": api_client.owner_id, "smtp": legacy_smtp, "notifications": {"enabled": True}},
        )
        assert resp.status_code == 200
        saved = api_client.store.get_owner_settings(api_client.owner_id)
        assert saved.smtp.use_tls is True
        assert saved.smtp.credentials.username == "mailer"
        assert saved.smtp.to_address == "to@legacy.example"

    def test_test_email_success(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post("/api/v1/settings/test-email", json={"smtp": _smtp(host="smtp.ethereal.email")})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["previewUrl"] == "https://ethereal.email/messages"
        assert api_client.mailer.sent[-1].subject == "ExpiryWatch Test Email"

    def test_test_email_failure_is_502(self, api_client: ApiHarness) -> None:
        api_client.mailer.fail_with = "authentication rejected (535)"
        resp = api_client.client.post("/api/v1/settings/test-email", json={"smtp": _smtp()})
        assert resp.status_code == 502
        body = resp.json()
        assert body["success"] is False
        assert "535" in body["message"]

    def test_test_email_multi_line_recipient_is_422(self, api_client: ApiHarness) -> None:
        smtp = _smtp(toAddress="ops@example.com\nBcc: x@evil.example")
        resp = api_client.client.post("/api/v1/settings/test-email", json={"smtp": smtp})
        assert resp.status_code == 422
        assert api_client.mailer.sent == []

    def test_generate_test_credentials(self, api_client: ApiHarness, monkeypatch) -> None:
        profile = SMTPProfile(
            host="smtp.ethereal.email",
            port=587,
            auth_required=True,
            credentials=SMTPCredentials(username="u@ethereal.email", password="pw"),
        )
        monkeypatch.setattr(settings_routes, "create_test_account", lambda url, timeout: profile)
        resp = api_client.client.post("/api/v1/settings/generate-test-credentials")
        assert resp.status_code == 200
        body = resp.json()
        assert body["host"] == "smtp.ethereal.email"
        assert body["authRequired"] is True
        assert body["credentials"]["username"] == "u@ethereal.email"

    def test_generate_test_credentials_upstream_down(self, api_client: ApiHarness, monkeypatch) -> None:
        monkeypatch.setattr(settings_routes, "create_test_account", lambda url, timeout: None)
        resp = api_client.client.post("/api/v1/settings/generate-test-credentials")
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "upstream_unavailable"


class TestSync:
    def test_sync_reports_counts(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(f"/api/v1/sync/{api_client.owner_id}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["timestamp"]
        assert body["checked"] == body["updated"] + body["skipped"] + body["failed"]

    def test_sync_unknown_owner_is_404(self, api_client: ApiHarness) -> None:
        assert api_client.client.post("/api/v1/sync/9999").status_code == 404

    def test_sync_busy_owner_is_409(self, api_client: ApiHarness) -> None:
        lock = api_client.audit._lock_for(api_client.owner_id)
        lock.acquire()
        try:
            resp = api_client.client.post(f"/api/v1/sync/{api_client.owner_id}")
        finally:
            lock.release()
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "sweep_in_progress"
