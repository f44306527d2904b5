"""
Reporting API Tests

Tests verify:
1. Admin JWT required on reporting and consent routes
2. Batch create / list / detail / download status codes
3. Preview exposes hashed references and validation messages
4. Consent routes addressed by tenant reference
5. Internal scheduler route guarded by X-Internal-Key
"""
import pytest
from fastapi.testclient import TestClient

from bureau_export.auth import create_access_token
from bureau_export.config import get_settings
from bureau_export.database import get_db
from bureau_export.main import app
from bureau_export.models.db_models import ConsentStatus
from bureau_export.routers.reporting import get_snapshot_source
from bureau_export.services.reporting import IdentifierHasher, StaticSnapshotSource


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def source(row_factory):
    return StaticSnapshotSource([
        row_factory(tenant_id="tenant-001", property_id="101"),
        row_factory(tenant_id="tenant-002", property_id="102",
                    tenancy={"outstanding_balance": "1500.00"}),
        row_factory(tenant_id="tenant-003", property_id="103",
                    profile={"date_of_birth": None}),
    ])


@pytest.fixture
def client(session_factory, settings, source):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_snapshot_source] = lambda: source
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(settings):
    return {"Authorization": f"Bearer {create_access_token('admin-1', settings)}"}


@pytest.fixture
def hasher(settings):
    return IdentifierHasher(settings.hash_secret)


@pytest.fixture
def consented(grant_consent, hasher):
    for tenant_id in ("tenant-001", "tenant-002", "tenant-003"):
        grant_consent(tenant_id, tenant_ref=hasher.hash(tenant_id))


def create(client, headers, **body):
    payload = {"month": "2023-11"}
    payload.update(body)
    return client.post("/reporting/batches", json=payload, headers=headers)


# =============================================================================
# AUTH
# =============================================================================

class TestAuth:

    def test_missing_token(self, client):
        response = client.get("/reporting/batches")
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.get("/reporting/batches", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_non_admin_forbidden(self, client, settings):
        token = create_access_token("user-1", settings, role="user")
        response = client.get("/reporting/batches", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# =============================================================================
# BATCHES
# =============================================================================

class TestBatchEndpoints:

    def test_create_ready_batch(self, client, admin_headers, consented):
        response = create(client, admin_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "ready"
        assert body["month"] == "2023-11"
        assert body["record_count"] == 2
        assert body["total_balance_pence"] == 150000
        assert len(body["checksum_sha256"]) == 64
        assert body["created_by"] == "admin-1"

    def test_invalid_month_is_400(self, client, admin_headers):
        response = create(client, admin_headers, month="2023-13")
        assert response.status_code == 400

    def test_invalid_format_is_422(self, client, admin_headers):
        response = create(client, admin_headers, format="xml")
        assert response.status_code == 422

    def test_duplicate_month_is_409(self, client, admin_headers, consented):
        assert create(client, admin_headers).status_code == 201
        assert create(client, admin_headers).status_code == 409

    def test_list_and_detail(self, client, admin_headers, consented):
        batch_id = create(client, admin_headers).json()["id"]
        create(client, admin_headers, month="2023-12")

        listing = client.get("/reporting/batches", headers=admin_headers)
        assert listing.status_code == 200
        assert {b["month"] for b in listing.json()["items"]} == {"2023-11", "2023-12"}

        detail = client.get(f"/reporting/batches/{batch_id}", headers=admin_headers)
        assert detail.status_code == 200
        assert detail.json()["id"] == batch_id

    def test_unknown_batch_is_404(self, client, admin_headers):
        response = client.get("/reporting/batches/does-not-exist", headers=admin_headers)
        assert response.status_code == 404

    def test_download(self, client, admin_headers, consented):
        body = create(client, admin_headers).json()
        response = client.get(f"/reporting/batches/{body['id']}/download", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["x-checksum-sha256"] == body["checksum_sha256"]
        assert f"rent-ledger-export-2023-11-{body['id'][:8]}.txt" in response.headers["content-disposition"]
        lines = response.content.split(b"\r\n")
        assert [len(l) for l in lines] == [80, 300, 300, 80]

    def test_download_is_repeatable(self, client, admin_headers, consented):
        batch_id = create(client, admin_headers).json()["id"]
        url = f"/reporting/batches/{batch_id}/download"
        assert client.get(url, headers=admin_headers).content == client.get(url, headers=admin_headers).content

    def test_download_unknown_is_404(self, client, admin_headers):
        response = client.get("/reporting/batches/does-not-exist/download", headers=admin_headers)
        assert response.status_code == 404

    def test_failed_batch_returned_and_not_downloadable(self, client, admin_headers, consented, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("render failed")

        monkeypatch.setattr("bureau_export.services.reporting.orchestrator.render_batch", explode)
        response = create(client, admin_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "failed"
        assert "render failed" in body["failed_reason"]

        download = client.get(f"/reporting/batches/{body['id']}/download", headers=admin_headers)
        assert download.status_code == 400
        assert download.json()["detail"] == "Batch is not ready"


# =============================================================================
# PREVIEW & RECORDS
# =============================================================================

class TestPreviewAndRecords:

    def test_preview(self, client, admin_headers, hasher, consented):
        response = client.get("/reporting/preview", params={"month": "2023-11"}, headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["included"] == 2

        rejected = [i for i in body["items"] if not i["included"]][0]
        assert rejected["tenant_ref"] == hasher.hash("tenant-003")
        assert rejected["excluded_reason"] == "validation_failed"
        assert rejected["validation"][0]["message"] == "Missing DOB"

    def test_preview_bad_month(self, client, admin_headers):
        response = client.get("/reporting/preview", params={"month": "11-2023"}, headers=admin_headers)
        assert response.status_code == 400

    def test_records_paging(self, client, admin_headers, consented):
        create(client, admin_headers)

        first = client.get("/reporting/records", params={"month": "2023-11", "limit": 1}, headers=admin_headers)
        assert first.status_code == 200
        assert len(first.json()["items"]) == 1
        assert first.json()["next_cursor"] == "1"

        second = client.get(
            "/reporting/records",
            params={"month": "2023-11", "limit": 1, "cursor": first.json()["next_cursor"]},
            headers=admin_headers,
        )
        assert second.json()["items"][0]["line_no"] == 2

    def test_records_require_month(self, client, admin_headers):
        assert client.get("/reporting/records", headers=admin_headers).status_code == 400

    def test_records_bad_cursor(self, client, admin_headers):
        response = client.get(
            "/reporting/records", params={"month": "2023-11", "cursor": "abc"}, headers=admin_headers,
        )
        assert response.status_code == 400


# =============================================================================
# CONSENTS
# =============================================================================

class TestConsentEndpoints:

    def test_unknown_reference_is_not_consented(self, client, admin_headers):
        response = client.get("/consents/unknown-ref", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["consent_status"] == "not_consented"

    def test_withdraw_consent(self, client, admin_headers, hasher, grant_consent):
        ref = hasher.hash("tenant-001")
        grant_consent("tenant-001", ConsentStatus.CONSENTED, tenant_ref=ref)

        response = client.put(f"/consents/{ref}", json={"consent_status": "withdrawn"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["consent_status"] == "withdrawn"
        assert response.json()["withdrawn_at"] is not None

        fetched = client.get(f"/consents/{ref}", headers=admin_headers).json()
        assert fetched["consent_status"] == "withdrawn"

    def test_invalid_status_is_400(self, client, admin_headers, hasher, grant_consent):
        ref = hasher.hash("tenant-001")
        grant_consent("tenant-001", tenant_ref=ref)
        response = client.put(f"/consents/{ref}", json={"consent_status": "maybe"}, headers=admin_headers)
        assert response.status_code == 400

    def test_unknown_reference_update_is_404(self, client, admin_headers):
        response = client.put("/consents/unknown-ref", json={"consent_status": "consented"}, headers=admin_headers)
        assert response.status_code == 404

    def test_withdrawal_excludes_from_next_batch(self, client, admin_headers, hasher, consented):
        client.put(f"/consents/{hasher.hash('tenant-002')}", json={"consent_status": "withdrawn"},
                   headers=admin_headers)
        body = create(client, admin_headers).json()
        assert body["record_count"] == 1


# =============================================================================
# SCHEDULER
# =============================================================================

class TestScheduler:

    def test_missing_key_rejected(self, client):
        response = client.post("/internal/reporting/monthly-export", params={"month": "2023-11"})
        assert response.status_code == 422

    def test_wrong_key_rejected(self, client):
        response = client.post(
            "/internal/reporting/monthly-export",
            params={"month": "2023-11"},
            headers={"X-Internal-Key": "wrong"},
        )
        assert response.status_code == 403

    def test_monthly_export(self, client, consented):
        response = client.post(
            "/internal/reporting/monthly-export",
            params={"month": "2023-11"},
            headers={"X-Internal-Key": "test-internal-key"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["created_by"] == "SYSTEM_CRON"
        assert body["only_consented"] is True
        assert body["include_unverified"] is False
        assert body["format"] == "fixed"

    def test_monthly_export_conflict(self, client, consented):
        headers = {"X-Internal-Key": "test-internal-key"}
        url = "/internal/reporting/monthly-export"
        assert client.post(url, params={"month": "2023-11"}, headers=headers).status_code == 200
        assert client.post(url, params={"month": "2023-11"}, headers=headers).status_code == 409
