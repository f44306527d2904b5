"""
Pseudonymization & Consent Tests

Tests verify:
1. Hashing is keyed, deterministic and refuses to run without a secret
2. Consent lookups default to not_consented
3. Consent history: first capture kept, withdrawals recorded, references derived
4. Every consent change lands in the audit log
"""
import pytest

from bureau_export.config import Settings
from bureau_export.exceptions import ConfigurationError
from bureau_export.models.db_models import AuditLogDB, ConsentStatus, REPORTING_SCOPE
from bureau_export.services.reporting import ConsentStore, IdentifierHasher


# =============================================================================
# IDENTIFIER HASHER
# =============================================================================

class TestIdentifierHasher:
    """Tests for HMAC pseudonyms."""

    def test_same_input_same_hash(self):
        """Same secret + same id → same hash."""
        hasher = IdentifierHasher("secret-a")
        assert hasher.hash("tenant-001") == hasher.hash("tenant-001")

    def test_hash_is_hex_sha256(self):
        digest = IdentifierHasher("secret-a").hash("tenant-001")
        assert len(digest) == 64
        int(digest, 16)

    def test_different_ids_differ(self):
        hasher = IdentifierHasher("secret-a")
        assert hasher.hash("tenant-001") != hasher.hash("tenant-002")

    def test_different_secrets_differ(self):
        assert IdentifierHasher("secret-a").hash("tenant-001") != IdentifierHasher("secret-b").hash("tenant-001")

    def test_raw_id_not_in_output(self):
        assert "tenant-001" not in IdentifierHasher("secret-a").hash("tenant-001")

    def test_integer_and_string_ids_agree(self):
        hasher = IdentifierHasher("secret-a")
        assert hasher.hash(101) == hasher.hash("101")

    def test_missing_secret_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            IdentifierHasher("")

    def test_settings_without_secret_fail(self):
        with pytest.raises(ConfigurationError):
            IdentifierHasher.from_settings(Settings(hash_secret=""))

    def test_empty_identifier_rejected(self):
        with pytest.raises(ValueError):
            IdentifierHasher("secret-a").hash("")


# =============================================================================
# CONSENT STORE
# =============================================================================

@pytest.fixture
def hasher(settings):
    return IdentifierHasher.from_settings(settings)


@pytest.fixture
def store(db, hasher):
    return ConsentStore(db, hasher)


class TestConsentStore:
    """Tests for consent state and history."""

    def test_unknown_tenant_is_not_consented(self, store):
        consent = store.get("tenant-404")
        assert consent.status == ConsentStatus.NOT_CONSENTED
        assert consent.captured_at is None

    def test_placeholder_is_not_persisted(self, db, store):
        store.get("tenant-404")
        db.commit()
        assert store.snapshot(["tenant-404"]) == {}

    def test_consent_sets_captured_at(self, db, store):
        consent = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED)
        db.commit()

        assert consent.status == ConsentStatus.CONSENTED
        assert consent.captured_at is not None
        assert consent.withdrawn_at is None

    def test_withdrawal_keeps_first_capture(self, db, store):
        first = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED).captured_at
        consent = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.WITHDRAWN)
        db.commit()

        assert consent.status == ConsentStatus.WITHDRAWN
        assert consent.captured_at == first
        assert consent.withdrawn_at is not None

    def test_reconsent_keeps_withdrawal_history(self, db, store):
        store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED)
        withdrawn_at = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.WITHDRAWN).withdrawn_at
        consent = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED)
        db.commit()

        assert consent.status == ConsentStatus.CONSENTED
        assert consent.withdrawn_at == withdrawn_at

    def test_lookup_by_reference(self, db, store):
        store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED, tenant_ref="ref-abc")
        db.commit()

        assert store.get_by_ref("ref-abc").tenant_id == "tenant-001"
        assert store.get_by_ref("ref-missing") is None

    def test_reference_derived_when_not_given(self, db, store, hasher):
        """A consent written by tenant id alone is still reachable by its hashed reference."""
        consent = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED)
        db.commit()

        assert consent.tenant_ref == hasher.hash("tenant-001")
        assert store.get_by_ref(hasher.hash("tenant-001")).tenant_id == "tenant-001"

    def test_existing_reference_kept_on_later_update(self, db, store):
        store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED, tenant_ref="ref-abc")
        consent = store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.WITHDRAWN)
        db.commit()

        assert consent.tenant_ref == "ref-abc"

    def test_snapshot_returns_known_tenants_only(self, store, grant_consent):
        grant_consent("tenant-001")
        grant_consent("tenant-002", ConsentStatus.WITHDRAWN)

        snapshot = store.snapshot(["tenant-001", "tenant-002", "tenant-003"])
        assert set(snapshot) == {"tenant-001", "tenant-002"}
        assert snapshot["tenant-002"].status == ConsentStatus.WITHDRAWN

    def test_every_change_is_audited(self, db, store):
        store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.CONSENTED, actor="admin-1")
        store.update("tenant-001", REPORTING_SCOPE, ConsentStatus.WITHDRAWN, actor="admin-1")
        db.commit()

        entries = db.query(AuditLogDB).filter(AuditLogDB.event_type == "consent_updated").all()
        assert len(entries) == 2
        assert {e.event_metadata["status"] for e in entries} == {"consented", "withdrawn"}
        assert all(e.actor == "admin-1" for e in entries)
