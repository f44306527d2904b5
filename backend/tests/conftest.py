"""
Shared fixtures for the bureau export test suite.

- In-memory SQLite (StaticPool) so every session sees the same database
- Settings with a test hashing secret
- make_row(): a complete, valid SourceRow with per-section overrides
"""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bureau_export.config import Settings
from bureau_export.database import Base
from bureau_export.models import db_models  # noqa: F401  (registers tables)
from bureau_export.models.db_models import ConsentDB, ConsentStatus, REPORTING_SCOPE
from bureau_export.models.source import (
    PaymentSnapshot, ProfileSnapshot, SourceRow, TenancySnapshot, UserSnapshot,
)

TEST_HASH_SECRET = "test-reporting-hash-secret"


def make_row(
    tenant_id: str = "tenant-001",
    property_id: str = "101",
    user: dict = None,
    tenancy: dict = None,
    profile: dict = None,
    payment: dict = None,
    with_profile: bool = True,
) -> SourceRow:
    """Build a valid source row; each dict overrides fields of one section."""
    user_data = {"surname": "Doe", "forename": "John"}
    user_data.update(user or {})

    tenancy_data = {
        "tenancy_id": f"tenancy-{tenant_id}",
        "tenancy_ref": "REF123",
        "start_date": date(2023, 1, 1),
        "monthly_rent": "500.00",
        "outstanding_balance": "0.00",
        "rent_frequency": "monthly",
    }
    tenancy_data.update(tenancy or {})

    profile_data = {
        "date_of_birth": date(1990, 1, 1),
        "address_line1": "123 Test St",
        "address_line2": "Testville",
        "postcode": "TE1 1ST",
    }
    profile_data.update(profile or {})

    payment_data = {
        "due_date": date(2023, 11, 1),
        "paid_date": date(2023, 11, 1),
        "status": "paid",
        "verification_status": "verified",
        "verification_method": "open_banking",
    }
    payment_data.update(payment or {})

    return SourceRow(
        tenant_id=tenant_id,
        property_id=property_id,
        landlord_id="landlord-001",
        user=UserSnapshot(**user_data),
        tenancy=TenancySnapshot(**tenancy_data),
        profile=ProfileSnapshot(**profile_data) if with_profile else None,
        payment=PaymentSnapshot(**payment_data),
    )


@pytest.fixture
def row_factory():
    """The make_row builder."""
    return make_row


@pytest.fixture
def settings():
    """Settings with every secret populated."""
    return Settings(
        database_url="sqlite://",
        hash_secret=TEST_HASH_SECRET,
        org_id="RENTLEDGER",
        org_name="RentLedger Ltd",
        file_prefix="rent-ledger-export",
        file_sequence=1,
        jwt_secret_key="test-jwt-secret",
        internal_api_key="test-internal-key",
    )


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def grant_consent(db):
    """Persist a consent row directly (bypasses the audit log)."""
    def _grant(tenant_id: str, status: ConsentStatus = ConsentStatus.CONSENTED, tenant_ref: str = None):
        consent = ConsentDB(
            tenant_id=tenant_id,
            scope=REPORTING_SCOPE,
            status=status,
            tenant_ref=tenant_ref,
        )
        db.add(consent)
        db.commit()
        return consent
    return _grant
