"""
Bureau Export Engine - SQLAlchemy ORM Models

Two groups of tables:
- Reporting tables owned by the export engine (batches, records, consents, audit log)
- Read-only source tables owned by the tenancy platform (users, profiles, tenancies, payments)
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, JSON, ForeignKey, Boolean,
    Numeric, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class BatchStatus(str, Enum):
    """Lifecycle of a reporting batch. READY and FAILED are terminal."""
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class ExportFormat(str, Enum):
    """Content formats a batch can be rendered in."""
    FIXED = "fixed"
    CSV = "csv"
    JSON = "json"


class ConsentStatus(str, Enum):
    CONSENTED = "consented"
    WITHDRAWN = "withdrawn"
    NOT_CONSENTED = "not_consented"


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    LATE = "late"
    MISSED = "missed"
    UNKNOWN = "unknown"


REPORTING_SCOPE = "reporting_to_partners"


# =============================================================================
# REPORTING TABLES
# =============================================================================

class ReportingBatchDB(Base):
    """
    One export run for a calendar month.

    active_month mirrors month while the batch is generating or ready and is
    cleared when it fails. The unique constraint on it stops two live batches
    for the same month while still allowing a retry after a failure.
    """
    __tablename__ = "reporting_batches"

    id = Column(String(36), primary_key=True)  # UUID
    month = Column(String(7), nullable=False, index=True)  # YYYY-MM
    active_month = Column(String(7), unique=True, nullable=True)
    format = Column(SQLEnum(ExportFormat), nullable=False, default=ExportFormat.FIXED)

    # Header identity captured at creation so later config changes never alter old files
    org_id = Column(String(10), nullable=False)
    org_name = Column(String(30), nullable=False)
    file_sequence = Column(Integer, nullable=False, default=1)

    include_unverified = Column(Boolean, nullable=False, default=False)
    only_consented = Column(Boolean, nullable=False, default=True)

    status = Column(SQLEnum(BatchStatus), nullable=False, default=BatchStatus.GENERATING)
    record_count = Column(Integer, nullable=False, default=0)
    total_balance_pence = Column(Integer, nullable=False, default=0)
    checksum_sha256 = Column(String(64), nullable=True)
    failed_reason = Column(Text, nullable=True)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    records = relationship(
        "ReportingRecordDB",
        back_populates="batch",
        order_by="ReportingRecordDB.line_no",
    )


class ReportingRecordDB(Base):
    """One exported tenancy/payment line. Immutable once written."""
    __tablename__ = "reporting_records"
    __table_args__ = (
        UniqueConstraint("batch_id", "line_no", name="uq_reporting_records_batch_line"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(String(36), ForeignKey("reporting_batches.id"), nullable=False, index=True)
    line_no = Column(Integer, nullable=False)

    # Pseudonymized references (HMAC-SHA256 hex)
    tenant_ref = Column(String(64), nullable=False, index=True)
    property_ref = Column(String(64), nullable=False)
    landlord_ref = Column(String(64), nullable=True)
    postcode_outward = Column(String(4), nullable=True)

    rent_amount_pence = Column(Integer, nullable=False)
    rent_frequency = Column(String(20), nullable=False, default="monthly")
    outstanding_balance_pence = Column(Integer, nullable=False, default=0)

    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    paid_date = Column(Date, nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNKNOWN.value)

    verification_status = Column(String(20), nullable=False)
    verification_method = Column(String(50), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    consent_status = Column(String(20), nullable=False)
    consent_timestamp = Column(DateTime, nullable=True)

    audit_ref = Column(String(36), nullable=False, unique=True)

    # Detail-record field values captured at generation time
    bureau_fields = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    batch = relationship("ReportingBatchDB", back_populates="records")


class ConsentDB(Base):
    """Per-tenant, per-scope data sharing consent."""
    __tablename__ = "consents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "scope", name="uq_consents_tenant_scope"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    scope = Column(String(50), nullable=False, default=REPORTING_SCOPE)
    status = Column(SQLEnum(ConsentStatus), nullable=False, default=ConsentStatus.NOT_CONSENTED)
    tenant_ref = Column(String(64), nullable=True, index=True)

    captured_at = Column(DateTime, nullable=True)
    withdrawn_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuditLogDB(Base):
    """
    Append-only record of consent changes and batch actions.
    Rows are never updated or deleted.
    """
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True)  # UUID
    event_type = Column(String(50), nullable=False, index=True)  # batch_created, consent_updated, ...
    actor = Column(String(64), nullable=True)
    subject_type = Column(String(30), nullable=False)  # batch | consent
    subject_id = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=False)
    # Renamed from 'metadata' which is reserved in SQLAlchemy
    event_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# SOURCE TABLES (read-only to the export engine)
# =============================================================================

class UserDB(Base):
    """Tenant account as maintained by the tenancy platform."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    subscription_plan = Column(String(20), nullable=True, default="free")

    profile = relationship("TenantProfileDB", back_populates="user", uselist=False)


class TenantProfileDB(Base):
    """Identity and bureau flag data for a tenant."""
    __tablename__ = "tenant_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)

    middle_name = Column(String(100), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    address_line3 = Column(String(255), nullable=True)
    address_line4 = Column(String(255), nullable=True)
    postcode = Column(String(10), nullable=True)

    gone_away = Column(Boolean, default=False)
    arrangement_to_pay = Column(Boolean, default=False)
    query_flag = Column("query", Boolean, default=False)
    deceased = Column(Boolean, default=False)
    third_party_paid = Column(Boolean, default=False)
    eviction_flag = Column(Boolean, default=False)
    eviction_date = Column(Date, nullable=True)
    opt_out_reporting = Column(Boolean, default=False)

    user = relationship("UserDB", back_populates="profile")


class PropertyDB(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    landlord_id = Column(String(36), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    postcode = Column(String(10), nullable=True)


class TenancyDB(Base):
    __tablename__ = "tenancies"

    id = Column(String(36), primary_key=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    tenancy_ref = Column(String(50), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    monthly_rent = Column(Numeric(10, 2), nullable=True)
    outstanding_balance = Column(Numeric(10, 2), nullable=True, default=0)
    rent_frequency = Column(String(20), nullable=True, default="monthly")
    status = Column(String(20), nullable=False, default="active")  # active | ended

    property = relationship("PropertyDB")
    tenants = relationship("TenancyTenantDB", back_populates="tenancy")


class TenancyTenantDB(Base):
    """Link between a tenancy and each of its tenants (joint tenancies)."""
    __tablename__ = "tenancy_tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenancy_id = Column(String(36), ForeignKey("tenancies.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    primary_tenant = Column(Boolean, default=True)

    tenancy = relationship("TenancyDB", back_populates="tenants")
    tenant = relationship("UserDB")


class RentPaymentDB(Base):
    __tablename__ = "rent_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenancy_id = Column(String(36), ForeignKey("tenancies.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    status = Column(String(20), default=PaymentStatus.PENDING.value)
    is_verified = Column(Boolean, default=False)
    verification_method = Column(String(50), nullable=True)
    verified_at = Column(DateTime, nullable=True)
