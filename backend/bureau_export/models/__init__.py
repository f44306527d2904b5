"""Bureau Export Engine - Data Models"""
from .db_models import (
    # Enums
    BatchStatus, ExportFormat, ConsentStatus, VerificationStatus, PaymentStatus,
    REPORTING_SCOPE,
    # Reporting tables
    ReportingBatchDB, ReportingRecordDB, ConsentDB, AuditLogDB,
)
from .source import SourceRow, UserSnapshot, ProfileSnapshot, TenancySnapshot, PaymentSnapshot
from .reporting import (
    ValidationSeverity, ValidationResult, ExclusionReason,
    BatchOptions, DetailFields, PreviewRow, ExportFile,
)

__all__ = [
    "BatchStatus", "ExportFormat", "ConsentStatus", "VerificationStatus", "PaymentStatus",
    "REPORTING_SCOPE",
    "ReportingBatchDB", "ReportingRecordDB", "ConsentDB", "AuditLogDB",
    "SourceRow", "UserSnapshot", "ProfileSnapshot", "TenancySnapshot", "PaymentSnapshot",
    "ValidationSeverity", "ValidationResult", "ExclusionReason",
    "BatchOptions", "DetailFields", "PreviewRow", "ExportFile",
]
