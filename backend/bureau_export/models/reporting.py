"""
Bureau Export Engine - Reporting Domain Models

Plain value objects passed between the validator, the codec, the
orchestrator and the export surface.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .db_models import ExportFormat
from .source import SourceRow


class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ExclusionReason(str, Enum):
    """Why a fetched row did not make it into a batch."""
    VALIDATION_FAILED = "validation_failed"
    OPTED_OUT = "opted_out"
    UNVERIFIED = "unverified"
    NOT_CONSENTED = "not_consented"


@dataclass(frozen=True)
class ValidationResult:
    message: str
    severity: ValidationSeverity
    field: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == ValidationSeverity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "severity": self.severity.value, "field": self.field}


@dataclass(frozen=True)
class BatchOptions:
    include_unverified: bool = False
    only_consented: bool = True
    format: ExportFormat = ExportFormat.FIXED


@dataclass
class DetailFields:
    """
    Values of one bureau detail record, already in bureau form.

    Dates are YYYYMMDD strings ("" when absent), money is integer pence.
    Persisted as JSON on the reporting record so the fixed-width line can be
    rebuilt without touching live data.
    """
    surname: str = ""
    forename: str = ""
    middle_name: str = ""
    date_of_birth: str = ""
    address_line1: str = ""
    address_line2: str = ""
    address_line3: str = ""
    address_line4: str = ""
    postcode: str = ""
    tenancy_start: str = ""
    tenancy_end: str = ""
    rent_pence: int = 0
    rent_frequency: str = "M"
    balance_pence: int = 0
    gone_away: bool = False
    arrangement_to_pay: bool = False
    query: bool = False
    deceased: bool = False
    third_party_paid: bool = False
    evicted: bool = False
    eviction_date: str = ""
    tenancy_ref: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetailFields":
        return cls(**data)


@dataclass
class PreviewRow:
    """A fetched row with its validation outcome, for operator review."""
    row: SourceRow
    validation: List[ValidationResult] = field(default_factory=list)
    excluded_reason: Optional[ExclusionReason] = None
    consent_status: str = "not_consented"
    consent_timestamp: Optional[datetime] = None

    @property
    def included(self) -> bool:
        return self.excluded_reason is None

    @property
    def errors(self) -> List[ValidationResult]:
        return [v for v in self.validation if v.is_error]


@dataclass(frozen=True)
class ExportFile:
    filename: str
    media_type: str
    content: bytes
    checksum_sha256: str
