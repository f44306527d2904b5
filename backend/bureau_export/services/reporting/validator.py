"""
Row Validator

Completeness and sanity checks on an assembled source row.

ERROR results exclude the row from a ready batch. WARNING results are
reported in the preview but never exclude. Field-level encoding problems
from the codec (truncation, numeric overflow) are folded in as errors.
"""
import logging
from typing import List, Optional

from ...models.reporting import ValidationResult, ValidationSeverity
from ...models.source import SourceRow
from .codec import BureauRecordCodec, detail_fields_from_row

logger = logging.getLogger(__name__)


def _error(message: str, field: str) -> ValidationResult:
    return ValidationResult(message=message, severity=ValidationSeverity.ERROR, field=field)


def _warning(message: str, field: str) -> ValidationResult:
    return ValidationResult(message=message, severity=ValidationSeverity.WARNING, field=field)


class RowValidator:
    def __init__(self, codec: Optional[BureauRecordCodec] = None):
        self.codec = codec

    def validate(self, row: SourceRow) -> List[ValidationResult]:
        results = self.check_required(row) + self.check_consistency(row)
        if self.codec is not None:
            results.extend(self.check_encoding(row))
        if any(r.is_error for r in results):
            logger.debug(
                "Row for tenant %s failed validation: %s",
                row.tenant_id, [r.message for r in results if r.is_error],
            )
        return results

    def check_required(self, row: SourceRow) -> List[ValidationResult]:
        errors = []
        profile = row.profile
        tenancy = row.tenancy

        if not row.user.surname:
            errors.append(_error("Missing Surname", "surname"))
        if profile is None or not profile.date_of_birth:
            errors.append(_error("Missing DOB", "date_of_birth"))
        if profile is None or not profile.address_line1:
            errors.append(_error("Missing Address Line 1", "address_line1"))
        if profile is None or not profile.postcode:
            errors.append(_error("Missing Postcode", "postcode"))
        if not tenancy.start_date:
            errors.append(_error("Missing Tenancy Start Date", "tenancy_start"))
        if tenancy.monthly_rent is None or tenancy.monthly_rent < 0:
            errors.append(_error("Invalid Rent Amount", "rent_pence"))
        return errors

    def check_consistency(self, row: SourceRow) -> List[ValidationResult]:
        warnings = []
        tenancy = row.tenancy

        if not row.user.forename:
            warnings.append(_warning("Missing Forename", "forename"))
        if not tenancy.tenancy_ref:
            warnings.append(_warning("Missing Tenancy Reference", "tenancy_ref"))
        if tenancy.start_date and tenancy.end_date and tenancy.end_date < tenancy.start_date:
            warnings.append(_warning("Tenancy End Date before Start Date", "tenancy_end"))
        if row.profile and row.profile.eviction_flag and not row.profile.eviction_date:
            warnings.append(_warning("Eviction flagged without Eviction Date", "eviction_date"))
        return warnings

    def check_encoding(self, row: SourceRow) -> List[ValidationResult]:
        field_errors = self.codec.check_detail(detail_fields_from_row(row))
        return [_error(e.message, e.field) for e in field_errors]


def has_errors(results: List[ValidationResult]) -> bool:
    return any(r.is_error for r in results)
