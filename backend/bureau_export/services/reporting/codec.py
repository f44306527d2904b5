"""
Bureau Record Codec

Encodes the fixed-width bureau file: one Header, one Detail per reported
tenancy, one Trailer, joined by CRLF.

Record widths:
    Header   80  H | org id | org name | date | time | sequence | filler
    Detail  300  D | name | DOB | address | tenancy | money | flags | ref | filler
    Trailer  80  T | org id | record count | total balance | filler

Field policy:
- Text: left-justified, space-padded. Too long -> FieldError.
- Number: right-justified, zero-padded. Negative or too wide -> FieldError.
- Date: YYYYMMDD, or spaces when absent.

A FieldError never produces a shipped line: the row is rejected upstream.
Width checks on every emitted record are hard invariants, not conventions.
"""
from __future__ import annotations
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Tuple

from ...exceptions import ConfigurationError, EncodingInvariantViolation, FieldError
from ...models.reporting import DetailFields
from ...models.source import SourceRow

HEADER_LENGTH = 80
DETAIL_LENGTH = 300
TRAILER_LENGTH = 80
LINE_TERMINATOR = "\r\n"

TEXT = "text"
NUMBER = "number"
DATE = "date"
LITERAL = "literal"

FREQUENCY_CODES = {
    "weekly": "W",
    "w": "W",
    "fortnightly": "F",
    "f": "F",
    "monthly": "M",
    "m": "M",
}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    width: int
    kind: str = TEXT


HEADER_LAYOUT: Tuple[FieldSpec, ...] = (
    FieldSpec("record_type", 1, LITERAL),
    FieldSpec("org_id", 10),
    FieldSpec("org_name", 30),
    FieldSpec("creation_date", 8, DATE),
    FieldSpec("creation_time", 6),
    FieldSpec("file_sequence", 6, NUMBER),
    FieldSpec("filler", 19, LITERAL),
)

DETAIL_LAYOUT: Tuple[FieldSpec, ...] = (
    FieldSpec("record_type", 1, LITERAL),        # 1
    FieldSpec("surname", 30),                    # 2-31
    FieldSpec("forename", 30),                   # 32-61
    FieldSpec("middle_name", 30),                # 62-91
    FieldSpec("date_of_birth", 8, DATE),         # 92-99
    FieldSpec("address_line1", 30),              # 100-129
    FieldSpec("address_line2", 30),              # 130-159
    FieldSpec("address_line3", 30),              # 160-189
    FieldSpec("address_line4", 30),              # 190-219
    FieldSpec("postcode", 8),                    # 220-227
    FieldSpec("tenancy_start", 8, DATE),         # 228-235
    FieldSpec("tenancy_end", 8, DATE),           # 236-243
    FieldSpec("rent_pence", 8, NUMBER),          # 244-251
    FieldSpec("rent_frequency", 1),              # 252
    FieldSpec("balance_pence", 8, NUMBER),       # 253-260
    FieldSpec("payment_status", 1),              # 261
    FieldSpec("gone_away", 1),                   # 262
    FieldSpec("arrangement_to_pay", 1),          # 263
    FieldSpec("query", 1),                       # 264
    FieldSpec("deceased", 1),                    # 265
    FieldSpec("third_party_paid", 1),            # 266
    FieldSpec("evicted", 1),                     # 267
    FieldSpec("eviction_date", 8, DATE),         # 268-275
    FieldSpec("tenancy_ref", 10),                # 276-285
    FieldSpec("filler", 15, LITERAL),            # 286-300
)

TRAILER_LAYOUT: Tuple[FieldSpec, ...] = (
    FieldSpec("record_type", 1, LITERAL),
    FieldSpec("org_id", 10),
    FieldSpec("record_count", 10, NUMBER),
    FieldSpec("total_balance_pence", 10, NUMBER),
    FieldSpec("filler", 49, LITERAL),
)


def _layout_width(layout: Sequence[FieldSpec]) -> int:
    return sum(spec.width for spec in layout)


# Checked at import: a layout edit that breaks a width fails loudly
for _layout, _expected in (
    (HEADER_LAYOUT, HEADER_LENGTH),
    (DETAIL_LAYOUT, DETAIL_LENGTH),
    (TRAILER_LAYOUT, TRAILER_LENGTH),
):
    if _layout_width(_layout) != _expected:
        raise EncodingInvariantViolation(
            f"Layout {_layout[0].name} sums to {_layout_width(_layout)}, expected {_expected}"
        )


def field_offset(layout: Sequence[FieldSpec], name: str) -> Tuple[int, int]:
    """Return the 0-based [start, end) slice of a field within its record."""
    start = 0
    for spec in layout:
        if spec.name == name:
            return start, start + spec.width
        start += spec.width
    raise KeyError(name)


# =============================================================================
# VALUE CONVERSION
# =============================================================================

def to_pence(amount) -> int:
    """Convert a decimal currency amount to integer pence, rounding half up."""
    if amount is None or amount == "":
        return 0
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_date(value: Optional[date]) -> str:
    """YYYYMMDD, or "" when absent (rendered as spaces in the record)."""
    if value is None:
        return ""
    return value.strftime("%Y%m%d")


def to_ascii(value: str) -> str:
    """Fold accented characters to their ASCII base letters."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def frequency_code(frequency: Optional[str]) -> str:
    if not frequency:
        return "M"
    return FREQUENCY_CODES.get(frequency.strip().lower(), frequency)


def flag(value: bool) -> str:
    return "Y" if value else "N"


# =============================================================================
# FIELD ENCODERS
# =============================================================================

def pad_text(value: Optional[str], spec: FieldSpec, errors: List[FieldError]) -> str:
    text = to_ascii(value or "")
    if not text.isascii():
        errors.append(FieldError(spec.name, value, spec.width, "contains non-ASCII characters"))
        text = text.encode("ascii", "replace").decode("ascii")
    if len(text) > spec.width:
        errors.append(FieldError(spec.name, value, spec.width, "would be truncated"))
        return text[:spec.width]
    return text.ljust(spec.width, " ")


def pad_number(value: Optional[int], spec: FieldSpec, errors: List[FieldError]) -> str:
    number = int(value or 0)
    if number < 0:
        errors.append(FieldError(spec.name, value, spec.width, "is negative"))
        return "0" * spec.width
    digits = str(number)
    if len(digits) > spec.width:
        errors.append(FieldError(spec.name, value, spec.width, "overflows"))
        return "9" * spec.width
    return digits.rjust(spec.width, "0")


def pad_date(value: Optional[str], spec: FieldSpec, errors: List[FieldError]) -> str:
    if not value:
        return " " * spec.width
    if len(value) != spec.width or not value.isdigit():
        errors.append(FieldError(spec.name, value, spec.width, "is not a YYYYMMDD date"))
        return " " * spec.width
    return value


def encode_record(layout: Sequence[FieldSpec], values: dict, errors: List[FieldError]) -> str:
    """Encode one record and assert its total width."""
    parts = []
    for spec in layout:
        value = values.get(spec.name)
        if spec.kind == LITERAL:
            part = (value or "").ljust(spec.width, " ")
        elif spec.kind == NUMBER:
            part = pad_number(value, spec, errors)
        elif spec.kind == DATE:
            part = pad_date(value, spec, errors)
        else:
            part = pad_text(value, spec, errors)
        if len(part) != spec.width:
            raise EncodingInvariantViolation(
                f"Field {spec.name} encoded to {len(part)} chars, expected {spec.width}"
            )
        parts.append(part)

    line = "".join(parts)
    expected = _layout_width(layout)
    if len(line) != expected:
        raise EncodingInvariantViolation(
            f"{layout[0].name} record encoded to {len(line)} chars, expected {expected}"
        )
    return line


# =============================================================================
# SOURCE ROW -> DETAIL FIELDS
# =============================================================================

def detail_fields_from_row(row: SourceRow) -> DetailFields:
    """Map a validated source row to bureau-form detail values."""
    profile = row.profile
    tenancy = row.tenancy
    return DetailFields(
        surname=row.user.surname or "",
        forename=row.user.forename or "",
        middle_name=(profile.middle_name if profile else None) or "",
        date_of_birth=format_date(profile.date_of_birth if profile else None),
        address_line1=(profile.address_line1 if profile else None) or "",
        address_line2=(profile.address_line2 if profile else None) or "",
        address_line3=(profile.address_line3 if profile else None) or "",
        address_line4=(profile.address_line4 if profile else None) or "",
        postcode=(profile.postcode if profile else None) or "",
        tenancy_start=format_date(tenancy.start_date),
        tenancy_end=format_date(tenancy.end_date),
        rent_pence=to_pence(tenancy.monthly_rent),
        rent_frequency=frequency_code(tenancy.rent_frequency),
        balance_pence=to_pence(tenancy.outstanding_balance),
        gone_away=bool(profile and profile.gone_away),
        arrangement_to_pay=bool(profile and profile.arrangement_to_pay),
        query=bool(profile and profile.query),
        deceased=bool(profile and profile.deceased),
        third_party_paid=bool(profile and profile.third_party_paid),
        evicted=bool(profile and profile.eviction_flag),
        eviction_date=format_date(profile.eviction_date if profile else None),
        tenancy_ref=tenancy.tenancy_ref or "",
    )


# =============================================================================
# CODEC
# =============================================================================

class BureauRecordCodec:
    """Encodes header, detail and trailer records for one organisation."""

    def __init__(self, org_id: str, org_name: str, file_sequence: int = 1):
        errors: List[FieldError] = []
        pad_text(org_id, FieldSpec("org_id", 10), errors)
        pad_text(org_name, FieldSpec("org_name", 30), errors)
        pad_number(file_sequence, FieldSpec("file_sequence", 6, NUMBER), errors)
        if errors:
            raise ConfigurationError("; ".join(e.message for e in errors))
        self.org_id = org_id
        self.org_name = org_name
        self.file_sequence = file_sequence

    @classmethod
    def from_settings(cls, settings) -> "BureauRecordCodec":
        return cls(settings.org_id, settings.org_name, settings.file_sequence)

    def encode_header(self, created_at: datetime) -> str:
        errors: List[FieldError] = []
        line = encode_record(HEADER_LAYOUT, {
            "record_type": "H",
            "org_id": self.org_id,
            "org_name": self.org_name,
            "creation_date": created_at.strftime("%Y%m%d"),
            "creation_time": created_at.strftime("%H%M%S"),
            "file_sequence": self.file_sequence,
        }, errors)
        if errors:
            raise EncodingInvariantViolation("; ".join(e.message for e in errors))
        return line

    def encode_detail(self, fields: DetailFields) -> Tuple[str, List[FieldError]]:
        """Encode one detail record. Returns the line and any field errors."""
        errors: List[FieldError] = []
        values = fields.to_dict()
        values["record_type"] = "D"
        values["payment_status"] = "0" if fields.balance_pence == 0 else "1"
        for name in ("gone_away", "arrangement_to_pay", "query",
                     "deceased", "third_party_paid", "evicted"):
            values[name] = flag(values[name])
        if values["rent_frequency"] not in ("W", "F", "M"):
            errors.append(FieldError("rent_frequency", fields.rent_frequency, 1, "is not one of W, F, M"))
        line = encode_record(DETAIL_LAYOUT, values, errors)
        return line, errors

    def check_detail(self, fields: DetailFields) -> List[FieldError]:
        return self.encode_detail(fields)[1]

    def encode_trailer(self, record_count: int, total_balance_pence: int) -> str:
        errors: List[FieldError] = []
        line = encode_record(TRAILER_LAYOUT, {
            "record_type": "T",
            "org_id": self.org_id,
            "record_count": record_count,
            "total_balance_pence": total_balance_pence,
        }, errors)
        if errors:
            raise EncodingInvariantViolation("; ".join(e.message for e in errors))
        return line

    def encode_file(self, created_at: datetime, details: Iterable[DetailFields]) -> str:
        """Encode a complete file. Any detail field error is fatal here."""
        lines = [self.encode_header(created_at)]
        count = 0
        total_balance = 0
        for fields in details:
            line, errors = self.encode_detail(fields)
            if errors:
                raise EncodingInvariantViolation(
                    "Refusing to emit malformed detail record: "
                    + "; ".join(e.message for e in errors)
                )
            lines.append(line)
            count += 1
            total_balance += fields.balance_pence
        lines.append(self.encode_trailer(count, total_balance))
        return LINE_TERMINATOR.join(lines)
