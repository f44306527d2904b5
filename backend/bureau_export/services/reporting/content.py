"""
Batch Content Rendering

Builds the downloadable file for a batch from its persisted records only.
Same batch + same records -> same bytes, so the checksum taken at
generation time stays valid for every later download.
"""
import csv
import io
import json
from datetime import date, datetime
from hashlib import sha256
from typing import Any, Dict, List, Sequence

from ...models.db_models import ExportFormat, ReportingBatchDB, ReportingRecordDB
from ...models.reporting import DetailFields
from .codec import BureauRecordCodec, LINE_TERMINATOR

RECORD_COLUMNS = (
    "line_no",
    "audit_ref",
    "tenant_ref",
    "property_ref",
    "landlord_ref",
    "postcode_outward",
    "rent_amount_pence",
    "rent_frequency",
    "outstanding_balance_pence",
    "period_start",
    "period_end",
    "due_date",
    "paid_date",
    "payment_status",
    "verification_status",
    "verification_method",
    "verified_at",
    "consent_status",
    "consent_timestamp",
)

MEDIA_TYPES = {
    ExportFormat.FIXED: "text/plain",
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}

FILE_EXTENSIONS = {
    ExportFormat.FIXED: "txt",
    ExportFormat.CSV: "csv",
    ExportFormat.JSON: "json",
}


def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def record_to_dict(record: ReportingRecordDB) -> Dict[str, Any]:
    """Partner-facing view of a record: pseudonyms only, no raw identity."""
    return {column: _serialize(getattr(record, column)) for column in RECORD_COLUMNS}


def codec_for(batch: ReportingBatchDB) -> BureauRecordCodec:
    """Codec configured from the header identity stored on the batch."""
    return BureauRecordCodec(batch.org_id, batch.org_name, batch.file_sequence)


def render_fixed(batch: ReportingBatchDB, records: Sequence[ReportingRecordDB]) -> str:
    details = [DetailFields.from_dict(r.bureau_fields) for r in records]
    return codec_for(batch).encode_file(batch.created_at, details)


def render_csv(records: Sequence[ReportingRecordDB]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=RECORD_COLUMNS, lineterminator=LINE_TERMINATOR)
    writer.writeheader()
    for record in records:
        writer.writerow({k: ("" if v is None else v) for k, v in record_to_dict(record).items()})
    return buffer.getvalue()


def render_json(records: Sequence[ReportingRecordDB]) -> str:
    return json.dumps([record_to_dict(r) for r in records], indent=2, sort_keys=True)


def render_batch(batch: ReportingBatchDB, records: List[ReportingRecordDB]) -> bytes:
    """Render batch content in the batch's format, ordered by line number."""
    ordered = sorted(records, key=lambda r: r.line_no)
    fmt = ExportFormat(batch.format)
    if fmt == ExportFormat.FIXED:
        return render_fixed(batch, ordered).encode("ascii")
    if fmt == ExportFormat.CSV:
        return render_csv(ordered).encode("utf-8")
    return render_json(ordered).encode("utf-8")


def checksum(content: bytes) -> str:
    return sha256(content).hexdigest()


def export_filename(prefix: str, batch: ReportingBatchDB) -> str:
    """<prefix>-<month>-<short batch id>.<ext>"""
    ext = FILE_EXTENSIONS[ExportFormat(batch.format)]
    return f"{prefix}-{batch.month}-{batch.id[:8]}.{ext}"
