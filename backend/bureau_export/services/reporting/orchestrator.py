"""
Batch Orchestrator

End-to-end generation of a reporting batch:

    create  → batch row committed in GENERATING (visible for audit)
    run     → fetch → validate → filter → hash/map → persist records
              → regenerate content from persisted records → checksum → READY

Records and the READY transition are written in one transaction. If anything
fails mid-run the transaction is rolled back (no partial records) and the
batch is committed as FAILED with a readable reason.

Consent is snapshotted once per run; a consent change that lands mid-run is
picked up by the next batch.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import Settings
from ...exceptions import (
    BatchConflictError, BatchNotReadyError, InvalidTransitionError, PersistenceError,
)
from ...models.db_models import (
    BatchStatus, ConsentDB, ConsentStatus, ExportFormat, REPORTING_SCOPE,
    ReportingBatchDB, ReportingRecordDB,
)
from ...models.reporting import BatchOptions, ExclusionReason, PreviewRow
from .audit import AuditLog
from .codec import BureauRecordCodec, detail_fields_from_row
from .consent_store import ConsentStore
from .content import checksum, render_batch
from .hasher import IdentifierHasher
from .periods import parse_month
from .snapshot import SnapshotSource
from .state_machine import BatchStateMachine
from .validator import RowValidator, has_errors

logger = logging.getLogger(__name__)


def postcode_outward(postcode: Optional[str]) -> Optional[str]:
    """Outward part of a UK postcode ("SW1A 1AA" -> "SW1A")."""
    if not postcode:
        return None
    compact = postcode.strip().upper()
    if " " in compact:
        return compact.split()[0]
    # Inward code is always the last three characters
    return compact[:-3] or compact


def options_for(batch: ReportingBatchDB) -> BatchOptions:
    return BatchOptions(
        include_unverified=batch.include_unverified,
        only_consented=batch.only_consented,
        format=ExportFormat(batch.format),
    )


class BatchOrchestrator:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        source: SnapshotSource,
        hasher: Optional[IdentifierHasher] = None,
        codec: Optional[BureauRecordCodec] = None,
        consent_store: Optional[ConsentStore] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.db = db
        self.settings = settings
        self.source = source
        self.hasher = hasher or IdentifierHasher.from_settings(settings)
        self.codec = codec or BureauRecordCodec.from_settings(settings)
        self.audit = audit or AuditLog(db)
        self.consent_store = consent_store or ConsentStore(db, self.hasher, self.audit)
        self.validator = RowValidator(self.codec)
        self.state_machine = BatchStateMachine()

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(self, month: str, options: BatchOptions, actor_id: Optional[str]) -> ReportingBatchDB:
        """Persist a new GENERATING batch. One live batch per month."""
        parse_month(month)

        existing = self.db.query(ReportingBatchDB).filter(
            ReportingBatchDB.active_month == month
        ).first()
        if existing is not None:
            raise BatchConflictError(
                f"Month {month} already has batch {existing.id} ({BatchStatus(existing.status).value})"
            )

        batch = ReportingBatchDB(
            id=str(uuid4()),
            month=month,
            active_month=month,
            format=options.format,
            org_id=self.codec.org_id,
            org_name=self.codec.org_name,
            file_sequence=self.codec.file_sequence,
            include_unverified=options.include_unverified,
            only_consented=options.only_consented,
            status=BatchStatus.GENERATING,
            record_count=0,
            total_balance_pence=0,
            created_by=actor_id,
            created_at=datetime.utcnow().replace(microsecond=0),
        )
        self.db.add(batch)
        self.audit.record(
            event_type="batch_created",
            subject_type="batch",
            subject_id=batch.id,
            description=f"Batch generation started for {month}",
            actor=actor_id,
            metadata={
                "month": month,
                "format": options.format.value,
                "include_unverified": options.include_unverified,
                "only_consented": options.only_consented,
            },
        )
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent trigger for the same month
            self.db.rollback()
            raise BatchConflictError(f"Month {month} already has a batch in progress") from exc

        logger.info("[Reporting] Batch %s created for %s by %s", batch.id, month, actor_id)
        return batch

    # =========================================================================
    # PREVIEW
    # =========================================================================

    def _exclusion(
        self,
        preview: PreviewRow,
        options: BatchOptions,
    ) -> Optional[ExclusionReason]:
        if has_errors(preview.validation):
            return ExclusionReason.VALIDATION_FAILED
        if preview.row.opted_out:
            return ExclusionReason.OPTED_OUT
        if not options.include_unverified and not preview.row.payment.is_verified:
            return ExclusionReason.UNVERIFIED
        if options.only_consented and preview.consent_status != ConsentStatus.CONSENTED.value:
            return ExclusionReason.NOT_CONSENTED
        return None

    def preview(self, month: str, options: BatchOptions) -> List[PreviewRow]:
        """Every candidate row with its validation outcome. Nothing is persisted."""
        parse_month(month)
        rows = self.source.fetch(month)
        consents: Dict[str, ConsentDB] = self.consent_store.snapshot(
            (row.tenant_id for row in rows), REPORTING_SCOPE
        )

        previews = []
        for row in rows:
            consent = consents.get(row.tenant_id)
            preview = PreviewRow(
                row=row,
                validation=self.validator.validate(row),
                consent_status=ConsentStatus(consent.status).value if consent else ConsentStatus.NOT_CONSENTED.value,
                consent_timestamp=consent.captured_at if consent else None,
            )
            preview.excluded_reason = self._exclusion(preview, options)
            previews.append(preview)
        return previews

    # =========================================================================
    # RUN
    # =========================================================================

    def _to_record(self, batch: ReportingBatchDB, line_no: int, preview: PreviewRow) -> ReportingRecordDB:
        row = preview.row
        period_start, period_end = parse_month(batch.month)
        fields = detail_fields_from_row(row)
        postcode = row.profile.postcode if row.profile else None

        return ReportingRecordDB(
            batch_id=batch.id,
            line_no=line_no,
            tenant_ref=self.hasher.hash(row.tenant_id),
            property_ref=self.hasher.hash(row.property_id),
            landlord_ref=self.hasher.hash(row.landlord_id) if row.landlord_id else None,
            postcode_outward=postcode_outward(postcode),
            rent_amount_pence=fields.rent_pence,
            rent_frequency=row.tenancy.rent_frequency or "monthly",
            outstanding_balance_pence=fields.balance_pence,
            period_start=period_start,
            period_end=period_end,
            due_date=row.payment.due_date,
            paid_date=row.payment.paid_date,
            payment_status=row.payment.status,
            verification_status=row.payment.verification_status,
            verification_method=row.payment.verification_method,
            verified_at=row.payment.verified_at,
            consent_status=preview.consent_status,
            consent_timestamp=preview.consent_timestamp,
            audit_ref=str(uuid4()),
            bureau_fields=fields.to_dict(),
        )

    def _persisted_records(self, batch: ReportingBatchDB) -> List[ReportingRecordDB]:
        return self.db.query(ReportingRecordDB).filter(
            ReportingRecordDB.batch_id == batch.id
        ).order_by(ReportingRecordDB.line_no).all()

    def _mark_failed(self, batch: ReportingBatchDB, error: Exception) -> None:
        reason = str(error) or error.__class__.__name__
        batch.status = self.state_machine.transition(BatchStatus(batch.status), "fail")
        batch.failed_reason = f"{error.__class__.__name__}: {reason}"
        batch.active_month = None
        batch.completed_at = datetime.utcnow()
        self.audit.record(
            event_type="batch_failed",
            subject_type="batch",
            subject_id=batch.id,
            description=f"Batch generation failed for {batch.month}",
            actor=batch.created_by,
            metadata={"reason": batch.failed_reason},
        )
        self.db.commit()

    def run(self, batch: ReportingBatchDB) -> ReportingBatchDB:
        """Generate content for a GENERATING batch and finalize it."""
        allowed, error = self.state_machine.can_transition(BatchStatus(batch.status), "finalize")
        if not allowed:
            raise InvalidTransitionError(error)

        try:
            previews = self.preview(batch.month, options_for(batch))
            included = [p for p in previews if p.included]
            self._log_exclusions(batch, previews)

            try:
                self.db.add_all(
                    self._to_record(batch, line_no, preview)
                    for line_no, preview in enumerate(included, start=1)
                )
                self.db.flush()
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to write reporting records: {exc}") from exc

            records = self._persisted_records(batch)
            content = render_batch(batch, records)

            batch.status = self.state_machine.transition(BatchStatus(batch.status), "finalize")
            batch.record_count = len(records)
            batch.total_balance_pence = sum(r.outstanding_balance_pence for r in records)
            batch.checksum_sha256 = checksum(content)
            batch.completed_at = datetime.utcnow()
            self.audit.record(
                event_type="batch_ready",
                subject_type="batch",
                subject_id=batch.id,
                description=f"Batch for {batch.month} ready with {len(records)} records",
                actor=batch.created_by,
                metadata={"record_count": len(records), "checksum_sha256": batch.checksum_sha256},
            )

            try:
                self.db.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to finalize batch: {exc}") from exc

        except Exception as exc:
            logger.error("[Reporting] Batch %s generation failed: %s", batch.id, exc)
            self.db.rollback()
            self._mark_failed(batch, exc)
            raise

        logger.info(
            "[Reporting] Batch %s ready: %d records, checksum %s",
            batch.id, batch.record_count, batch.checksum_sha256,
        )
        return batch

    def _log_exclusions(self, batch: ReportingBatchDB, previews: List[PreviewRow]) -> None:
        counts: Dict[str, int] = {}
        for preview in previews:
            if preview.excluded_reason is not None:
                key = preview.excluded_reason.value
                counts[key] = counts.get(key, 0) + 1
        logger.info(
            "[Reporting] Batch %s: fetched %d rows, excluded %s",
            batch.id, len(previews), counts or "none",
        )

    def generate(self, month: str, options: BatchOptions, actor_id: Optional[str]) -> ReportingBatchDB:
        """Create and run a batch in one call."""
        batch = self.create(month, options, actor_id)
        return self.run(batch)

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    def download(self, batch: ReportingBatchDB) -> bytes:
        """Regenerate a READY batch's content from its stored records."""
        if not self.state_machine.can_serve(BatchStatus(batch.status)):
            raise BatchNotReadyError(f"Batch {batch.id} is {BatchStatus(batch.status).value}, not ready")
        return render_batch(batch, self._persisted_records(batch))
