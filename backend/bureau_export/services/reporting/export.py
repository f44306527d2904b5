"""
Export Surface

Read-only access to batches and their content. Downloads are always rebuilt
from persisted records and checked against the checksum stored at
generation time, so a partner receives the same bytes indefinitely.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ...config import Settings
from ...exceptions import BatchNotFoundError, BatchNotReadyError, ChecksumMismatchError
from ...models.db_models import BatchStatus, ExportFormat, ReportingBatchDB, ReportingRecordDB
from ...models.reporting import ExportFile
from .audit import AuditLog
from .content import MEDIA_TYPES, checksum, export_filename, render_batch
from .periods import parse_month
from .state_machine import BatchStateMachine

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


class ExportService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.state_machine = BatchStateMachine()

    def list_batches(self) -> List[ReportingBatchDB]:
        return self.db.query(ReportingBatchDB).order_by(
            ReportingBatchDB.created_at.desc(), ReportingBatchDB.id
        ).all()

    def get_batch(self, batch_id: str) -> ReportingBatchDB:
        batch = self.db.query(ReportingBatchDB).filter(ReportingBatchDB.id == batch_id).first()
        if batch is None:
            raise BatchNotFoundError(f"Batch {batch_id} not found")
        return batch

    def records_for(self, batch: ReportingBatchDB) -> List[ReportingRecordDB]:
        return self.db.query(ReportingRecordDB).filter(
            ReportingRecordDB.batch_id == batch.id
        ).order_by(ReportingRecordDB.line_no).all()

    def download(self, batch_id: str, actor: Optional[str] = None) -> ExportFile:
        """
        Rebuild a READY batch's file.

        Raises:
            BatchNotFoundError: unknown batch id
            BatchNotReadyError: batch is generating or failed
            ChecksumMismatchError: stored records no longer reproduce the checksum
        """
        batch = self.get_batch(batch_id)
        if not self.state_machine.can_serve(BatchStatus(batch.status)):
            raise BatchNotReadyError(f"Batch {batch.id} is {BatchStatus(batch.status).value}, not ready")

        content = render_batch(batch, self.records_for(batch))
        digest = checksum(content)
        if digest != batch.checksum_sha256:
            logger.error(
                "[Reporting] Checksum mismatch for batch %s: stored %s, regenerated %s",
                batch.id, batch.checksum_sha256, digest,
            )
            raise ChecksumMismatchError(f"Batch {batch.id} content does not match its stored checksum")

        AuditLog(self.db).record(
            event_type="batch_downloaded",
            subject_type="batch",
            subject_id=batch.id,
            description=f"Batch for {batch.month} downloaded",
            actor=actor,
            metadata={"checksum_sha256": digest},
        )
        self.db.commit()

        return ExportFile(
            filename=export_filename(self.settings.file_prefix, batch),
            media_type=MEDIA_TYPES[ExportFormat(batch.format)],
            content=content,
            checksum_sha256=digest,
        )

    def query_records(
        self,
        month: str,
        verification_status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: int = 0,
    ) -> Tuple[List[ReportingRecordDB], Optional[int]]:
        """
        Page through persisted records of READY batches for a month.

        Returns the page and the next cursor (None on the last page).
        """
        parse_month(month)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        cursor = max(0, cursor)

        query = (
            self.db.query(ReportingRecordDB)
            .join(ReportingBatchDB, ReportingBatchDB.id == ReportingRecordDB.batch_id)
            .filter(
                ReportingBatchDB.month == month,
                ReportingBatchDB.status == BatchStatus.READY,
            )
        )
        if verification_status:
            query = query.filter(ReportingRecordDB.verification_status == verification_status)

        items = query.order_by(ReportingRecordDB.batch_id, ReportingRecordDB.line_no).offset(cursor).limit(limit).all()
        next_cursor = cursor + len(items) if len(items) == limit else None
        return items, next_cursor
