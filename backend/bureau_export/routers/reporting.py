"""
Bureau Export Engine - Reporting API Router

Batch listing, generation, preview and download for the bureau export.
All endpoints require an admin token.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import Actor, require_admin
from ..config import Settings, get_settings
from ..database import get_db
from ..exceptions import (
    BatchConflictError, BatchNotFoundError, BatchNotReadyError, ChecksumMismatchError,
    ValidationError,
)
from ..models.db_models import BatchStatus, ExportFormat, ReportingBatchDB
from ..models.reporting import BatchOptions
from ..services.reporting import (
    BatchOrchestrator, ExportService, SnapshotSource, SqlSnapshotSource,
)
from ..services.reporting.content import record_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reporting", tags=["reporting"])


# =============================================================================
# PYDANTIC MODELS FOR API
# =============================================================================

class BatchCreateRequest(BaseModel):
    month: str
    include_unverified: bool = False
    only_consented: bool = True
    format: ExportFormat = ExportFormat.FIXED


class BatchResponse(BaseModel):
    id: str
    month: str
    format: str
    include_unverified: bool
    only_consented: bool
    status: str
    record_count: int
    total_balance_pence: int
    checksum_sha256: Optional[str] = None
    failed_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class BatchListResponse(BaseModel):
    items: List[BatchResponse]


class ValidationResponse(BaseModel):
    message: str
    severity: str
    field: Optional[str] = None


class PreviewItem(BaseModel):
    tenant_ref: str
    tenancy_ref: Optional[str] = None
    surname: Optional[str] = None
    forename: Optional[str] = None
    postcode: Optional[str] = None
    due_date: str
    verification_status: str
    consent_status: str
    included: bool
    excluded_reason: Optional[str] = None
    validation: List[ValidationResponse]


class PreviewResponse(BaseModel):
    month: str
    total: int
    included: int
    items: List[PreviewItem]


class RecordsResponse(BaseModel):
    items: List[dict]
    next_cursor: Optional[str] = None


# =============================================================================
# DEPENDENCIES & HELPERS
# =============================================================================

def get_snapshot_source(db: Session = Depends(get_db)) -> SnapshotSource:
    """Dependency - where candidate rows come from. Overridable for replays."""
    return SqlSnapshotSource(db)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def batch_to_response(batch: ReportingBatchDB) -> BatchResponse:
    return BatchResponse(
        id=batch.id,
        month=batch.month,
        format=ExportFormat(batch.format).value,
        include_unverified=batch.include_unverified,
        only_consented=batch.only_consented,
        status=BatchStatus(batch.status).value,
        record_count=batch.record_count,
        total_balance_pence=batch.total_balance_pence,
        checksum_sha256=batch.checksum_sha256,
        failed_reason=batch.failed_reason,
        created_by=batch.created_by,
        created_at=_iso(batch.created_at),
        completed_at=_iso(batch.completed_at),
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/batches", response_model=BatchListResponse)
async def list_batches(
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """List all batches, newest first."""
    batches = ExportService(db, settings).list_batches()
    return BatchListResponse(items=[batch_to_response(b) for b in batches])


@router.post("/batches", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    request: BatchCreateRequest,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    source: SnapshotSource = Depends(get_snapshot_source),
):
    """
    Generate a batch for a month.

    The batch is returned in its final state; a failed run still yields the
    batch row (status=failed, failed_reason set) for audit.
    """
    orchestrator = BatchOrchestrator(db, settings, source)
    options = BatchOptions(
        include_unverified=request.include_unverified,
        only_consented=request.only_consented,
        format=request.format,
    )

    try:
        batch = orchestrator.create(request.month, options, actor.id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except BatchConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    try:
        orchestrator.run(batch)
    except Exception:
        logger.exception("Batch %s generation failed", batch.id)

    db.refresh(batch)
    return batch_to_response(batch)


@router.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: str,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Get a single batch."""
    try:
        batch = ExportService(db, settings).get_batch(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")
    return batch_to_response(batch)


@router.get("/batches/{batch_id}/download")
async def download_batch(
    batch_id: str,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Download batch content, rebuilt from stored records.
    Only READY batches can be downloaded.
    """
    try:
        export = ExportService(db, settings).download(batch_id, actor=actor.id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")
    except BatchNotReadyError:
        raise HTTPException(status_code=400, detail="Batch is not ready")
    except ChecksumMismatchError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Checksum-SHA256": export.checksum_sha256,
        },
    )


@router.get("/preview", response_model=PreviewResponse)
async def preview_month(
    month: str,
    include_unverified: bool = False,
    only_consented: bool = True,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    source: SnapshotSource = Depends(get_snapshot_source),
):
    """
    Show every candidate row for a month with validation results.
    Rows with errors appear here even though they never reach a batch.
    """
    orchestrator = BatchOrchestrator(db, settings, source)
    options = BatchOptions(include_unverified=include_unverified, only_consented=only_consented)
    try:
        previews = orchestrator.preview(month, options)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    hasher = orchestrator.hasher
    items = []
    for p in previews:
        row = p.row
        items.append(PreviewItem(
            tenant_ref=hasher.hash(row.tenant_id),
            tenancy_ref=row.tenancy.tenancy_ref,
            surname=row.user.surname,
            forename=row.user.forename,
            postcode=row.profile.postcode if row.profile else None,
            due_date=row.payment.due_date.isoformat(),
            verification_status=row.payment.verification_status,
            consent_status=p.consent_status,
            included=p.included,
            excluded_reason=p.excluded_reason.value if p.excluded_reason else None,
            validation=[ValidationResponse(**v.to_dict()) for v in p.validation],
        ))

    return PreviewResponse(
        month=month,
        total=len(items),
        included=sum(1 for i in items if i.included),
        items=items,
    )


@router.get("/records", response_model=RecordsResponse)
async def list_records(
    month: Optional[str] = None,
    verification_status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    cursor: Optional[str] = None,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Page through records of ready batches for a month."""
    if not month:
        raise HTTPException(status_code=400, detail="month is required")
    try:
        offset = int(cursor) if cursor else 0
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid cursor")

    try:
        items, next_cursor = ExportService(db, settings).query_records(
            month, verification_status=verification_status, limit=limit, cursor=offset,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return RecordsResponse(
        items=[record_to_dict(r) for r in items],
        next_cursor=str(next_cursor) if next_cursor is not None else None,
    )
