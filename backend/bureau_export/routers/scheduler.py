"""
Scheduler API Routes

Internal endpoints for system-automatic tasks, called by cron.
Monthly bureau export: 1st of every month at 02:00, reporting last month.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..exceptions import BatchConflictError, ValidationError
from ..models.db_models import ExportFormat
from ..models.reporting import BatchOptions
from ..services.reporting import BatchOrchestrator, SnapshotSource
from ..services.reporting.periods import previous_month
from .reporting import BatchResponse, batch_to_response, get_snapshot_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["scheduler"])

SYSTEM_ACTOR = "SYSTEM_CRON"


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(
    x_internal_key: str = Header(...),
    settings: Settings = Depends(get_settings),
):
    """Verify internal API key for scheduler endpoints."""
    expected = settings.internal_api_key
    if not expected or not hmac.compare_digest(x_internal_key, expected):
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/reporting/monthly-export", response_model=BatchResponse)
async def run_monthly_export(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    source: SnapshotSource = Depends(get_snapshot_source),
    _: bool = Depends(verify_internal_key),
):
    """
    Generate the monthly bureau batch.

    System-automatic - defaults to the previous calendar month, verified
    payments only, consented tenants only.
    """
    month = month or previous_month()
    logger.info("[Cron] Starting automated bureau batch generation for %s", month)

    orchestrator = BatchOrchestrator(db, settings, source)
    options = BatchOptions(include_unverified=False, only_consented=True, format=ExportFormat.FIXED)
    try:
        batch = orchestrator.create(month, options, SYSTEM_ACTOR)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except BatchConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    try:
        orchestrator.run(batch)
        logger.info("[Cron] Successfully generated batch for %s", month)
    except Exception:
        logger.exception("[Cron] Failed to generate batch for %s", month)

    db.refresh(batch)
    return batch_to_response(batch)
