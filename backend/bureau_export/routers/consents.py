"""
Bureau Export Engine - Consents API Router

Partner-facing consent lookup and update, addressed by hashed tenant
reference. Raw tenant ids never appear on this surface.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import Actor, require_admin
from ..config import Settings, get_settings
from ..database import get_db
from ..exceptions import ConsentNotFoundError
from ..models.db_models import ConsentDB, ConsentStatus, REPORTING_SCOPE
from ..services.reporting import ConsentStore, IdentifierHasher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consents", tags=["consents"])


class ConsentResponse(BaseModel):
    tenant_ref: str
    consent_status: str
    scope: str
    captured_at: Optional[str] = None
    withdrawn_at: Optional[str] = None


class ConsentUpdateRequest(BaseModel):
    consent_status: str


def consent_to_response(tenant_ref: str, consent: ConsentDB) -> ConsentResponse:
    return ConsentResponse(
        tenant_ref=tenant_ref,
        consent_status=ConsentStatus(consent.status).value,
        scope=consent.scope,
        captured_at=consent.captured_at.isoformat() if consent.captured_at else None,
        withdrawn_at=consent.withdrawn_at.isoformat() if consent.withdrawn_at else None,
    )


@router.get("/{tenant_ref}", response_model=ConsentResponse)
async def get_consent(
    tenant_ref: str,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Consent state for a hashed tenant reference (not_consented when unknown)."""
    consent = ConsentStore(db, IdentifierHasher.from_settings(settings)).get_by_ref(tenant_ref)
    if consent is None:
        return ConsentResponse(
            tenant_ref=tenant_ref,
            consent_status=ConsentStatus.NOT_CONSENTED.value,
            scope=REPORTING_SCOPE,
        )
    return consent_to_response(tenant_ref, consent)


@router.put("/{tenant_ref}", response_model=ConsentResponse)
async def update_consent(
    tenant_ref: str,
    request: ConsentUpdateRequest,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Record a consent or withdrawal for a known tenant reference.

    A new consent cannot be created here: the raw tenant id cannot be
    recovered from its hash.
    """
    if request.consent_status not in (ConsentStatus.CONSENTED.value, ConsentStatus.WITHDRAWN.value):
        raise HTTPException(status_code=400, detail="Invalid consent_status")

    store = ConsentStore(db, IdentifierHasher.from_settings(settings))
    try:
        existing = store.require_by_ref(tenant_ref)
    except ConsentNotFoundError:
        raise HTTPException(status_code=404, detail="Tenant reference not found")

    updated = store.update(
        existing.tenant_id,
        REPORTING_SCOPE,
        ConsentStatus(request.consent_status),
        tenant_ref=tenant_ref,
        actor=actor.id,
    )
    db.commit()
    return consent_to_response(tenant_ref, updated)
