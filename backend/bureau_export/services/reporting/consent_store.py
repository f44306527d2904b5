"""
Consent Store

Per-tenant, per-scope consent state. Looked up by raw tenant id internally
and by hashed tenant reference on the partner-facing surface.

History rules:
- captured_at is set the first time a tenant consents and never reset
- withdrawn_at is set on every withdrawal and kept when the tenant re-consents
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ...exceptions import ConsentNotFoundError
from ...models.db_models import ConsentDB, ConsentStatus, REPORTING_SCOPE
from .audit import AuditLog
from .hasher import IdentifierHasher

logger = logging.getLogger(__name__)


class ConsentStore:
    def __init__(self, db: Session, hasher: IdentifierHasher, audit: Optional[AuditLog] = None):
        self.db = db
        self.hasher = hasher
        self.audit = audit or AuditLog(db)

    def _find(self, tenant_id: str, scope: str) -> Optional[ConsentDB]:
        return self.db.query(ConsentDB).filter(
            ConsentDB.tenant_id == tenant_id,
            ConsentDB.scope == scope,
        ).first()

    def get(self, tenant_id: str, scope: str = REPORTING_SCOPE) -> ConsentDB:
        """Return the tenant's consent, or a transient not_consented placeholder."""
        consent = self._find(tenant_id, scope)
        if consent is None:
            return ConsentDB(tenant_id=tenant_id, scope=scope, status=ConsentStatus.NOT_CONSENTED)
        return consent

    def get_by_ref(self, tenant_ref: str, scope: str = REPORTING_SCOPE) -> Optional[ConsentDB]:
        return self.db.query(ConsentDB).filter(
            ConsentDB.tenant_ref == tenant_ref,
            ConsentDB.scope == scope,
        ).first()

    def require_by_ref(self, tenant_ref: str, scope: str = REPORTING_SCOPE) -> ConsentDB:
        consent = self.get_by_ref(tenant_ref, scope)
        if consent is None:
            raise ConsentNotFoundError(f"No consent record for reference {tenant_ref}")
        return consent

    def snapshot(self, tenant_ids: Iterable[str], scope: str = REPORTING_SCOPE) -> Dict[str, ConsentDB]:
        """Bulk lookup used once per batch run. Missing tenants are absent from the dict."""
        ids = list(set(tenant_ids))
        if not ids:
            return {}
        rows = self.db.query(ConsentDB).filter(
            ConsentDB.tenant_id.in_(ids),
            ConsentDB.scope == scope,
        ).all()
        return {row.tenant_id: row for row in rows}

    def update(
        self,
        tenant_id: str,
        scope: str,
        status: ConsentStatus,
        tenant_ref: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> ConsentDB:
        """Upsert consent state and record the change in the audit log."""
        status = ConsentStatus(status)
        now = datetime.utcnow()

        consent = self._find(tenant_id, scope)
        previous = consent.status if consent is not None else ConsentStatus.NOT_CONSENTED
        if consent is None:
            consent = ConsentDB(tenant_id=tenant_id, scope=scope)
            self.db.add(consent)

        consent.status = status
        # Every row must stay reachable from the hashed-reference surface
        consent.tenant_ref = tenant_ref or consent.tenant_ref or self.hasher.hash(tenant_id)

        if status == ConsentStatus.CONSENTED and consent.captured_at is None:
            consent.captured_at = now
        elif status == ConsentStatus.WITHDRAWN:
            consent.withdrawn_at = now

        self.db.flush()

        self.audit.record(
            event_type="consent_updated",
            subject_type="consent",
            subject_id=consent.tenant_ref or tenant_id,
            description=f"Consent for scope {scope} changed from {previous.value} to {status.value}",
            actor=actor,
            metadata={"scope": scope, "previous": previous.value, "status": status.value},
        )
        return consent
