"""
Audit Log

Write-only sink for consent changes and batch actions. Entries are added to
the caller's session and become durable with the caller's commit.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import AuditLogDB

logger = logging.getLogger(__name__)


class AuditLog:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        event_type: str,
        subject_type: str,
        subject_id: str,
        description: str,
        actor: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLogDB:
        entry = AuditLogDB(
            id=str(uuid4()),
            event_type=event_type,
            actor=actor,
            subject_type=subject_type,
            subject_id=subject_id,
            description=description,
            event_metadata=metadata,
        )
        self.db.add(entry)
        logger.info("[Audit] %s %s=%s by %s", event_type, subject_type, subject_id, actor or "system")
        return entry
