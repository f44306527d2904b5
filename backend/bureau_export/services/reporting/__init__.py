"""
Bureau Reporting Services

Pseudonymized, consent-gated monthly export of tenancy payment data to a
credit bureau.

- IdentifierHasher: HMAC pseudonyms for internal ids
- ConsentStore: per-tenant consent state
- RowValidator: completeness checks on source rows
- BureauRecordCodec: fixed-width header/detail/trailer records
- BatchOrchestrator: generate → persist → checksum → ready
- ExportService: listing, detail and deterministic re-download
"""

from .hasher import IdentifierHasher
from .consent_store import ConsentStore
from .validator import RowValidator
from .codec import BureauRecordCodec
from .snapshot import SnapshotSource, SqlSnapshotSource, StaticSnapshotSource
from .state_machine import BatchStateMachine
from .orchestrator import BatchOrchestrator
from .export import ExportService
from .audit import AuditLog

__all__ = [
    'IdentifierHasher',
    'ConsentStore',
    'RowValidator',
    'BureauRecordCodec',
    'SnapshotSource',
    'SqlSnapshotSource',
    'StaticSnapshotSource',
    'BatchStateMachine',
    'BatchOrchestrator',
    'ExportService',
    'AuditLog',
]
