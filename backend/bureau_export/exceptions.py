"""Exception hierarchy for the bureau export engine."""
from dataclasses import dataclass
from typing import Any


class BureauExportError(Exception):
    """Base exception for all bureau export errors."""


class ConfigurationError(BureauExportError):
    """Raised when required configuration is missing or invalid."""


class ValidationError(BureauExportError):
    """Raised when request input (e.g. a month string) is malformed."""


class EncodingInvariantViolation(BureauExportError):
    """Raised when an encoded record does not match its declared width."""


class PersistenceError(BureauExportError):
    """Raised when a storage write fails during batch generation."""


class InvalidTransitionError(BureauExportError):
    """Raised when a batch state transition is not allowed."""


class BatchNotFoundError(BureauExportError):
    """Raised when a batch id does not exist."""


class BatchNotReadyError(BureauExportError):
    """Raised when content is requested for a batch that is not ready."""


class BatchConflictError(BureauExportError):
    """Raised when a month already has a generating or ready batch."""


class ChecksumMismatchError(BureauExportError):
    """Raised when regenerated content no longer matches the stored checksum."""


class ConsentNotFoundError(BureauExportError):
    """Raised when a hashed tenant reference has no consent record."""


@dataclass(frozen=True)
class FieldError:
    """A single field that could not be encoded without losing data."""
    field: str
    value: Any
    width: int
    reason: str

    @property
    def message(self) -> str:
        return f"Field {self.field} {self.reason} (width {self.width}): {self.value!r}"
