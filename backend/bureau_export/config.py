"""
Bureau Export Engine - Configuration

Settings are read once from the environment and passed explicitly to the
services that need them. No service reads process-wide state on its own.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the export engine."""

    database_url: str = "sqlite:///./bureau_export.db"
    hash_secret: str = ""
    org_id: str = "RENTLEDGER"
    org_name: str = "RentLedger Ltd"
    file_prefix: str = "rent-ledger-export"
    file_sequence: int = 1
    jwt_secret_key: Optional[str] = None
    internal_api_key: Optional[str] = None
    log_level: str = "INFO"

    def require_hash_secret(self) -> str:
        """Return the hashing secret, failing hard when it is absent."""
        if not self.hash_secret:
            raise ConfigurationError(
                "REPORTING_HASH_SECRET is not set; refusing to pseudonymize identifiers"
            )
        return self.hash_secret

    def validate(self) -> "Settings":
        """Check the settings the application cannot start without."""
        self.require_hash_secret()
        if not self.org_id:
            raise ConfigurationError("REPORTING_ORG_ID must not be empty")
        if self.file_sequence < 0:
            raise ConfigurationError("REPORTING_FILE_SEQUENCE must be >= 0")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        try:
            file_sequence = int(os.getenv("REPORTING_FILE_SEQUENCE", "1"))
        except ValueError as exc:
            raise ConfigurationError("REPORTING_FILE_SEQUENCE must be an integer") from exc

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./bureau_export.db"),
            hash_secret=os.getenv("REPORTING_HASH_SECRET", ""),
            org_id=os.getenv("REPORTING_ORG_ID", "RENTLEDGER"),
            org_name=os.getenv("REPORTING_ORG_NAME", "RentLedger Ltd"),
            file_prefix=os.getenv("REPORTING_FILE_PREFIX", "rent-ledger-export"),
            file_sequence=file_sequence,
            jwt_secret_key=os.getenv("JWT_SECRET_KEY") or None,
            internal_api_key=os.getenv("INTERNAL_API_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Dependency for FastAPI - validated settings, built once per process."""
    return Settings.from_env().validate()
