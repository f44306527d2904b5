"""
Identifier Hasher

Keyed, one-way pseudonyms for internal identifiers. The same raw id always
maps to the same reference; without the secret the mapping cannot be
reversed or recomputed.
"""
import hashlib
import hmac

from ...config import Settings
from ...exceptions import ConfigurationError


class IdentifierHasher:
    """HMAC-SHA256 pseudonymizer. There is no default secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("Identifier hashing secret is missing")
        self._key = secret.encode("utf-8")

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentifierHasher":
        return cls(settings.require_hash_secret())

    def hash(self, raw_id) -> str:
        """Return the 64-char hex pseudonym for raw_id."""
        if raw_id is None or str(raw_id) == "":
            raise ValueError("Cannot hash an empty identifier")
        return hmac.new(self._key, str(raw_id).encode("utf-8"), hashlib.sha256).hexdigest()
