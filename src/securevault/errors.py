"""Error taxonomy for the vault core.

Every failure the engine can surface derives from ``VaultError`` so callers
can catch the whole family at their boundary, or a single member when they
want to react to it (prompt for another key, retry the backend, re-login).
"""


class VaultError(Exception):
    """Base exception for the vault core."""


class InvalidPolicy(VaultError, ValueError):
    """Raised when a generation policy has no character class or a bad length."""


class EntropyUnavailable(VaultError):
    """Raised when the OS random source cannot produce bytes."""


class AuthenticationFailure(VaultError):
    """Raised when a ciphertext blob fails integrity verification."""


class KeyUnavailable(VaultError):
    """Raised when a master key has been wiped or is malformed."""


class PersistenceUnavailable(VaultError):
    """Raised when the persistence collaborator fails or times out."""


class Unauthenticated(VaultError):
    """Raised when there is no valid session for the operation."""


class RecordValidationError(VaultError, ValueError):
    """Raised when a record is malformed at the persistence boundary."""


class RecordNotFound(VaultError, KeyError):
    """Raised when a record id is not present in the store."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable
        return str(self.args[0]) if self.args else ""
