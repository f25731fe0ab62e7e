# SecureVault - Main Package
#
# Personal credential vault core: encrypted secrets, secret generation,
# and category/text search over a session-scoped credential store.

__version__ = "0.1.0"
__author__ = "SecureVault Team"
__description__ = "Secret-protection and retrieval engine for a personal credential vault"

from .errors import (
    AuthenticationFailure,
    EntropyUnavailable,
    InvalidPolicy,
    KeyUnavailable,
    PersistenceUnavailable,
    RecordNotFound,
    RecordValidationError,
    Unauthenticated,
    VaultError,
)
from .service import VaultService
from .vault import (
    CipherEngine,
    CredentialRecord,
    CredentialStore,
    GenerationPolicy,
    MasterKey,
    QueryEngine,
    SecretGenerator,
)

__all__ = [
    "__version__",
    "VaultError",
    "InvalidPolicy",
    "EntropyUnavailable",
    "AuthenticationFailure",
    "KeyUnavailable",
    "PersistenceUnavailable",
    "Unauthenticated",
    "RecordValidationError",
    "RecordNotFound",
    "VaultService",
    "CipherEngine",
    "CredentialRecord",
    "CredentialStore",
    "GenerationPolicy",
    "MasterKey",
    "QueryEngine",
    "SecretGenerator",
]
