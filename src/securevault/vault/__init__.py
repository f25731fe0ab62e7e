# Vault Module - Secret Protection and Retrieval Engine
#
# AES-256-GCM sealed secrets under a caller-supplied master key,
# CSPRNG-backed secret generation, and an in-memory credential store
# with category/text queries over plaintext fields.

from .encryption import CipherEngine, MasterKey
from .generator import GenerationPolicy, SecretGenerator, generate_secret
from .models import DEFAULT_CATEGORIES, DEFAULT_CATEGORY, Category, CredentialRecord
from .persistence import (
    IdentityProvider,
    InMemoryBackend,
    PersistenceBackend,
    SQLiteBackend,
)
from .query import QueryEngine
from .random_source import RandomSource, get_random_source
from .session import VaultSession
from .store import CredentialStore

__all__ = [
    "CipherEngine",
    "MasterKey",
    "GenerationPolicy",
    "SecretGenerator",
    "generate_secret",
    "Category",
    "CredentialRecord",
    "DEFAULT_CATEGORIES",
    "DEFAULT_CATEGORY",
    "IdentityProvider",
    "PersistenceBackend",
    "InMemoryBackend",
    "SQLiteBackend",
    "QueryEngine",
    "RandomSource",
    "get_random_source",
    "VaultSession",
    "CredentialStore",
]
