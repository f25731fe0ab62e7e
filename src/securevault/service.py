# Vault Service - Session-bound facade over the vault engine
#
# Wires a VaultSession, a persistence backend and a CredentialStore
# together for a single local user:
#
#   unlock(user_id, key | passphrase) -> load records
#   add / update / remove credentials with the session key
#   reveal a secret on demand, search by category and text
#   lock() -> wipe the key, drop the in-memory records

import logging
from typing import List, Optional

from .config import VaultSettings, load_settings
from .core.event_log import configure_logging
from .vault.encryption import CipherEngine, MasterKey
from .vault.generator import GenerationPolicy, SecretGenerator
from .vault.models import CredentialRecord
from .vault.persistence import PersistenceBackend, SQLiteBackend
from .vault.query import QueryEngine
from .vault.session import VaultSession
from .vault.store import CredentialStore

logger = logging.getLogger(__name__)


class VaultService:
    """
    Manages one user's vault for the lifetime of a session.

    The service never persists the master key. It lives only inside the
    VaultSession and is wiped when the session locks or times out.
    """

    def __init__(
        self,
        settings: Optional[VaultSettings] = None,
        persistence: Optional[PersistenceBackend] = None,
        session: Optional[VaultSession] = None,
        generator: Optional[SecretGenerator] = None,
    ):
        self.settings = settings or load_settings()
        configure_logging(self.settings.log_level, self.settings.log_json)

        self.session = session or VaultSession(self.settings.session_timeout)
        self.persistence = persistence or SQLiteBackend(self.settings.db_path)
        self.generator = generator or SecretGenerator()
        self.store = CredentialStore(
            self.session,
            self.persistence,
            cipher=CipherEngine(self.generator.random_source),
            timeout=self.settings.persistence_timeout,
        )

    @property
    def is_unlocked(self) -> bool:
        return self.session.is_authenticated()

    async def unlock(self, user_id: str, key: MasterKey) -> List[CredentialRecord]:
        """Start a session with ``key`` and load the user's records."""
        self.session.start(user_id, key)
        records = await self.store.load()
        logger.info("Vault unlocked with %d record(s)", len(records))
        return records

    async def unlock_with_passphrase(
        self, user_id: str, passphrase: str, salt: bytes
    ) -> List[CredentialRecord]:
        """Derive the session key from a passphrase, then unlock."""
        key = MasterKey.derive(passphrase, salt, self.settings.kdf_iterations)
        return await self.unlock(user_id, key)

    def lock(self) -> None:
        """Wipe the session key and forget the loaded records."""
        self.session.lock()
        self.store.clear()

    def generate_secret(self, policy: Optional[GenerationPolicy] = None) -> str:
        return self.generator.generate(policy or self.settings.default_policy())

    async def add_credential(
        self,
        title: str,
        username: str,
        secret: Optional[str] = None,
        url: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
        policy: Optional[GenerationPolicy] = None,
    ) -> CredentialRecord:
        """Add a credential, generating the secret when none is given."""
        key = self.session.master_key
        if secret is None:
            secret = self.generate_secret(policy)
        return await self.store.add(
            title, username, secret, key, url=url, category=category, notes=notes
        )

    async def update_credential(self, record_id: str, **changes) -> CredentialRecord:
        key = self.session.master_key if changes.get("secret") is not None else None
        return await self.store.update(record_id, key, **changes)

    async def remove_credential(self, record_id: str) -> None:
        await self.store.remove(record_id)

    def reveal(self, record_id: str) -> str:
        """Decrypt one record's secret with the session key."""
        return self.store.reveal(record_id, self.session.master_key)

    def search(self, category: Optional[str] = None, search_term: str = "") -> List[CredentialRecord]:
        return self.store.query(category, search_term)

    def categories(self) -> List[str]:
        return QueryEngine.categories(self.store.records)
