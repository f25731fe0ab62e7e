"""
Shared pytest fixtures for the SecureVault test suite.

The autouse fixture below resets the global event logger so that each test
starts from a fresh VaultEventLogger and no state leaks between tests.
Key/backend/session fixtures build an authenticated vault for one user.
"""

import pytest

from securevault.vault.encryption import MasterKey
from securevault.vault.persistence import InMemoryBackend
from securevault.vault.session import VaultSession

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def _reset_event_logger():
    """Give every test a fresh global VaultEventLogger."""
    import securevault.core.event_log as event_mod

    old_logger = event_mod._event_logger
    event_mod._event_logger = None

    yield

    event_mod._event_logger = old_logger


@pytest.fixture
def master_key():
    key = MasterKey.generate()
    yield key
    key.wipe()


@pytest.fixture
def other_key():
    key = MasterKey.generate()
    yield key
    key.wipe()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def session(master_key):
    s = VaultSession(inactivity_timeout=60)
    s.start(USER_ID, master_key)
    return s
