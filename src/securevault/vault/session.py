"""Reference session collaborator.

Holds the signed-in user id and the session MasterKey, and locks itself
after a period of inactivity. Locking wipes the key. Real deployments can
plug any IdentityProvider into the store; this one is enough for a local
single-user vault and for tests.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..core.event_log import EventType, get_event_logger
from ..errors import Unauthenticated
from .encryption import MasterKey
from .persistence import IdentityProvider

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_TIMEOUT = 900  # seconds


class VaultSession(IdentityProvider):
    """
    Single-user session with auto-lock.

    Stores:
    - current user_id
    - the session master key (wiped on lock)
    - last activity time and inactivity timeout
    """

    def __init__(
        self,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inactivity_timeout = inactivity_timeout
        self._clock = clock
        self._lock = threading.RLock()
        self._user_id: Optional[str] = None
        self._key: Optional[MasterKey] = None
        self._last_activity: Optional[float] = None

    def start(self, user_id: str, key: MasterKey) -> None:
        """Sign in ``user_id`` with the given session key."""
        if not user_id:
            raise ValueError("user_id must be non-empty")
        with self._lock:
            if self._key is not None and self._key is not key:
                self._key.wipe()
            self._user_id = user_id
            self._key = key
            self.touch()

    def lock(self) -> None:
        """End the session and wipe the key."""
        with self._lock:
            was_active = self._user_id is not None
            if self._key is not None:
                self._key.wipe()
            self._key = None
            self._user_id = None
            self._last_activity = None
        if was_active:
            get_event_logger().log_event(EventType.SESSION_LOCKED, "Session locked")

    def touch(self) -> None:
        with self._lock:
            self._last_activity = self._clock()

    def is_expired(self) -> bool:
        with self._lock:
            if self._last_activity is None:
                return True
            return (self._clock() - self._last_activity) > self.inactivity_timeout

    # ── IdentityProvider ──────────────────────────────────────────

    def is_authenticated(self) -> bool:
        with self._lock:
            if self._user_id is None:
                return False
            if self.is_expired():
                logger.info("Session expired after %ss of inactivity", self.inactivity_timeout)
                self.lock()
                return False
            return True

    def current_user_id(self) -> Optional[str]:
        with self._lock:
            if self.is_authenticated():
                return self._user_id
            return None

    @property
    def master_key(self) -> MasterKey:
        """The session key; raises Unauthenticated once locked or expired."""
        with self._lock:
            if not self.is_authenticated() or self._key is None:
                raise Unauthenticated("no active session")
            self.touch()
            return self._key
