# Vault - Random Source
#
# Process-wide cryptographically secure randomness for secret generation,
# nonces and salts. All bytes come from the OS CSPRNG (os.urandom); there
# is no fallback to the `random` module.
#
# next_index() uses rejection sampling: draw just enough bits to cover
# bound - 1, discard draws >= bound. Modulo reduction is never used.

import logging
import os
from typing import Callable, Optional

from ..errors import EntropyUnavailable

logger = logging.getLogger(__name__)


class RandomSource:
    """Unbiased index and byte generator backed by the OS CSPRNG.

    Holds no mutable state between calls, so a single instance can be
    shared across threads.
    """

    def __init__(self, entropy: Optional[Callable[[int], bytes]] = None):
        self._entropy = entropy or os.urandom

    def random_bytes(self, n: int) -> bytes:
        """Return ``n`` random bytes, or raise EntropyUnavailable."""
        if n < 0:
            raise ValueError("byte count must be non-negative")
        try:
            data = self._entropy(n)
        except (OSError, NotImplementedError) as e:
            logger.critical("OS entropy source unavailable: %s", e)
            raise EntropyUnavailable("OS random source failed") from e
        if len(data) != n:
            raise EntropyUnavailable(
                f"random source returned {len(data)} bytes, expected {n}"
            )
        return data

    def next_index(self, bound: int) -> int:
        """Return a uniformly distributed integer in ``[0, bound)``."""
        if isinstance(bound, bool) or not isinstance(bound, int):
            raise ValueError("bound must be an int")
        if bound <= 0:
            raise ValueError("bound must be positive")
        if bound == 1:
            return 0

        bits = (bound - 1).bit_length()
        nbytes = (bits + 7) // 8
        mask = (1 << bits) - 1
        while True:
            candidate = int.from_bytes(self.random_bytes(nbytes), "big") & mask
            if candidate < bound:
                return candidate


# Global instance
_random_source: Optional[RandomSource] = None


def get_random_source() -> RandomSource:
    """Get the process-wide random source (singleton pattern)."""
    global _random_source
    if _random_source is None:
        _random_source = RandomSource()
    return _random_source
