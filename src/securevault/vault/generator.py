"""Secret generation from configurable character-class pools.

Each position of a generated secret is an independent uniform draw from
the union of the enabled classes. There is no per-class quota: a 4-char
secret from upper+digits may well contain no digit at all. Callers that
need "at least one of each" must check and regenerate themselves.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidPolicy
from .random_source import RandomSource, get_random_source

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

DEFAULT_SECRET_LENGTH = 16
MAX_SECRET_LENGTH = 4096


@dataclass(frozen=True)
class GenerationPolicy:
    """Which character classes to draw from, and how many characters."""

    length: int = DEFAULT_SECRET_LENGTH
    use_upper: bool = True
    use_lower: bool = True
    use_digits: bool = True
    use_symbols: bool = True

    def validate(self) -> None:
        """Raise InvalidPolicy unless the policy can produce a secret."""
        if isinstance(self.length, bool) or not isinstance(self.length, int):
            raise InvalidPolicy("length must be an integer")
        if self.length <= 0:
            raise InvalidPolicy("length must be positive")
        if self.length > MAX_SECRET_LENGTH:
            raise InvalidPolicy(f"length must be at most {MAX_SECRET_LENGTH}")
        if not (self.use_upper or self.use_lower or self.use_digits or self.use_symbols):
            raise InvalidPolicy("at least one character class must be enabled")

    def pool(self) -> str:
        """Ordered, de-duplicated union of the enabled classes."""
        chars = ""
        if self.use_upper:
            chars += UPPERCASE
        if self.use_lower:
            chars += LOWERCASE
        if self.use_digits:
            chars += DIGITS
        if self.use_symbols:
            chars += SYMBOLS
        return "".join(dict.fromkeys(chars))


class SecretGenerator:
    """Builds secrets from a GenerationPolicy using a RandomSource."""

    def __init__(self, random_source: Optional[RandomSource] = None):
        self.random_source = random_source or get_random_source()

    def generate(self, policy: GenerationPolicy) -> str:
        # Validation happens before any randomness is drawn
        policy.validate()
        pool = policy.pool()
        size = len(pool)
        return "".join(
            pool[self.random_source.next_index(size)] for _ in range(policy.length)
        )

    @staticmethod
    def entropy_bits(policy: GenerationPolicy) -> float:
        """Entropy of a secret generated under ``policy``, in bits."""
        policy.validate()
        return policy.length * math.log2(len(policy.pool()))


def generate_secret(
    length: int = DEFAULT_SECRET_LENGTH,
    upper: bool = True,
    lower: bool = True,
    digits: bool = True,
    symbols: bool = True,
) -> str:
    # Simple helper to generate a secret with one call
    policy = GenerationPolicy(
        length=length,
        use_upper=upper,
        use_lower=lower,
        use_digits=digits,
        use_symbols=symbols,
    )
    return SecretGenerator().generate(policy)
