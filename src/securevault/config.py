"""Runtime settings for the vault, read from the environment.

A ``.env`` file in the working directory is honoured via python-dotenv;
variables already set in the process environment take precedence.

    SECUREVAULT_DB_PATH              SQLite file for the reference backend
    SECUREVAULT_PERSISTENCE_TIMEOUT  seconds allowed per backend call
    SECUREVAULT_KDF_ITERATIONS       PBKDF2 work factor
    SECUREVAULT_SESSION_TIMEOUT      inactivity auto-lock, seconds
    SECUREVAULT_DEFAULT_LENGTH       generated secret length
    SECUREVAULT_LOG_LEVEL            log level name
    SECUREVAULT_LOG_JSON             render logs as JSON lines
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .vault.encryption import PBKDF2_ITERATIONS
from .vault.generator import DEFAULT_SECRET_LENGTH, GenerationPolicy
from .vault.session import DEFAULT_INACTIVITY_TIMEOUT
from .vault.store import DEFAULT_PERSISTENCE_TIMEOUT

ENV_PREFIX = "SECUREVAULT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(ENV_PREFIX + name)
    return value.strip() if value is not None else None


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive")
    return value


def _as_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive")
    return value


def _as_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass
class VaultSettings:
    db_path: Path = Path("data/vault.db")
    persistence_timeout: float = DEFAULT_PERSISTENCE_TIMEOUT
    kdf_iterations: int = PBKDF2_ITERATIONS
    session_timeout: float = DEFAULT_INACTIVITY_TIMEOUT
    default_length: int = DEFAULT_SECRET_LENGTH
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "VaultSettings":
        """Build settings from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        log_level = (_get(env, "LOG_LEVEL") or "INFO").upper()
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"{ENV_PREFIX}LOG_LEVEL is not a log level: {log_level!r}")
        return cls(
            db_path=Path(_get(env, "DB_PATH") or cls.db_path),
            persistence_timeout=_as_float(env, "PERSISTENCE_TIMEOUT", DEFAULT_PERSISTENCE_TIMEOUT),
            kdf_iterations=_as_int(env, "KDF_ITERATIONS", PBKDF2_ITERATIONS),
            session_timeout=_as_float(env, "SESSION_TIMEOUT", DEFAULT_INACTIVITY_TIMEOUT),
            default_length=_as_int(env, "DEFAULT_LENGTH", DEFAULT_SECRET_LENGTH),
            log_level=log_level,
            log_json=_as_bool(env, "LOG_JSON", False),
        )

    def default_policy(self) -> GenerationPolicy:
        """Generation policy with all classes on and the configured length."""
        return GenerationPolicy(length=self.default_length)


def load_settings(dotenv_path: Optional[Path] = None) -> VaultSettings:
    """Load ``.env`` (without overriding the environment) and read settings."""
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return VaultSettings.from_env()
