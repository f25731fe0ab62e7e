# Core Module - Shared Utilities
#
# Core module provides shared functionality across SecureVault modules:
# - Structured event logging
# - SQLite connection helper

from .db import connect
from .event_log import (
    EventType,
    VaultEventLogger,
    configure_logging,
    configure_structlog,
    get_event_logger,
    scrub_secrets,
)

__all__ = [
    "connect",
    "EventType",
    "VaultEventLogger",
    "configure_logging",
    "configure_structlog",
    "get_event_logger",
    "scrub_secrets",
]
