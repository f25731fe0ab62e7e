# Core - Structured Vault Event Logging
#
# Operational logging for vault activity (records added, revealed, failed
# decrypts, backend outages). Events are rendered by structlog on top of the
# stdlib logging tree under the "securevault" logger.
#
# Secret material must never reach a log line: every event passes through
# scrub_secrets(), which redacts fields whose names look like secrets.

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import structlog

ROOT_LOGGER_NAME = "securevault"

# Field names containing any of these are redacted before rendering
SENSITIVE_FIELDS = (
    "password",
    "secret",
    "plaintext",
    "ciphertext",
    "passphrase",
    "key",
)

REDACTED = "[REDACTED]"


class EventType(str, Enum):
    """Types of vault events that can be logged."""

    STORE_LOADED = "vault.store.loaded"
    RECORD_ADDED = "vault.record.added"
    RECORD_UPDATED = "vault.record.updated"
    RECORD_REMOVED = "vault.record.removed"
    RECORD_REVEALED = "vault.record.revealed"
    DECRYPT_FAILED = "vault.decrypt.failed"
    PERSISTENCE_FAILED = "vault.persistence.failed"
    SESSION_LOCKED = "vault.session.locked"


def scrub_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that redacts secret-looking fields."""
    for name in list(event_dict.keys()):
        if name == "event":
            continue
        lowered = name.lower()
        if any(marker in lowered for marker in SENSITIVE_FIELDS):
            event_dict[name] = REDACTED
    return event_dict


def configure_structlog(json_output: bool = False) -> None:
    """Install the structlog processor chain, scrubbing included.

    Attaches no handlers: output goes wherever the stdlib ``securevault``
    logger is routed by the host application.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            scrub_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_dir: Optional[Path] = None,
) -> None:
    """Configure structlog and the ``securevault`` stdlib logger.

    Safe to call repeatedly: the stream handler and each daily file
    handler are attached at most once.

    Args:
        level: Log level name for the securevault logger tree.
        json_output: Render events as JSON lines instead of console text.
        log_dir: If given, also append to a daily file in this directory.
    """
    configure_structlog(json_output)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(
        getattr(h, "_securevault", False) and not isinstance(h, logging.FileHandler)
        for h in root.handlers
    ):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        stream_handler._securevault = True
        root.addHandler(stream_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = (log_dir / f"vault_{today}.log").resolve()
        if any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_file
            for h in root.handlers
        ):
            return
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        # structlog handles formatting
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        file_handler._securevault = True
        root.addHandler(file_handler)


class VaultEventLogger:
    """
    Structured logger for vault events.

    Each call emits one ``vault_event`` entry carrying the event type and
    the supplied details. Details are scrubbed of secret-looking fields, but
    callers should still only pass identifiers and metadata (record id,
    category, counts), never key or secret values.
    """

    def __init__(self, name: str = f"{ROOT_LOGGER_NAME}.events"):
        if not structlog.is_configured():
            configure_structlog()
        self.logger = structlog.get_logger(name)

    def log_event(
        self,
        event_type: EventType,
        message: str,
        level: str = "info",
        **details: Any,
    ) -> Dict[str, Any]:
        """
        Log a vault event.

        Args:
            event_type: Type of event (from EventType enum)
            message: Human-readable description
            level: stdlib level name used to emit the event
            **details: Additional metadata (ids, counts, category)

        Returns:
            The event fields as emitted (before rendering).
        """
        event_data = {
            "event_type": event_type.value,
            "message": message,
            **details,
        }
        emit = getattr(self.logger, level, self.logger.info)
        emit("vault_event", **event_data)
        return event_data


# Global logger instance
_event_logger: Optional[VaultEventLogger] = None


def get_event_logger() -> VaultEventLogger:
    """Get global vault event logger (singleton pattern)."""
    global _event_logger
    if _event_logger is None:
        _event_logger = VaultEventLogger()
    return _event_logger
