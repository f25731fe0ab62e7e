"""Credential record schema and its persistence-boundary codec.

Records hold the secret only as a ciphertext blob. Plaintext fields
(title, username, url, category, notes) are stored as entered and are what
queries run against.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import RecordValidationError
from .encryption import CipherEngine

DEFAULT_CATEGORY = "Personal"


@dataclass(frozen=True)
class Category:
    """A sidebar category. Names form an open set; these are presets."""

    id: str
    name: str
    color: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color}


DEFAULT_CATEGORIES: List[Category] = [
    Category(id="personal", name="Personal", color="blue"),
    Category(id="work", name="Work", color="green"),
    Category(id="finance", name="Finance", color="purple"),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_category(category: Optional[str]) -> str:
    """Strip the category name, falling back to DEFAULT_CATEGORY when blank."""
    if category is None:
        return DEFAULT_CATEGORY
    name = str(category).strip()
    return name or DEFAULT_CATEGORY


def _parse_timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise RecordValidationError(f"{field_name} is not an ISO-8601 timestamp") from e
    else:
        raise RecordValidationError(f"{field_name} is required")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_text(data: Dict[str, Any], field_name: str) -> str:
    value = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise RecordValidationError(f"{field_name} must be a non-empty string")
    return value


def _optional_text(data: Dict[str, Any], field_name: str) -> Optional[str]:
    value = data.get(field_name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise RecordValidationError(f"{field_name} must be a string")
    return value


@dataclass(frozen=True)
class CredentialRecord:
    """One credential entry. The secret is only ever held as ciphertext."""

    id: str
    user_id: str
    title: str
    username: str
    secret_ciphertext: bytes = field(repr=False)
    category: str = DEFAULT_CATEGORY
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.id:
            raise RecordValidationError("id must be non-empty")
        if not self.title or not self.title.strip():
            raise RecordValidationError("title must be non-empty")
        if not self.secret_ciphertext:
            raise RecordValidationError("secret_ciphertext must be non-empty")
        if not self.category or not self.category.strip():
            raise RecordValidationError("category must be non-empty")
        if self.updated_at < self.created_at:
            raise RecordValidationError("updated_at precedes created_at")

    def to_dict(self) -> dict:
        """Serialize for a persistence backend (ciphertext as base64 text)."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "username": self.username,
            "secret_ciphertext": CipherEngine.encode_for_storage(self.secret_ciphertext),
            "url": self.url,
            "category": self.category,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(timespec="microseconds"),
            "updated_at": self.updated_at.isoformat(timespec="microseconds"),
        }

    def to_public_dict(self) -> dict:
        """Listing view without the ciphertext."""
        data = self.to_dict()
        del data["secret_ciphertext"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialRecord":
        """
        Build a record from backend data, validating required fields.

        Raises:
            RecordValidationError: missing or malformed field
        """
        if not isinstance(data, dict):
            raise RecordValidationError("record must be a mapping")

        raw_secret = data.get("secret_ciphertext")
        if isinstance(raw_secret, (bytes, bytearray)):
            secret = bytes(raw_secret)
        elif isinstance(raw_secret, str) and raw_secret:
            secret = CipherEngine.decode_from_storage(raw_secret)
        else:
            raise RecordValidationError("secret_ciphertext is required")

        username = data.get("username") or ""
        if not isinstance(username, str):
            raise RecordValidationError("username must be a string")

        return cls(
            id=_require_text(data, "id"),
            user_id=_require_text(data, "user_id"),
            title=_require_text(data, "title"),
            username=username,
            secret_ciphertext=secret,
            category=_require_text(data, "category"),
            url=_optional_text(data, "url"),
            notes=_optional_text(data, "notes"),
            created_at=_parse_timestamp(data.get("created_at"), "created_at"),
            updated_at=_parse_timestamp(data.get("updated_at"), "updated_at"),
        )
