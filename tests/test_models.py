"""Tests for CredentialRecord and its persistence-boundary validation."""

from datetime import datetime, timedelta, timezone

import pytest

from securevault.errors import RecordValidationError
from securevault.vault.encryption import CipherEngine
from securevault.vault.models import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY,
    CredentialRecord,
    normalize_category,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(**overrides):
    fields = dict(
        id="rec-1",
        user_id="user-1",
        title="GitHub",
        username="alice",
        secret_ciphertext=b"\x01sealed-bytes",
        category="Work",
        url="https://github.com",
        created_at=T0,
        updated_at=T0,
    )
    fields.update(overrides)
    return CredentialRecord(**fields)


def _stored(**overrides):
    data = _record().to_dict()
    data.update(overrides)
    return data


class TestCredentialRecord:

    def test_to_dict_encodes_ciphertext(self):
        data = _record().to_dict()
        assert data["secret_ciphertext"] == CipherEngine.encode_for_storage(b"\x01sealed-bytes")
        assert data["created_at"] == "2024-05-01T12:00:00.000000+00:00"
        assert data["notes"] is None

    def test_from_dict_restores_record(self):
        assert CredentialRecord.from_dict(_record().to_dict()) == _record()

    def test_public_dict_has_no_ciphertext(self):
        assert "secret_ciphertext" not in _record().to_public_dict()

    def test_repr_has_no_ciphertext(self):
        assert "sealed-bytes" not in repr(_record())

    def test_is_immutable(self):
        record = _record()
        with pytest.raises(AttributeError):
            record.title = "other"

    @pytest.mark.parametrize("field,value", [
        ("id", ""),
        ("title", "  "),
        ("secret_ciphertext", b""),
        ("category", ""),
    ])
    def test_required_fields(self, field, value):
        with pytest.raises(RecordValidationError):
            _record(**{field: value})

    def test_updated_before_created(self):
        with pytest.raises(RecordValidationError):
            _record(updated_at=T0 - timedelta(seconds=1))


class TestFromDictValidation:

    @pytest.mark.parametrize("field", ["id", "user_id", "title", "secret_ciphertext", "category", "created_at"])
    def test_missing_required_field(self, field):
        data = _stored()
        del data[field]
        with pytest.raises(RecordValidationError):
            CredentialRecord.from_dict(data)

    def test_not_a_mapping(self):
        with pytest.raises(RecordValidationError):
            CredentialRecord.from_dict(["rec-1"])

    def test_bad_base64(self):
        with pytest.raises(RecordValidationError):
            CredentialRecord.from_dict(_stored(secret_ciphertext="%%%"))

    def test_bad_timestamp(self):
        with pytest.raises(RecordValidationError):
            CredentialRecord.from_dict(_stored(created_at="yesterday"))

    def test_naive_timestamp_is_utc(self):
        record = CredentialRecord.from_dict(
            _stored(created_at="2024-05-01T12:00:00", updated_at="2024-05-01T12:00:00Z")
        )
        assert record.created_at == T0
        assert record.updated_at == T0

    def test_raw_bytes_ciphertext_accepted(self):
        record = CredentialRecord.from_dict(_stored(secret_ciphertext=b"\x01raw"))
        assert record.secret_ciphertext == b"\x01raw"

    def test_optional_fields_default(self):
        data = _stored()
        for optional in ("url", "notes", "username"):
            data.pop(optional)
        record = CredentialRecord.from_dict(data)
        assert record.url is None
        assert record.notes is None
        assert record.username == ""

    def test_non_string_url(self):
        with pytest.raises(RecordValidationError):
            CredentialRecord.from_dict(_stored(url=42))


class TestCategories:

    @pytest.mark.parametrize("value,expected", [
        (None, DEFAULT_CATEGORY),
        ("", DEFAULT_CATEGORY),
        ("   ", DEFAULT_CATEGORY),
        (" Work ", "Work"),
        ("Gaming", "Gaming"),
    ])
    def test_normalize(self, value, expected):
        assert normalize_category(value) == expected

    def test_default_presets(self):
        assert [c.name for c in DEFAULT_CATEGORIES] == ["Personal", "Work", "Finance"]
        assert DEFAULT_CATEGORIES[0].to_dict() == {"id": "personal", "name": "Personal", "color": "blue"}
