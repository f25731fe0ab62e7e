# Vault - Encryption Service
#
# Caller-supplied master key -> AES-256-GCM per secret
# Fresh random nonce per encryption, bundled into the blob
# Optional PBKDF2 key derivation from a passphrase
#
# Blob layout (bytes):
#   [0]      format version (0x01)
#   [1:13]   96-bit GCM nonce
#   [13:]    ciphertext || 128-bit authentication tag

import base64
import binascii
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import AuthenticationFailure, KeyUnavailable, RecordValidationError
from .random_source import RandomSource, get_random_source

logger = logging.getLogger(__name__)

BLOB_VERSION = 0x01
KEY_LENGTH = 32  # 256 bits for AES-256
NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
TAG_LENGTH = 16
SALT_LENGTH = 32
PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256

_HEADER_LENGTH = 1 + NONCE_LENGTH
_MIN_BLOB_LENGTH = _HEADER_LENGTH + TAG_LENGTH

AssociatedData = Optional[Union[str, bytes]]


class MasterKey:
    """
    Session-scoped key material under which every secret is encrypted.

    The key lives in a mutable buffer so ``wipe()`` can zero it. The vault
    engine never stores a MasterKey; whoever owns the session creates it,
    passes it into each call, and wipes it on lock/logout.

    Usage:
        with MasterKey.derive(passphrase, salt) as key:
            blob = engine.encrypt("hunter2", key)
    """

    def __init__(self, key_material: Union[bytes, bytearray]):
        if len(key_material) != KEY_LENGTH:
            raise KeyUnavailable(f"master key must be {KEY_LENGTH} bytes")
        self._buffer = bytearray(key_material)
        self._wiped = False

    @classmethod
    def generate(cls, random_source: Optional[RandomSource] = None) -> "MasterKey":
        """Create a fresh random 256-bit key."""
        source = random_source or get_random_source()
        return cls(source.random_bytes(KEY_LENGTH))

    @classmethod
    def derive(
        cls,
        passphrase: str,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> "MasterKey":
        """
        Derive a key from a passphrase using PBKDF2-HMAC-SHA256.

        Args:
            passphrase: User's master passphrase
            salt: Random salt (stored by the caller alongside the vault)
            iterations: PBKDF2 work factor

        Returns:
            MasterKey wrapping the derived 256-bit key
        """
        if iterations < 1:
            raise ValueError("iterations must be positive")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return cls(kdf.derive(passphrase.encode("utf-8")))

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def material(self) -> bytes:
        """Transient copy of the key bytes for a single cipher call."""
        if self._wiped:
            raise KeyUnavailable("master key has been wiped")
        return bytes(self._buffer)

    def wipe(self) -> None:
        """Overwrite the key buffer with zeros. Idempotent."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    def __enter__(self) -> "MasterKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{KEY_LENGTH * 8}-bit"
        return f"<MasterKey {state}>"

    def __reduce__(self):
        raise TypeError("MasterKey cannot be pickled")


def _as_bytes(associated_data: AssociatedData) -> Optional[bytes]:
    if associated_data is None:
        return None
    if isinstance(associated_data, str):
        return associated_data.encode("utf-8")
    return bytes(associated_data)


class CipherEngine:
    """
    Authenticated encryption for vault secrets.

    Flow:
    1. Caller hands in plaintext and the session MasterKey
    2. A fresh 96-bit nonce is drawn from the RandomSource
    3. AES-256-GCM encrypts and tags the plaintext
    4. version || nonce || ciphertext+tag is returned as one blob

    Decryption either returns the verified plaintext or raises
    AuthenticationFailure. It never returns partial or garbage output.
    """

    def __init__(self, random_source: Optional[RandomSource] = None):
        self.random_source = random_source or get_random_source()

    def encrypt(
        self,
        plaintext: str,
        key: MasterKey,
        associated_data: AssociatedData = None,
    ) -> bytes:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Secret to encrypt
            key: Session master key
            associated_data: Optional context bound to the blob (e.g. record
                id); the same value must be supplied to decrypt

        Returns:
            Self-contained ciphertext blob
        """
        if not isinstance(plaintext, str):
            raise TypeError("plaintext must be a str")
        nonce = self.random_source.random_bytes(NONCE_LENGTH)
        aesgcm = AESGCM(key.material())
        sealed = aesgcm.encrypt(
            nonce, plaintext.encode("utf-8"), _as_bytes(associated_data)
        )
        return bytes([BLOB_VERSION]) + nonce + sealed

    def decrypt(
        self,
        blob: bytes,
        key: MasterKey,
        associated_data: AssociatedData = None,
    ) -> str:
        """
        Decrypt a blob produced by ``encrypt``.

        Raises:
            AuthenticationFailure: tampered, truncated or corrupt blob, wrong
                key, or mismatched associated data
            KeyUnavailable: the key has been wiped
        """
        if not isinstance(blob, (bytes, bytearray)) or len(blob) < _MIN_BLOB_LENGTH:
            raise AuthenticationFailure("ciphertext blob is truncated or malformed")
        if blob[0] != BLOB_VERSION:
            raise AuthenticationFailure(f"unsupported blob version {blob[0]}")

        nonce = bytes(blob[1:_HEADER_LENGTH])
        sealed = bytes(blob[_HEADER_LENGTH:])
        aesgcm = AESGCM(key.material())
        try:
            plaintext_bytes = aesgcm.decrypt(nonce, sealed, _as_bytes(associated_data))
        except InvalidTag as e:
            # Wrong key, tampering and corruption all land here
            logger.warning("Ciphertext failed integrity verification")
            raise AuthenticationFailure("ciphertext failed integrity verification") from e

        try:
            return plaintext_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AuthenticationFailure("decrypted payload is not valid UTF-8") from e

    @staticmethod
    def generate_salt(random_source: Optional[RandomSource] = None) -> bytes:
        """Generate cryptographically random salt for key derivation."""
        source = random_source or get_random_source()
        return source.random_bytes(SALT_LENGTH)

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """
        Encode binary data for storage (base64).

        Persistence backends store TEXT, so ciphertext blobs cross the
        boundary base64-encoded.
        """
        return base64.b64encode(data).decode("ascii")

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64-encoded data from storage."""
        try:
            return base64.b64decode(data.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
            raise RecordValidationError("stored ciphertext is not valid base64") from e
