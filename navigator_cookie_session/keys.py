"""
Session Keys: Key material, key derivation and the rotation ring.

Every key carries a numeric id (uint16) that travels in the cookie, and
a purpose (signing or encryption). A KeyRing is an immutable ordered
collection: the last key is the active one used for new cookies, and
all keys remain candidates for decoding until they are retired.

Security Note:
    Never log key material. Only log key ids and purposes.
"""
import base64
import logging
import secrets
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .conf import KEY_LENGTH
from .exceptions import InvalidKeyError

logger = logging.getLogger("navigator.session.keys")

MAX_KEY_ID = 0xFFFF
SCRYPT_SALT = b"navigator-cookie-session-scrypt-salt"
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


class KeyPurpose(str, Enum):
    SIGNING = "signing"
    ENCRYPTION = "encryption"


def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte working key using HKDF-SHA256.

    Args:
        seed: Input key material (the configured secret).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def generate_key() -> str:
    """Generate a random 32-byte key and return it as a base64 string.

    This is a utility for operators provisioning ``SESSION_KEY_v{N}``.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


@dataclass(frozen=True)
class KeyMaterial:
    """A secret key tagged with its rotation id and purpose."""

    id: int
    secret: bytes = field(repr=False)
    purpose: KeyPurpose = KeyPurpose.SIGNING

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise InvalidKeyError(f"Key id must be an integer, got {type(self.id).__name__}")
        if not 0 <= self.id <= MAX_KEY_ID:
            raise InvalidKeyError(f"Key id {self.id} out of range (0..{MAX_KEY_ID})")
        if not isinstance(self.secret, (bytes, bytearray)):
            raise InvalidKeyError(f"Key v{self.id} secret must be bytes")
        if len(self.secret) != KEY_LENGTH:
            raise InvalidKeyError(
                f"Key v{self.id} must be exactly {KEY_LENGTH} bytes, "
                f"got {len(self.secret)}"
            )
        # normalize: bytearray is mutable
        object.__setattr__(self, "secret", bytes(self.secret))
        object.__setattr__(self, "purpose", KeyPurpose(self.purpose))

    @property
    def context(self) -> str:
        return f"navigator-cookie-session-{self.purpose.value}-v{self.id}"

    def working_key(self) -> bytes:
        """Key actually fed to HMAC / AEAD, bound to this id and purpose."""
        return derive_key(self.secret, self.context)

    @classmethod
    def from_base64(
        cls,
        key_id: int,
        value: Union[str, bytes],
        purpose: KeyPurpose = KeyPurpose.SIGNING
    ) -> "KeyMaterial":
        try:
            secret = base64.b64decode(value, validate=True)
        except ValueError as err:
            raise InvalidKeyError(f"Key v{key_id} is not valid base64") from err
        return cls(id=key_id, secret=secret, purpose=purpose)

    @classmethod
    def from_password(
        cls,
        password: Union[str, bytes],
        key_id: int,
        purpose: KeyPurpose = KeyPurpose.SIGNING
    ) -> "KeyMaterial":
        """Derive key material from a password with scrypt.

        scrypt is slow on purpose; call this once at application startup.
        """
        if isinstance(password, str):
            password = password.encode("utf-8")
        if not password:
            raise InvalidKeyError("Password cannot be empty")
        logger.info("Generating key material for key v%d. This may take some time.", key_id)
        kdf = Scrypt(
            salt=SCRYPT_SALT,
            length=KEY_LENGTH,
            n=SCRYPT_N,
            r=SCRYPT_R,
            p=SCRYPT_P,
        )
        secret = kdf.derive(password)
        logger.info("Key material generated for key v%d.", key_id)
        return cls(id=key_id, secret=secret, purpose=purpose)


class KeyRing:
    """Immutable, ordered set of keys sharing one purpose.

    Insertion order is rotation order: ``active()`` is the last key and
    ``candidates()`` lists every key newest first. Rotation never mutates
    a ring, ``rotate`` and ``retire`` return new rings.
    """

    __slots__ = ("_keys",)

    def __init__(self, keys: Iterable[KeyMaterial]) -> None:
        keys = tuple(keys)
        if not keys:
            raise InvalidKeyError("A key ring needs at least one key")
        for key in keys:
            if not isinstance(key, KeyMaterial):
                raise InvalidKeyError(
                    f"Key ring entries must be KeyMaterial, got {type(key).__name__}"
                )
        ids = [key.id for key in keys]
        if len(set(ids)) != len(ids):
            raise InvalidKeyError(f"Duplicated key ids in key ring: {ids}")
        purposes = {key.purpose for key in keys}
        if len(purposes) > 1:
            raise InvalidKeyError("All keys of a ring must share the same purpose")
        object.__setattr__(self, "_keys", keys)

    def __setattr__(self, name, value):
        raise AttributeError("KeyRing is immutable")

    def __repr__(self) -> str:
        return (
            f"<KeyRing purpose={self.purpose.value} "
            f"ids={[key.id for key in self._keys]} active={self.active().id}>"
        )

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[KeyMaterial]:
        return iter(self._keys)

    def __contains__(self, key_id: object) -> bool:
        return any(key.id == key_id for key in self._keys)

    @property
    def purpose(self) -> KeyPurpose:
        return self._keys[0].purpose

    @property
    def ids(self) -> list[int]:
        return [key.id for key in self._keys]

    def active(self) -> KeyMaterial:
        return self._keys[-1]

    def candidates(self) -> tuple[KeyMaterial, ...]:
        return self._keys[::-1]

    def get(self, key_id: int) -> Optional[KeyMaterial]:
        for key in self._keys:
            if key.id == key_id:
                return key
        return None

    def rotate(self, key: KeyMaterial) -> "KeyRing":
        """Return a new ring where ``key`` is the active key."""
        ring = KeyRing(self._keys + (key,))
        logger.info(
            "Key ring rotated: active key v%d (candidates: %s)",
            key.id, ring.ids,
        )
        return ring

    def retire(self, key_id: int) -> "KeyRing":
        """Return a new ring without the key ``key_id``."""
        if key_id not in self:
            raise KeyError(f"Key v{key_id} not found in key ring")
        remaining = tuple(key for key in self._keys if key.id != key_id)
        if not remaining:
            raise InvalidKeyError("Cannot retire the last key of a ring")
        logger.info("Key v%d retired from key ring", key_id)
        return KeyRing(remaining)
