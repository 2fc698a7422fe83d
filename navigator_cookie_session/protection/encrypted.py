"""
Encrypted mode: AEAD over the serialized session.

AES-256-GCM by default, ChaCha20-Poly1305 on request. Every ``seal`` draws
a fresh random 96-bit nonce; no public API accepts a nonce from a caller.
The associated data binds the key id, so swapping the key-id segment or
moving a ciphertext to another key fails authentication.

Cookie segments: ``key_id . nonce . ciphertext+tag``.

Security Note:
    Never log plaintext or ciphertext values.
"""
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import AuthenticationFailed, InvalidKeyError, RandomSourceError
from ..keys import KeyMaterial, KeyPurpose, KeyRing
from .base import ProtectedPayload, ProtectionStrategy, pack_key_id, unpack_key_id

logger = logging.getLogger("navigator.session.encrypted")

NONCE_SIZE = 12  # 96-bit nonce
AEAD_TAG_SIZE = 16
AAD_PREFIX = b"navigator-cookie-session"

CIPHER_BACKENDS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def random_nonce() -> bytes:
    try:
        return os.urandom(NONCE_SIZE)
    except (NotImplementedError, OSError) as err:
        logger.error("Failed to get random bytes for a session nonce")
        raise RandomSourceError("Random source unavailable") from err


class EncryptedStrategy(ProtectionStrategy):
    name = "encrypted"
    purpose = KeyPurpose.ENCRYPTION
    encrypted = True

    def __init__(self, cipher_backend: str = "aesgcm") -> None:
        try:
            self._cipher_cls = CIPHER_BACKENDS[cipher_backend]
        except KeyError:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}") from None
        self.cipher_backend = cipher_backend

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mode={self.name} cipher={self.cipher_backend}>"

    def _cipher(self, key: KeyMaterial):
        if key.purpose is not KeyPurpose.ENCRYPTION:
            raise InvalidKeyError(f"Key v{key.id} is not an encryption key")
        return self._cipher_cls(key.working_key())

    @staticmethod
    def associated_data(key_id: int) -> bytes:
        return AAD_PREFIX + pack_key_id(key_id)

    def seal(self, key: KeyMaterial, payload: bytes) -> tuple[bytes, bytes]:
        """Encrypt ``payload`` under ``key`` with a fresh nonce.

        Returns:
            Tuple of (nonce, ciphertext with the AEAD tag appended).
        """
        cipher = self._cipher(key)
        nonce = random_nonce()
        ciphertext = cipher.encrypt(nonce, payload, self.associated_data(key.id))
        return nonce, ciphertext

    def open(self, key: KeyMaterial, nonce: bytes, ciphertext: bytes) -> bytes:
        """Decrypt and authenticate, raising ``AuthenticationFailed`` on any mismatch."""
        cipher = self._cipher(key)
        if len(nonce) != NONCE_SIZE or len(ciphertext) < AEAD_TAG_SIZE:
            raise AuthenticationFailed()
        try:
            return cipher.decrypt(nonce, ciphertext, self.associated_data(key.id))
        except InvalidTag as err:
            raise AuthenticationFailed() from err

    def protect(self, ring: KeyRing, payload: bytes) -> ProtectedPayload:
        key = ring.active()
        nonce, ciphertext = self.seal(key, payload)
        return ProtectedPayload(key_id=key.id, data=ciphertext, nonce=nonce)

    def unprotect(self, ring: KeyRing, protected: ProtectedPayload) -> bytes:
        for key in ring.candidates():
            if key.id != protected.key_id:
                continue
            try:
                return self.open(key, protected.nonce, protected.data)
            except AuthenticationFailed:
                continue
        logger.debug("No encryption key opened cookie sealed as v%d", protected.key_id)
        raise AuthenticationFailed()

    def to_segments(self, protected: ProtectedPayload) -> tuple[bytes, bytes, bytes]:
        return pack_key_id(protected.key_id), protected.nonce, protected.data

    def from_segments(self, segments: tuple[bytes, bytes, bytes]) -> ProtectedPayload:
        key_id, nonce, ciphertext = segments
        return ProtectedPayload(
            key_id=unpack_key_id(key_id),
            data=ciphertext,
            nonce=nonce,
        )
