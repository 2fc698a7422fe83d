"""
Signed mode: HMAC-SHA256 over the serialized session.

The payload stays readable in the cookie; only integrity is guaranteed.
The MAC input is ``[key_id 2B][payload]`` and the MAC key is derived per
key id, so a tag made by key N never validates as key M.

Cookie segments: ``payload . key_id . tag``.
"""
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from ..exceptions import AuthenticationFailed, InvalidKeyError
from ..keys import KeyMaterial, KeyPurpose, KeyRing
from .base import ProtectedPayload, ProtectionStrategy, pack_key_id, unpack_key_id

logger = logging.getLogger("navigator.session.signed")

TAG_SIZE = 32  # SHA-256 digest


class SignedStrategy(ProtectionStrategy):
    name = "signed"
    purpose = KeyPurpose.SIGNING
    encrypted = False

    def _hmac(self, key: KeyMaterial) -> hmac.HMAC:
        if key.purpose is not KeyPurpose.SIGNING:
            raise InvalidKeyError(f"Key v{key.id} is not a signing key")
        mac = hmac.HMAC(key.working_key(), hashes.SHA256())
        mac.update(pack_key_id(key.id))
        return mac

    def sign(self, key: KeyMaterial, payload: bytes) -> bytes:
        mac = self._hmac(key)
        mac.update(payload)
        return mac.finalize()

    def verify(self, key: KeyMaterial, payload: bytes, tag: bytes) -> bool:
        """Constant-time check of ``tag`` against ``payload``."""
        mac = self._hmac(key)
        mac.update(payload)
        try:
            mac.verify(tag)
        except InvalidSignature:
            return False
        return True

    def protect(self, ring: KeyRing, payload: bytes) -> ProtectedPayload:
        key = ring.active()
        return ProtectedPayload(
            key_id=key.id,
            data=payload,
            tag=self.sign(key, payload),
        )

    def unprotect(self, ring: KeyRing, protected: ProtectedPayload) -> bytes:
        for key in ring.candidates():
            if key.id != protected.key_id:
                continue
            if self.verify(key, protected.data, protected.tag):
                return protected.data
        logger.debug("No signing key validated cookie signed as v%d", protected.key_id)
        raise AuthenticationFailed()

    def to_segments(self, protected: ProtectedPayload) -> tuple[bytes, bytes, bytes]:
        return protected.data, pack_key_id(protected.key_id), protected.tag

    def from_segments(self, segments: tuple[bytes, bytes, bytes]) -> ProtectedPayload:
        payload, key_id, tag = segments
        return ProtectedPayload(
            key_id=unpack_key_id(key_id),
            data=payload,
            tag=tag,
        )
