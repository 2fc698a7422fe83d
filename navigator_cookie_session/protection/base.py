"""Shared contract of the protection strategies."""
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..conf import KEY_ID_SIZE
from ..exceptions import InvalidEncoding, InvalidKeyError
from ..keys import KeyPurpose, KeyRing

_KEY_ID = struct.Struct("!H")


def pack_key_id(key_id: int) -> bytes:
    return _KEY_ID.pack(key_id)


def unpack_key_id(raw: bytes) -> int:
    if len(raw) != KEY_ID_SIZE:
        raise InvalidEncoding()
    return _KEY_ID.unpack(raw)[0]


@dataclass(frozen=True)
class ProtectedPayload:
    """Byte-level output of a strategy, alive for a single encode/decode.

    ``data`` is the serialized payload (signed) or the ciphertext with its
    AEAD tag (encrypted); ``tag`` is only used in signed mode and ``nonce``
    only in encrypted mode.
    """

    key_id: int
    data: bytes = field(repr=False)
    tag: bytes = field(default=b"", repr=False)
    nonce: bytes = field(default=b"", repr=False)


class ProtectionStrategy(ABC):
    """Turns serialized bytes into a ``ProtectedPayload`` and back.

    A strategy is chosen once, when the codec is built. ``unprotect`` tries
    the ring candidates newest first and raises ``AuthenticationFailed``
    when none of them authenticates.
    """

    name: str = "base"
    purpose: KeyPurpose = KeyPurpose.SIGNING
    encrypted: bool = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mode={self.name}>"

    def check_ring(self, ring: KeyRing) -> None:
        if ring.purpose is not self.purpose:
            raise InvalidKeyError(
                f"{self.name} mode requires {self.purpose.value} keys, "
                f"got a {ring.purpose.value} key ring"
            )

    @abstractmethod
    def protect(self, ring: KeyRing, payload: bytes) -> ProtectedPayload:
        pass

    @abstractmethod
    def unprotect(self, ring: KeyRing, protected: ProtectedPayload) -> bytes:
        pass

    @abstractmethod
    def to_segments(self, protected: ProtectedPayload) -> tuple[bytes, bytes, bytes]:
        pass

    @abstractmethod
    def from_segments(self, segments: tuple[bytes, bytes, bytes]) -> ProtectedPayload:
        pass
