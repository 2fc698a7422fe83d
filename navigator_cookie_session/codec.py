"""
Session Codec: SessionData to a cookie value and back.

encode: serialize -> protect (active key) -> text-encode each segment.
decode: text-decode -> unprotect (every candidate key) -> check expiry
-> deserialize. Nothing inside the payload is read before it has been
authenticated, and every failure is a ``SessionRejected``.

The codec is stateless: the only shared state is the key ring reference,
which is swapped as a whole by ``replace_key_ring`` and read once per call.
"""
import logging
from datetime import datetime
from typing import Any, Optional
from collections.abc import Mapping

from .data import SessionData, as_utc
from .encoding import Base64UrlEncoding, TextEncoding, get_text_encoding
from .exceptions import Expired, InvalidEncoding, SessionRejected
from .keys import KeyRing
from .protection import EncryptedStrategy, ProtectionStrategy, SignedStrategy
from .serializers import OrjsonSerializer, SessionSerializer, get_serializer

logger = logging.getLogger("navigator.session.codec")

SEGMENT_SEPARATOR = "."
SEGMENT_COUNT = 3


class SessionCodec:
    """Binds a serializer, a protection strategy and a text encoding.

    Args:
        strategy: ``SignedStrategy`` or ``EncryptedStrategy``.
        key_ring: Keys matching the strategy purpose.
        serializer: Binary session format (orjson frame by default).
        text_encoding: Cookie alphabet (unpadded base64url by default).
    """

    def __init__(
        self,
        strategy: ProtectionStrategy,
        key_ring: KeyRing,
        serializer: Optional[SessionSerializer] = None,
        text_encoding: Optional[TextEncoding] = None,
    ) -> None:
        strategy.check_ring(key_ring)
        self._strategy = strategy
        self._ring = key_ring
        self._serializer = serializer or OrjsonSerializer()
        self._text = text_encoding or Base64UrlEncoding()
        logger.debug(
            "Session codec ready: mode=%s serializer=%s encoding=%s keys=%s",
            strategy.name, self._serializer.name, self._text.name, key_ring.ids,
        )

    def __repr__(self) -> str:
        return (
            f"<SessionCodec mode={self.mode} serializer={self._serializer.name} "
            f"encoding={self._text.name} active_key={self._ring.active().id}>"
        )

    @classmethod
    def signed(cls, key_ring: KeyRing, **kwargs) -> "SessionCodec":
        return cls(SignedStrategy(), key_ring, **kwargs)

    @classmethod
    def encrypted(cls, key_ring: KeyRing, cipher_backend: str = "aesgcm", **kwargs) -> "SessionCodec":
        return cls(EncryptedStrategy(cipher_backend), key_ring, **kwargs)

    @classmethod
    def from_config(cls, config: Any) -> "SessionCodec":
        """Build a codec from a ``SessionConfig``."""
        if config.mode == "encrypted":
            strategy: ProtectionStrategy = EncryptedStrategy(config.cipher_backend)
        else:
            strategy = SignedStrategy()
        return cls(
            strategy,
            config.key_ring(),
            serializer=get_serializer(config.serializer),
            text_encoding=get_text_encoding(config.text_encoding),
        )

    # --- Properties ---

    @property
    def mode(self) -> str:
        return self._strategy.name

    @property
    def is_encrypted(self) -> bool:
        return self._strategy.encrypted

    @property
    def key_ring(self) -> KeyRing:
        return self._ring

    def replace_key_ring(self, key_ring: KeyRing) -> None:
        """Publish a new key ring; in-flight calls keep the ring they started with."""
        self._strategy.check_ring(key_ring)
        self._ring = key_ring
        logger.info(
            "Session key ring replaced: active key v%d, candidates %s",
            key_ring.active().id, key_ring.ids,
        )

    # --- Operations ---

    def new_session(
        self,
        now: datetime,
        max_age: int,
        data: Optional[Mapping[str, Any]] = None,
        identity: Optional[Any] = None,
    ) -> SessionData:
        return SessionData.create(
            now, max_age, data=data, identity=identity,
            carry=self._serializer.can_carry,
        )

    def encode(self, session: SessionData) -> str:
        if not isinstance(session, SessionData):
            raise TypeError(f"Expected SessionData, got {type(session).__name__}")
        ring = self._ring
        payload = self._serializer.dumps(session)
        protected = self._strategy.protect(ring, payload)
        return SEGMENT_SEPARATOR.join(
            self._text.encode(segment)
            for segment in self._strategy.to_segments(protected)
        )

    def decode(self, value: str, now: datetime) -> SessionData:
        """Decode a cookie value, validating it at time ``now``.

        Raises:
            InvalidEncoding: wrong segment count or alphabet.
            AuthenticationFailed: no candidate key authenticates the cookie.
            Expired: authenticated, but ``now`` is past ``expires_at``.
            MalformedPayload: authenticated and fresh, but not a session frame.
        """
        ring = self._ring
        try:
            if not isinstance(value, str):
                raise InvalidEncoding()
            parts = value.split(SEGMENT_SEPARATOR)
            if len(parts) != SEGMENT_COUNT:
                raise InvalidEncoding()
            segments = tuple(self._text.decode(part) for part in parts)
            protected = self._strategy.from_segments(segments)
            payload = self._strategy.unprotect(ring, protected)
            expires_at = self._serializer.read_expiry(payload)
            if as_utc(now) > expires_at:
                raise Expired()
            return self._serializer.loads(payload)
        except SessionRejected as err:
            logger.debug("Session cookie rejected: %s", err.reason.value)
            raise

    def renew(self, session: SessionData, now: datetime, max_age: int) -> str:
        """Extend ``session`` to ``now + max_age`` and return the new cookie value."""
        session.renew(now, max_age)
        return self.encode(session)
