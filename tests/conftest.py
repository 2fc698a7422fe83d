import pytest
from datetime import datetime, timezone

from navigator_cookie_session.keys import KeyMaterial, KeyPurpose, KeyRing
from navigator_cookie_session.codec import SessionCodec


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _key(purpose: KeyPurpose):
    def factory(key_id: int = 1, fill: int = 0) -> KeyMaterial:
        return KeyMaterial(id=key_id, secret=bytes([fill]) * 32, purpose=purpose)
    return factory


@pytest.fixture
def now():
    return T0


@pytest.fixture
def signing_key():
    """Factory of signing keys: ``signing_key(key_id, fill_byte)``."""
    return _key(KeyPurpose.SIGNING)


@pytest.fixture
def encryption_key():
    """Factory of encryption keys: ``encryption_key(key_id, fill_byte)``."""
    return _key(KeyPurpose.ENCRYPTION)


@pytest.fixture
def signing_ring(signing_key):
    return KeyRing([signing_key(1)])


@pytest.fixture
def encryption_ring(encryption_key):
    return KeyRing([encryption_key(1)])


@pytest.fixture
def signed_codec(signing_ring):
    return SessionCodec.signed(signing_ring)


@pytest.fixture
def encrypted_codec(encryption_ring):
    return SessionCodec.encrypted(encryption_ring)


@pytest.fixture(params=["signed", "encrypted-aesgcm", "encrypted-chacha20"])
def any_codec(request, signing_key, encryption_key):
    """Every supported protection mode, one at a time."""
    if request.param == "signed":
        return SessionCodec.signed(KeyRing([signing_key(1)]))
    backend = request.param.split("-")[1]
    return SessionCodec.encrypted(
        KeyRing([encryption_key(1)]), cipher_backend=backend
    )
