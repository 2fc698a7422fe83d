"""Tests for SessionConfig and environment key loading."""
import base64
import os
import pytest
from pydantic import ValidationError

from navigator_cookie_session.codec import SessionCodec
from navigator_cookie_session.config import (
    SessionConfig,
    get_active_key_id,
    load_session_keys,
)
from navigator_cookie_session.data import SessionData
from navigator_cookie_session.keys import KeyPurpose


KEY_ONE = bytes(range(32))
KEY_TWO = bytes(range(32, 64))


def b64(value: bytes) -> str:
    return base64.b64encode(value).decode('ascii')


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith('SESSION_'):
            monkeypatch.delenv(name)
    return monkeypatch


class TestLoadKeys:

    def test_load_keys(self, clean_env):
        clean_env.setenv('SESSION_KEY_v1', b64(KEY_ONE))
        clean_env.setenv('SESSION_KEY_v2', b64(KEY_TWO))
        assert load_session_keys() == {1: KEY_ONE, 2: KEY_TWO}

    def test_no_keys(self, clean_env):
        with pytest.raises(RuntimeError):
            load_session_keys()

    def test_wrong_length(self, clean_env):
        clean_env.setenv('SESSION_KEY_v1', b64(b'short'))
        with pytest.raises(ValueError):
            load_session_keys()

    def test_active_key_defaults_to_newest(self, clean_env):
        assert get_active_key_id({1: KEY_ONE, 4: KEY_TWO}) == 4

    def test_active_key_from_env(self, clean_env):
        clean_env.setenv('SESSION_ACTIVE_KEY_ID', '1')
        assert get_active_key_id({1: KEY_ONE, 4: KEY_TWO}) == 1

    def test_active_key_missing(self, clean_env):
        with pytest.raises(RuntimeError):
            get_active_key_id()


class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig(keys={1: KEY_ONE}, active_key_id=1)
        assert config.mode == 'signed'
        assert config.serializer == 'orjson'
        assert config.text_encoding == 'base64url'
        assert config.cookie_httponly is True
        assert config.purpose is KeyPurpose.SIGNING

    @pytest.mark.parametrize('field, value', [
        ('mode', 'plain'),
        ('cipher_backend', 'des'),
        ('serializer', 'pickle'),
        ('text_encoding', 'base32'),
        ('cookie_samesite', 'Sometimes'),
        ('max_age', 10),
    ])
    def test_invalid_choices(self, field, value):
        with pytest.raises(ValidationError):
            SessionConfig(keys={1: KEY_ONE}, active_key_id=1, **{field: value})

    def test_active_key_must_exist(self):
        with pytest.raises(ValidationError):
            SessionConfig(keys={1: KEY_ONE}, active_key_id=2)

    def test_key_length(self):
        with pytest.raises(ValidationError):
            SessionConfig(keys={1: b'short'}, active_key_id=1)

    def test_key_ring_order(self):
        config = SessionConfig(
            keys={3: KEY_ONE, 1: KEY_TWO, 7: KEY_ONE},
            active_key_id=3,
            mode='encrypted',
        )
        ring = config.key_ring()
        assert ring.ids == [1, 7, 3]
        assert ring.active().id == 3
        assert ring.purpose is KeyPurpose.ENCRYPTION

    def test_from_env(self, clean_env):
        clean_env.setenv('SESSION_KEY_v1', b64(KEY_ONE))
        clean_env.setenv('SESSION_KEY_v2', b64(KEY_TWO))
        clean_env.setenv('SESSION_MODE', 'encrypted')
        clean_env.setenv('SESSION_CIPHER_BACKEND', 'chacha20')
        clean_env.setenv('SESSION_TEXT_ENCODING', 'hex')
        clean_env.setenv('SESSION_COOKIE_SECURE', 'false')
        config = SessionConfig.from_env()
        assert config.active_key_id == 2
        assert config.mode == 'encrypted'
        assert config.cipher_backend == 'chacha20'
        assert config.text_encoding == 'hex'
        assert config.cookie_secure is False

    def test_codec_from_config(self, now):
        config = SessionConfig(
            keys={1: KEY_ONE, 2: KEY_TWO},
            active_key_id=2,
            mode='encrypted',
            serializer='jsonpickle',
            text_encoding='hex',
        )
        codec = SessionCodec.from_config(config)
        assert codec.is_encrypted is True
        assert codec.key_ring.active().id == 2
        session = SessionData.create(now, 3600, data={'user_id': 42})
        assert codec.decode(codec.encode(session), now) == session
