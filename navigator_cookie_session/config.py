"""
Session Configuration: Key loading and validated settings.

Reads keys from environment variables in the format:
    SESSION_KEY_v{N} = <base64-encoded 32-byte key>
    SESSION_ACTIVE_KEY_ID = <integer>

Security Note:
    Never log key material. Only log key IDs and version numbers.
"""
import os
import re
import base64
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .conf import KEY_LENGTH, SESSION_COOKIE_NAME, SESSION_MAX_AGE
from .encoding import TEXT_ENCODINGS
from .keys import KeyMaterial, KeyPurpose, KeyRing
from .protection.encrypted import CIPHER_BACKENDS
from .serializers import SERIALIZERS

logger = logging.getLogger("navigator.session.config")

_KEY_ENV_PATTERN = re.compile(r"^SESSION_KEY_v(\d+)$")

_TRUE_VALUES = ("1", "true", "yes", "on")


def load_session_keys() -> dict[int, bytes]:
    """Load keys from SESSION_KEY_v{N} environment variables.

    Each env var value must be base64-encoded and decode to exactly 32 bytes.

    Returns:
        Mapping of key version (int) to raw 32-byte key.

    Raises:
        RuntimeError: If no keys are found in the environment.
        ValueError: If a key does not decode to exactly 32 bytes.
    """
    keys: dict[int, bytes] = {}
    for name, value in os.environ.items():
        match = _KEY_ENV_PATTERN.match(name)
        if match:
            version = int(match.group(1))
            key_bytes = base64.b64decode(value)
            if len(key_bytes) != KEY_LENGTH:
                raise ValueError(
                    f"{name} must decode to exactly {KEY_LENGTH} bytes, "
                    f"got {len(key_bytes)}"
                )
            keys[version] = key_bytes
    if not keys:
        raise RuntimeError(
            "No session keys found in environment. "
            "Set SESSION_KEY_v1=<base64-encoded-32-byte-key>"
        )
    logger.debug("Loaded %d session key version(s): %s", len(keys), sorted(keys.keys()))
    return keys


def get_active_key_id(keys: Optional[dict[int, bytes]] = None) -> int:
    """Read the active key version from SESSION_ACTIVE_KEY_ID.

    When the variable is not set, the highest loaded version is active.

    Raises:
        RuntimeError: If SESSION_ACTIVE_KEY_ID is not set and no keys are given.
        ValueError: If the value is not a valid integer.
    """
    raw = os.environ.get("SESSION_ACTIVE_KEY_ID")
    if raw is None:
        if not keys:
            raise RuntimeError(
                "SESSION_ACTIVE_KEY_ID environment variable is not set"
            )
        return max(keys)
    return int(raw)


class SessionConfig(BaseModel):
    """Validated cookie session configuration."""

    keys: dict[int, bytes]
    active_key_id: int
    mode: str = Field(default="signed")
    cipher_backend: str = Field(default="aesgcm")
    serializer: str = Field(default="orjson")
    text_encoding: str = Field(default="base64url")
    max_age: int = Field(default=SESSION_MAX_AGE, ge=60)
    renew_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    cookie_name: str = Field(default=SESSION_COOKIE_NAME, min_length=1)
    cookie_domain: Optional[str] = None
    cookie_path: str = Field(default="/")
    cookie_secure: bool = True
    cookie_httponly: bool = True
    cookie_samesite: Optional[str] = Field(default="Lax")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Validate protection mode is supported."""
        if v not in ("signed", "encrypted"):
            raise ValueError(f"Unsupported session mode: {v}")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("serializer")
    @classmethod
    def validate_serializer(cls, v: str) -> str:
        if v not in SERIALIZERS:
            raise ValueError(f"Unsupported session serializer: {v}")
        return v

    @field_validator("text_encoding")
    @classmethod
    def validate_text_encoding(cls, v: str) -> str:
        if v not in TEXT_ENCODINGS:
            raise ValueError(f"Unsupported text encoding: {v}")
        return v

    @field_validator("cookie_samesite")
    @classmethod
    def validate_samesite(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("Strict", "Lax", "None"):
            raise ValueError(f"Unsupported SameSite value: {v}")
        return v

    @field_validator("keys")
    @classmethod
    def validate_keys(cls, v: dict[int, bytes]) -> dict[int, bytes]:
        if not v:
            raise ValueError("At least one session key is required")
        for key_id, secret in v.items():
            if len(secret) != KEY_LENGTH:
                raise ValueError(
                    f"Session key v{key_id} must be exactly {KEY_LENGTH} bytes, "
                    f"got {len(secret)}"
                )
        return v

    @model_validator(mode="after")
    def validate_active_key_exists(self) -> "SessionConfig":
        """Ensure active_key_id is present in keys."""
        if self.active_key_id not in self.keys:
            raise ValueError(
                f"active_key_id {self.active_key_id} not found in "
                f"keys (available: {sorted(self.keys.keys())})"
            )
        return self

    @property
    def purpose(self) -> KeyPurpose:
        if self.mode == "encrypted":
            return KeyPurpose.ENCRYPTION
        return KeyPurpose.SIGNING

    def key_ring(self) -> KeyRing:
        """Build the key ring: versions in ascending order, the active key last."""
        order = sorted(k for k in self.keys if k != self.active_key_id)
        order.append(self.active_key_id)
        return KeyRing(
            KeyMaterial(id=key_id, secret=self.keys[key_id], purpose=self.purpose)
            for key_id in order
        )

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Create SessionConfig by loading values from environment.

        Returns:
            Populated SessionConfig instance.
        """
        keys = load_session_keys()
        active_key_id = get_active_key_id(keys)
        return cls(
            keys=keys,
            active_key_id=active_key_id,
            mode=os.environ.get("SESSION_MODE", "signed"),
            cipher_backend=os.environ.get("SESSION_CIPHER_BACKEND", "aesgcm"),
            serializer=os.environ.get("SESSION_SERIALIZER", "orjson"),
            text_encoding=os.environ.get("SESSION_TEXT_ENCODING", "base64url"),
            max_age=int(os.environ.get("SESSION_MAX_AGE", SESSION_MAX_AGE)),
            cookie_name=os.environ.get("SESSION_COOKIE_NAME", SESSION_COOKIE_NAME),
            cookie_domain=os.environ.get("SESSION_COOKIE_DOMAIN"),
            cookie_secure=os.environ.get(
                "SESSION_COOKIE_SECURE", "true"
            ).lower() in _TRUE_VALUES,
        )
