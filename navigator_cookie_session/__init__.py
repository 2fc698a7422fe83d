"""Navigator Cookie Session.

Signed or encrypted session state carried entirely inside an HTTP cookie.
"""
from .version import __version__
from .data import SessionData
from .keys import KeyMaterial, KeyPurpose, KeyRing, generate_key
from .codec import SessionCodec
from .config import SessionConfig
from .exceptions import (
    RejectionReason,
    SessionError,
    SessionRejected,
    InvalidEncoding,
    AuthenticationFailed,
    Expired,
    MalformedPayload,
    SessionFatalError,
    InvalidKeyError,
    RandomSourceError,
)

__all__ = [
    "__version__",
    "SessionData",
    "KeyMaterial",
    "KeyPurpose",
    "KeyRing",
    "generate_key",
    "SessionCodec",
    "SessionConfig",
    "RejectionReason",
    "SessionError",
    "SessionRejected",
    "InvalidEncoding",
    "AuthenticationFailed",
    "Expired",
    "MalformedPayload",
    "SessionFatalError",
    "InvalidKeyError",
    "RandomSourceError",
]
