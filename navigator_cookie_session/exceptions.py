"""Session Errors.

Every rejection of an incoming cookie is a ``SessionRejected``; the
``reason`` attribute tells which pipeline step refused it, but the
message is always the same so nothing about forged cookies leaks
into responses. Fatal conditions are ``SessionFatalError`` and must
surface as server errors, never as an anonymous session.
"""
from enum import Enum


class RejectionReason(str, Enum):
    INVALID_ENCODING = 'invalid_encoding'
    AUTHENTICATION_FAILED = 'authentication_failed'
    EXPIRED = 'expired'
    MALFORMED_PAYLOAD = 'malformed_payload'


class SessionError(Exception):
    """Base class for all session codec errors."""


class SessionRejected(SessionError):
    """A cookie value was refused; treat the request as anonymous."""

    reason: RejectionReason = RejectionReason.AUTHENTICATION_FAILED

    def __init__(self, message: str = "Session cookie rejected") -> None:
        super().__init__(message)

    def __repr__(self) -> str:
        return f'<{type(self).__name__} reason={self.reason.value}>'


class InvalidEncoding(SessionRejected):
    reason = RejectionReason.INVALID_ENCODING


class AuthenticationFailed(SessionRejected):
    reason = RejectionReason.AUTHENTICATION_FAILED


class Expired(SessionRejected):
    reason = RejectionReason.EXPIRED


class MalformedPayload(SessionRejected):
    reason = RejectionReason.MALFORMED_PAYLOAD


class SessionFatalError(SessionError, RuntimeError):
    """Unrecoverable codec failure."""


class InvalidKeyError(SessionFatalError, ValueError):
    """Key material or key ring is unusable (wrong length, purpose, ids)."""


class RandomSourceError(SessionFatalError):
    """The operating system random source is not available."""
