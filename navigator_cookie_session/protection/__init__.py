"""Protection strategies: signed (integrity) and encrypted (integrity + confidentiality)."""
from .base import ProtectedPayload, ProtectionStrategy
from .signed import SignedStrategy
from .encrypted import EncryptedStrategy

__all__ = [
    "ProtectedPayload",
    "ProtectionStrategy",
    "SignedStrategy",
    "EncryptedStrategy",
]
