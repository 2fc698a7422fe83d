"""Text encodings for cookie segments.

Decoding is strict: any character outside the alphabet, and any text
that does not re-encode to itself, is an ``InvalidEncoding``.
"""
import base64
import binascii
import re

from .exceptions import InvalidEncoding


class TextEncoding:
    name: str = "base"
    alphabet = re.compile(r"")

    def encode(self, data: bytes) -> str:
        raise NotImplementedError

    def _decode(self, text: str) -> bytes:
        raise NotImplementedError

    def decode(self, text: str) -> bytes:
        if not self.alphabet.fullmatch(text):
            raise InvalidEncoding()
        try:
            data = self._decode(text)
        except (binascii.Error, ValueError) as err:
            raise InvalidEncoding() from err
        # reject non-canonical forms (e.g. stray bits in the last base64 char)
        if self.encode(data) != text:
            raise InvalidEncoding()
        return data


class Base64UrlEncoding(TextEncoding):
    """Unpadded base64 with the URL and filename safe alphabet."""

    name = "base64url"
    alphabet = re.compile(r"[A-Za-z0-9_-]*")

    def encode(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")

    def _decode(self, text: str) -> bytes:
        if len(text) % 4 == 1:
            raise InvalidEncoding()
        missing_padding = (-len(text)) % 4
        return base64.urlsafe_b64decode(text + ("=" * missing_padding))


class HexEncoding(TextEncoding):
    """Lowercase hexadecimal."""

    name = "hex"
    alphabet = re.compile(r"[0-9a-f]*")

    def encode(self, data: bytes) -> str:
        return data.hex()

    def _decode(self, text: str) -> bytes:
        return bytes.fromhex(text)


TEXT_ENCODINGS: dict[str, type[TextEncoding]] = {
    Base64UrlEncoding.name: Base64UrlEncoding,
    HexEncoding.name: HexEncoding,
}


def get_text_encoding(name: str) -> TextEncoding:
    try:
        return TEXT_ENCODINGS[name]()
    except KeyError:
        raise ValueError(f"Unsupported text encoding: {name}") from None
