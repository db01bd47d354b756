"""Hex and multibase (base58btc) helpers."""

import re

import base58

from .errors import EncodingError

MULTIBASE_BASE58BTC = 'z'

_HEX_RE = re.compile(r'^[0-9a-fA-F]*$')


def normalize_hex(value: str) -> str:
    """Strip an optional 0x prefix and whitespace, lowercase the rest."""
    if not isinstance(value, str):
        raise EncodingError("Hex value must be a string", {"type": type(value).__name__})
    cleaned = re.sub(r'\s+', '', value)
    if cleaned[:2].lower() == '0x':
        cleaned = cleaned[2:]
    return cleaned.lower()


def hex_to_bytes(value: str) -> bytes:
    cleaned = normalize_hex(value)
    if not cleaned:
        raise EncodingError("Hex value is empty")
    if len(cleaned) % 2:
        raise EncodingError("Hex value must have an even length", {"length": len(cleaned)})
    if not _HEX_RE.match(cleaned):
        raise EncodingError("Hex value contains non-hex characters")
    return bytes.fromhex(cleaned)


def bytes_to_hex(data: bytes) -> str:
    if not isinstance(data, (bytes, bytearray)):
        raise EncodingError("Expected bytes", {"type": type(data).__name__})
    return bytes(data).hex()


def encode_multibase(data: bytes) -> str:
    """Encode bytes as multibase base58btc ('z' prefix)."""
    if not isinstance(data, (bytes, bytearray)):
        raise EncodingError("Expected bytes", {"type": type(data).__name__})
    return MULTIBASE_BASE58BTC + base58.b58encode(bytes(data)).decode('ascii')


def decode_multibase(value: str) -> bytes:
    """Decode a 'z'-prefixed multibase value."""
    if not isinstance(value, str) or not value:
        raise EncodingError("Multibase value must be a non-empty string")
    if value[0] != MULTIBASE_BASE58BTC:
        raise EncodingError(
            f"Unsupported multibase prefix: {value[0]}", {"prefix": value[0]}
        )
    body = value[1:]
    if not body:
        raise EncodingError("Multibase value has no payload")
    try:
        return base58.b58decode(body)
    except ValueError as exc:
        raise EncodingError("Invalid Base58 characters in multibase value") from exc
