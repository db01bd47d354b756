"""
Ed25519 / RSA key material for OpenBadges 3.0 issuers.

Public keys are published as Multikey documents (Data Integrity EdDSA
Cryptosuites v1.0) or embedded in did:key identifiers.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from nacl.signing import SigningKey

from .encoding import bytes_to_hex, decode_multibase, encode_multibase, hex_to_bytes, normalize_hex
from .errors import ConfigurationError, EncodingError, KeyFormatError

# Multicodec prefix for Ed25519 public keys
ED25519_PUB_HEADER = bytes([0xed, 0x01])

DID_KEY_PREFIX = 'did:key:'
ISSUER_PATH_SUFFIX = '/api/badge/issuer'
KEYS_PATH = '/api/badge/keys'
KEY_ID_PREFIX = 'key-'

MULTIKEY_CONTEXT = [
    "https://www.w3.org/ns/credentials/v2",
    "https://w3id.org/security/multikey/v1",
]

_HEX64_RE = re.compile(r'^[0-9a-f]{64}$')


@dataclass(frozen=True)
class Ed25519KeyPair:
    """Ed25519 private/public key, both 64-char hex."""

    private_key: str
    public_key: str

    algorithm = 'EdDSA'

    def public(self) -> 'Ed25519PublicKey':
        return Ed25519PublicKey(self.public_key)


@dataclass(frozen=True)
class Ed25519PublicKey:
    public_key: str

    algorithm = 'EdDSA'


@dataclass(frozen=True)
class RsaKeyPair:
    """RSA key pair as PEM text (PKCS#8 private, SubjectPublicKeyInfo public)."""

    private_key_pem: str
    public_key_pem: str

    algorithm = 'RS256'

    def public(self) -> 'RsaPublicKey':
        return RsaPublicKey(self.public_key_pem)


@dataclass(frozen=True)
class RsaPublicKey:
    public_key_pem: str

    algorithm = 'RS256'


def validate_public_key(public_key_hex: str) -> str:
    """Return the normalized (lowercase) key or raise KeyFormatError."""
    try:
        normalized = normalize_hex(public_key_hex)
    except EncodingError as exc:
        raise KeyFormatError(exc.message) from exc
    if not _HEX64_RE.match(normalized):
        raise KeyFormatError(
            "Public key must be a 64-character hex string (32 bytes)",
            {"length": len(normalized)},
        )
    return normalized


def validate_private_key(private_key_hex: str) -> str:
    try:
        normalized = normalize_hex(private_key_hex)
    except EncodingError as exc:
        raise KeyFormatError(exc.message) from exc
    if not _HEX64_RE.match(normalized):
        raise KeyFormatError("Private key must be a 64-character hex string (32 bytes)")
    return normalized


def derive_public_key(private_key_hex: str) -> str:
    """Derive the Ed25519 public key (hex) from a 32-byte seed."""
    seed = hex_to_bytes(validate_private_key(private_key_hex))
    return bytes_to_hex(bytes(SigningKey(seed).verify_key))


def generate_keypair() -> Ed25519KeyPair:
    """Generate a new Ed25519 keypair."""
    signing_key = SigningKey.generate()
    return Ed25519KeyPair(
        private_key=bytes_to_hex(bytes(signing_key)),
        public_key=bytes_to_hex(bytes(signing_key.verify_key)),
    )


def generate_rsa_keypair(key_size: int = 2048) -> RsaKeyPair:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return RsaKeyPair(private_pem.decode('ascii'), public_pem.decode('ascii'))


def generate_key_id(public_key_hex: str) -> str:
    """Deterministic key id: "key-" + first 8 hex chars of the public key."""
    return KEY_ID_PREFIX + validate_public_key(public_key_hex)[:8]


def validate_key_id(key_id: str, public_key_hex: str) -> None:
    """
    Cross-check a key id against its public key.

    The id must start with "key-" and its first 8 characters after the
    prefix must match the public key. Longer ids (the full hex, or a
    suffix like "key-6c4cf79d-2025") are accepted.
    """
    public_key = validate_public_key(public_key_hex)
    if not isinstance(key_id, str) or not key_id.startswith(KEY_ID_PREFIX):
        raise KeyFormatError('Key ID must start with "key-"', {"keyId": key_id})
    head = key_id[len(KEY_ID_PREFIX):][:8].lower()
    if head != public_key[:8]:
        raise KeyFormatError(
            "Key ID does not match public key prefix",
            {"keyId": key_id, "expected": public_key[:8]},
        )


def public_key_to_multibase(public_key_hex: str) -> str:
    """Create multibase-encoded public key in Multikey format."""
    public_bytes = hex_to_bytes(validate_public_key(public_key_hex))
    return encode_multibase(ED25519_PUB_HEADER + public_bytes)


def multibase_to_public_key_hex(multibase: str) -> str:
    """Decode a Multikey publicKeyMultibase back to the raw key (hex)."""
    if not isinstance(multibase, str) or not multibase.startswith('z'):
        raise KeyFormatError('Multibase public key must start with "z"')
    try:
        decoded = decode_multibase(multibase)
    except EncodingError as exc:
        raise KeyFormatError(
            "Multibase public key contains invalid Base58 characters"
        ) from exc
    expected = len(ED25519_PUB_HEADER) + 32
    if len(decoded) != expected:
        raise KeyFormatError(
            f"Expected {expected} bytes, got {len(decoded)}", {"length": len(decoded)}
        )
    if decoded[:2] != ED25519_PUB_HEADER:
        raise KeyFormatError(
            "Invalid Ed25519 multicodec prefix", {"prefix": decoded[:2].hex()}
        )
    return bytes_to_hex(decoded[2:])


def public_key_to_did_key(public_key_hex: str) -> str:
    return DID_KEY_PREFIX + public_key_to_multibase(public_key_hex)


def did_key_to_public_key_hex(did: str) -> str:
    """
    Extract the Ed25519 public key from a did:key identifier.

    A trailing fragment (did:key:z...#z...) is ignored.
    """
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX + 'z'):
        raise KeyFormatError("Not a base58btc did:key identifier", {"did": did})
    return multibase_to_public_key_hex(did[len(DID_KEY_PREFIX):].split('#', 1)[0])


def is_did_key(value) -> bool:
    return isinstance(value, str) and value.startswith(DID_KEY_PREFIX)


def is_http_url(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def generate_multikey_document(public_key_hex: str, key_id: str, controller: str) -> dict:
    """
    Build the Multikey document published for an issuer key.

    HTTP(S) controllers must be the issuer profile endpoint
    (".../api/badge/issuer"); the document lives at ".../api/badge/keys/<key_id>"
    on the same origin. A did:key controller yields a self-contained
    document identified by "<did>#<multibase>".
    """
    public_key = validate_public_key(public_key_hex)
    multibase = public_key_to_multibase(public_key)

    if is_did_key(controller):
        did = controller.split('#', 1)[0]
        if did_key_to_public_key_hex(did) != public_key:
            raise ConfigurationError(
                "did:key controller does not embed the given public key",
                {"controller": controller},
            )
        return {
            "@context": list(MULTIKEY_CONTEXT),
            "id": f"{did}#{multibase}",
            "type": "Multikey",
            "controller": did,
            "publicKeyMultibase": multibase,
        }

    if not is_http_url(controller):
        raise ConfigurationError(
            "Controller must be an http:// or https:// URL or a did:key identifier",
            {"controller": controller},
        )
    if not controller.endswith(ISSUER_PATH_SUFFIX):
        raise ConfigurationError(
            f"Controller URL must end with {ISSUER_PATH_SUFFIX}",
            {"controller": controller},
        )
    validate_key_id(key_id, public_key)

    base_url = controller[: -len(ISSUER_PATH_SUFFIX)]
    return {
        "@context": list(MULTIKEY_CONTEXT),
        "id": f"{base_url}{KEYS_PATH}/{key_id}",
        "type": "Multikey",
        "controller": controller,
        "publicKeyMultibase": multibase,
    }


def build_issuer_profile_document(issuer: dict, multikey_documents: list) -> dict:
    """Issuer profile JSON served at the issuer endpoint, listing its keys."""
    profile = {
        "@context": [
            "https://www.w3.org/ns/credentials/v2",
            "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
        ],
        "id": issuer["id"],
        "type": ["Profile"],
        "name": issuer["name"],
    }
    for field in ("url", "email", "description", "image"):
        if issuer.get(field):
            profile[field] = issuer[field]
    profile["verificationMethod"] = [
        {
            "id": doc["id"],
            "type": doc["type"],
            "controller": doc["controller"],
            "publicKeyMultibase": doc["publicKeyMultibase"],
        }
        for doc in multikey_documents
    ]
    return profile
