"""
JWT-secured credentials (VC-JWT) signed with RS256 or EdDSA.

The key family is taken from the key material type, never sniffed from
the key text, and verification pins the single matching algorithm.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .encoding import hex_to_bytes
from .errors import ConfigurationError, EncodingError, KeyFormatError, SigningError, VerificationError
from .issue_credential import is_absolute_uri
from .keys import (
    Ed25519KeyPair,
    Ed25519PublicKey,
    RsaKeyPair,
    RsaPublicKey,
    derive_public_key,
    validate_public_key,
)

logger = logging.getLogger(__name__)

CREDENTIAL_TTL = timedelta(days=365)
REQUIRED_CLAIMS = ["iss", "sub", "jti", "iat", "nbf", "exp"]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def _issuer_id(credential: dict):
    issuer = credential.get('issuer')
    return issuer.get('id') if isinstance(issuer, dict) else issuer


def _load_signing_key(key):
    """Return (algorithm, cryptography private key, extra header fields)."""
    if isinstance(key, Ed25519KeyPair):
        try:
            public_key = validate_public_key(key.public_key)
            if derive_public_key(key.private_key) != public_key:
                raise ConfigurationError("Ed25519 public key does not match the private key")
            private_key = ed25519.Ed25519PrivateKey.from_private_bytes(hex_to_bytes(key.private_key))
        except (KeyFormatError, EncodingError) as exc:
            raise ConfigurationError(exc.message, exc.context) from exc
        jwk = {"kty": "OKP", "crv": "Ed25519", "x": _b64url(hex_to_bytes(public_key))}
        return 'EdDSA', private_key, {"jwk": jwk}

    if isinstance(key, RsaKeyPair):
        try:
            private_key = serialization.load_pem_private_key(
                key.private_key_pem.encode('ascii'), password=None
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise ConfigurationError("Invalid RSA private key PEM") from exc
        return 'RS256', private_key, {}

    raise ConfigurationError(
        "Unsupported key material for JWT signing", {"keyType": type(key).__name__}
    )


def _load_verification_key(public_key):
    """Return (algorithm, cryptography public key)."""
    if isinstance(public_key, (Ed25519KeyPair, RsaKeyPair)):
        public_key = public_key.public()

    if isinstance(public_key, Ed25519PublicKey):
        try:
            raw = hex_to_bytes(validate_public_key(public_key.public_key))
        except (KeyFormatError, EncodingError) as exc:
            raise VerificationError(exc.message, exc.context) from exc
        return 'EdDSA', ed25519.Ed25519PublicKey.from_public_bytes(raw)

    if isinstance(public_key, RsaPublicKey):
        try:
            loaded = serialization.load_pem_public_key(public_key.public_key_pem.encode('ascii'))
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise VerificationError("Invalid RSA public key PEM") from exc
        return 'RS256', loaded

    raise VerificationError("Public key is required for JWT verification")


def sign_credential_jwt(credential: dict, key, verification_method: str) -> str:
    """
    Sign a credential as a compact JWS.

    Header: alg (RS256 or EdDSA), typ, kid (the verification method);
    EdDSA tokens also carry the public JWK. Claims: vc, iss, sub, jti,
    iat, nbf and exp (one year after issuance).
    """
    if not isinstance(credential, dict):
        raise SigningError("Credential must be a JSON object")
    if not is_absolute_uri(verification_method):
        raise ConfigurationError(
            "Verification method must be a valid URL",
            {"verificationMethod": verification_method},
        )
    algorithm, private_key, extra_headers = _load_signing_key(key)

    now = datetime.now(timezone.utc)
    payload = {
        "vc": credential,
        "iss": _issuer_id(credential),
        "sub": (credential.get('credentialSubject') or {}).get('id'),
        "jti": credential.get('id'),
        "iat": now,
        "nbf": now,
        "exp": now + CREDENTIAL_TTL,
    }
    headers = {"typ": "JWT", "kid": verification_method, **extra_headers}

    try:
        token = jwt.encode(payload, private_key, algorithm=algorithm, headers=headers)
    except (jwt.PyJWTError, TypeError, ValueError) as exc:
        raise SigningError("Failed to sign credential JWT", {"error": str(exc)}) from exc

    logger.info(
        "Signed credential %s as %s JWT", credential.get('id'), algorithm,
        extra={"credential_id": credential.get('id'), "verification_method": verification_method},
    )
    return token


def verify_credential_jwt(token: str, public_key) -> dict:
    """
    Verify a credential JWT and return its embedded credential (vc claim).

    Pins the algorithm to the one matching the public key type, so a token
    declaring any other alg is rejected.
    """
    if not isinstance(token, str) or token.count('.') != 2:
        raise VerificationError("Malformed JWT")
    algorithm, verification_key = _load_verification_key(public_key)

    try:
        claims = jwt.decode(
            token,
            verification_key,
            algorithms=[algorithm],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise VerificationError("JWT has expired") from exc
    except jwt.InvalidAlgorithmError as exc:
        raise VerificationError(
            "JWT algorithm is not allowed", {"expected": algorithm}
        ) from exc
    except jwt.InvalidTokenError as exc:
        raise VerificationError("JWT verification failed", {"error": str(exc)}) from exc

    credential = claims.get('vc')
    if not isinstance(credential, dict):
        raise VerificationError("JWT does not contain a vc claim")
    return credential


def decode_jwt_unverified(token: str) -> tuple:
    """Return (header, payload) without checking the signature."""
    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise VerificationError("Malformed JWT", {"error": str(exc)}) from exc
    return header, payload
