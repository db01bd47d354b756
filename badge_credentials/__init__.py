"""OpenBadges 3.0 verifiable credentials: issue, sign, bake and verify."""

from .bake_badge import BadgeFormat, ExtractedBadge, bake_badge, extract_badge, extract_badge_with_format
from .config import BadgeConfiguration, Settings, create_badge_configuration, load_settings
from .errors import (
    BakingError,
    CanonicalizationError,
    ConfigurationError,
    EncodingError,
    ExtractionError,
    KeyFormatError,
    OpenBadgesError,
    SigningError,
    ValidationError,
    VerificationError,
)
from .issue_credential import create_credential
from .jwt_credential import sign_credential_jwt, verify_credential_jwt
from .keys import (
    Ed25519KeyPair,
    Ed25519PublicKey,
    RsaKeyPair,
    RsaPublicKey,
    generate_key_id,
    generate_keypair,
    generate_multikey_document,
    generate_rsa_keypair,
)
from .schema import assert_valid_credential, validate_credential
from .sign_credential import sign_credential
from .validate_badge import BadgeValidator, CheckStatus, ValidationCheck, ValidationResult, validate_badge
from .verify_credential import verify_credential

__version__ = "0.1.0"

__all__ = [
    "BadgeConfiguration",
    "BadgeFormat",
    "BadgeValidator",
    "BakingError",
    "CanonicalizationError",
    "CheckStatus",
    "ConfigurationError",
    "Ed25519KeyPair",
    "Ed25519PublicKey",
    "EncodingError",
    "ExtractedBadge",
    "ExtractionError",
    "KeyFormatError",
    "OpenBadgesError",
    "RsaKeyPair",
    "RsaPublicKey",
    "Settings",
    "SigningError",
    "ValidationCheck",
    "ValidationError",
    "ValidationResult",
    "VerificationError",
    "assert_valid_credential",
    "bake_badge",
    "create_badge_configuration",
    "create_credential",
    "extract_badge",
    "extract_badge_with_format",
    "generate_key_id",
    "generate_keypair",
    "generate_multikey_document",
    "generate_rsa_keypair",
    "load_settings",
    "sign_credential",
    "sign_credential_jwt",
    "validate_badge",
    "validate_credential",
    "verify_credential",
    "verify_credential_jwt",
]
