"""Environment-driven settings and issuer badge configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from .errors import ConfigurationError, KeyFormatError
from .keys import (
    ISSUER_PATH_SUFFIX,
    KEYS_PATH,
    Ed25519KeyPair,
    RsaKeyPair,
    derive_public_key,
    generate_key_id,
    validate_private_key,
    validate_public_key,
)

LogLevel = Literal["debug", "info", "warning", "error"]
SigningKey = Union[Ed25519KeyPair, RsaKeyPair]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str) -> bool:
    raw = _getenv(name).lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be true|false (got {raw!r})")


def _getpem(name: str) -> str | None:
    # PEM values are often stored on one line with literal "\n" escapes
    raw = _getenv(name)
    return raw.replace("\\n", "\n") if raw else None


@dataclass(frozen=True)
class Settings:
    log_level: LogLevel
    log_json: bool
    base_url: str | None
    issuer_name: str
    issuer_email: str | None
    issuer_description: str | None
    issuer_image_url: str | None
    ed25519_private_key: str | None
    ed25519_public_key: str | None
    rsa_private_key: str | None
    rsa_public_key: str | None
    rsa_only: bool


@dataclass(frozen=True)
class BadgeConfiguration:
    base_url: str
    issuer: dict
    signing_key: SigningKey
    verification_method: str

    @property
    def algorithm(self) -> str:
        return self.signing_key.algorithm


def load_settings() -> Settings:
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    base_url = _getenv("BADGE_BASE_URL") or None
    if base_url:
        if "://" not in base_url:
            base_url = f"https://{base_url}"
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"BADGE_BASE_URL must be an http(s) URL (got {base_url!r})")
        base_url = base_url.rstrip("/")

    return Settings(  # type: ignore[arg-type]
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON"),
        base_url=base_url,
        issuer_name=_getenv("BADGE_ISSUER_NAME", "Badge Issuer"),
        issuer_email=_getenv("BADGE_ISSUER_EMAIL") or None,
        issuer_description=_getenv("BADGE_ISSUER_DESCRIPTION") or None,
        issuer_image_url=_getenv("BADGE_ISSUER_IMAGE_URL") or None,
        ed25519_private_key=_getenv("BADGE_ISSUER_ED25519_PRIVATE_KEY") or None,
        ed25519_public_key=_getenv("BADGE_ISSUER_ED25519_PUBLIC_KEY") or None,
        rsa_private_key=_getpem("BADGE_ISSUER_RSA_PRIVATE_KEY"),
        rsa_public_key=_getpem("BADGE_ISSUER_RSA_PUBLIC_KEY"),
        rsa_only=_getbool("BADGE_ISSUER_RSA_ONLY"),
    )


def _rsa_key_pair(settings: Settings) -> RsaKeyPair:
    try:
        serialization.load_pem_private_key(settings.rsa_private_key.encode("ascii"), password=None)
        serialization.load_pem_public_key(settings.rsa_public_key.encode("ascii"))
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError(
            "Invalid RSA key PEM in BADGE_ISSUER_RSA_PRIVATE_KEY / BADGE_ISSUER_RSA_PUBLIC_KEY",
            {"error": str(exc)},
        ) from exc
    return RsaKeyPair(settings.rsa_private_key, settings.rsa_public_key)


def _ed25519_key_pair(settings: Settings) -> Ed25519KeyPair:
    try:
        private_key = validate_private_key(settings.ed25519_private_key)
        derived = derive_public_key(private_key)
        public_key = (
            validate_public_key(settings.ed25519_public_key)
            if settings.ed25519_public_key
            else derived
        )
    except KeyFormatError as exc:
        raise ConfigurationError(exc.message, {"variable": "BADGE_ISSUER_ED25519_*"}) from exc
    if public_key != derived:
        raise ConfigurationError(
            "BADGE_ISSUER_ED25519_PUBLIC_KEY does not match BADGE_ISSUER_ED25519_PRIVATE_KEY"
        )
    return Ed25519KeyPair(private_key, public_key)


def create_badge_configuration(settings: Settings) -> BadgeConfiguration:
    """
    Build the issuer profile and signing key from settings.

    RSA keys win when both families are configured; BADGE_ISSUER_RSA_ONLY
    refuses to fall back to Ed25519.
    """
    if not settings.base_url:
        raise ConfigurationError("BADGE_BASE_URL must be set")
    base_url = settings.base_url

    has_rsa = bool(settings.rsa_private_key and settings.rsa_public_key)
    if has_rsa:
        signing_key = _rsa_key_pair(settings)
        key_id = "key-1"
    elif settings.rsa_only:
        raise ConfigurationError(
            "BADGE_ISSUER_RSA_ONLY is enabled but RSA keys are not provided. "
            "Set BADGE_ISSUER_RSA_PRIVATE_KEY and BADGE_ISSUER_RSA_PUBLIC_KEY."
        )
    elif settings.ed25519_private_key:
        signing_key = _ed25519_key_pair(settings)
        key_id = generate_key_id(signing_key.public_key)
    else:
        raise ConfigurationError(
            "Badge issuer keys must be set in environment. Set BADGE_ISSUER_RSA_PRIVATE_KEY "
            "and BADGE_ISSUER_RSA_PUBLIC_KEY, or BADGE_ISSUER_ED25519_PRIVATE_KEY."
        )

    issuer = {
        "id": f"{base_url}{ISSUER_PATH_SUFFIX}",
        "name": settings.issuer_name,
        "url": base_url,
    }
    if settings.issuer_email:
        issuer["email"] = settings.issuer_email
    if settings.issuer_description:
        issuer["description"] = settings.issuer_description
    if settings.issuer_image_url:
        issuer["image"] = {"id": settings.issuer_image_url}

    return BadgeConfiguration(
        base_url=base_url,
        issuer=issuer,
        signing_key=signing_key,
        verification_method=f"{base_url}{KEYS_PATH}/{key_id}",
    )
