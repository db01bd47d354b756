from __future__ import annotations

import pytest

from badge_credentials.config import create_badge_configuration, load_settings
from badge_credentials.errors import ConfigurationError
from badge_credentials.keys import Ed25519KeyPair, RsaKeyPair, generate_rsa_keypair
from conftest import PRIVATE_KEY, PUBLIC_KEY

_ENV_VARS = (
    "LOG_LEVEL",
    "LOG_JSON",
    "BADGE_BASE_URL",
    "BADGE_ISSUER_NAME",
    "BADGE_ISSUER_EMAIL",
    "BADGE_ISSUER_DESCRIPTION",
    "BADGE_ISSUER_IMAGE_URL",
    "BADGE_ISSUER_ED25519_PRIVATE_KEY",
    "BADGE_ISSUER_ED25519_PUBLIC_KEY",
    "BADGE_ISSUER_RSA_PRIVATE_KEY",
    "BADGE_ISSUER_RSA_PUBLIC_KEY",
    "BADGE_ISSUER_RSA_ONLY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="module")
def rsa_pems() -> RsaKeyPair:
    return generate_rsa_keypair()


# ---- load_settings ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.base_url is None
    assert settings.issuer_name == "Badge Issuer"
    assert settings.rsa_only is False


def test_load_settings_normalizes_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "  DEBUG ")
    monkeypatch.setenv("LOG_JSON", "yes")
    monkeypatch.setenv("BADGE_BASE_URL", "badges.example.org/")
    settings = load_settings()
    assert settings.log_level == "debug"
    assert settings.log_json is True
    assert settings.base_url == "https://badges.example.org"


def test_load_settings_unescapes_pem_newlines(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_ISSUER_RSA_PUBLIC_KEY", "-----BEGIN PUBLIC KEY-----\\nabc\\n-----END PUBLIC KEY-----")
    assert load_settings().rsa_public_key == "-----BEGIN PUBLIC KEY-----\nabc\n-----END PUBLIC KEY-----"


def test_load_settings_rejects_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_invalid_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_ISSUER_RSA_ONLY", "maybe")
    with pytest.raises(ValueError, match="BADGE_ISSUER_RSA_ONLY must be true|false"):
        load_settings()


def test_load_settings_rejects_non_http_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "ftp://example.org")
    with pytest.raises(ValueError, match="BADGE_BASE_URL"):
        load_settings()


# ---- create_badge_configuration ----


def test_ed25519_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_NAME", "Example Org")
    monkeypatch.setenv("BADGE_ISSUER_EMAIL", "badges@example.org")
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PRIVATE_KEY", PRIVATE_KEY)

    config = create_badge_configuration(load_settings())

    assert config.signing_key == Ed25519KeyPair(PRIVATE_KEY, PUBLIC_KEY)
    assert config.algorithm == "EdDSA"
    assert config.verification_method == f"https://example.org/api/badge/keys/key-{PUBLIC_KEY[:8]}"
    assert config.issuer == {
        "id": "https://example.org/api/badge/issuer",
        "name": "Example Org",
        "url": "https://example.org",
        "email": "badges@example.org",
    }


def test_ed25519_public_key_must_match(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PRIVATE_KEY", PRIVATE_KEY)
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PUBLIC_KEY", "00" * 32)
    with pytest.raises(ConfigurationError, match="does not match"):
        create_badge_configuration(load_settings())


def test_malformed_ed25519_key_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PRIVATE_KEY", "abc")
    with pytest.raises(ConfigurationError):
        create_badge_configuration(load_settings())


def test_rsa_keys_take_precedence(monkeypatch: pytest.MonkeyPatch, rsa_pems: RsaKeyPair) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PRIVATE_KEY", PRIVATE_KEY)
    monkeypatch.setenv("BADGE_ISSUER_RSA_PRIVATE_KEY", rsa_pems.private_key_pem.replace("\n", "\\n"))
    monkeypatch.setenv("BADGE_ISSUER_RSA_PUBLIC_KEY", rsa_pems.public_key_pem.replace("\n", "\\n"))

    config = create_badge_configuration(load_settings())

    assert config.algorithm == "RS256"
    assert config.signing_key.public_key_pem.strip() == rsa_pems.public_key_pem.strip()
    assert config.verification_method == "https://example.org/api/badge/keys/key-1"


def test_invalid_rsa_pem_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_RSA_PRIVATE_KEY", "not a pem")
    monkeypatch.setenv("BADGE_ISSUER_RSA_PUBLIC_KEY", "not a pem")
    with pytest.raises(ConfigurationError, match="Invalid RSA key PEM"):
        create_badge_configuration(load_settings())


def test_rsa_only_refuses_ed25519_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    monkeypatch.setenv("BADGE_ISSUER_RSA_ONLY", "true")
    monkeypatch.setenv("BADGE_ISSUER_ED25519_PRIVATE_KEY", PRIVATE_KEY)
    with pytest.raises(ConfigurationError, match="BADGE_ISSUER_RSA_ONLY"):
        create_badge_configuration(load_settings())


def test_missing_keys_or_base_url_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ConfigurationError, match="BADGE_BASE_URL"):
        create_badge_configuration(load_settings())
    monkeypatch.setenv("BADGE_BASE_URL", "https://example.org")
    with pytest.raises(ConfigurationError, match="keys must be set"):
        create_badge_configuration(load_settings())
