from __future__ import annotations

import copy

import pytest

from badge_credentials.issue_credential import create_credential
from badge_credentials.keys import Ed25519KeyPair, derive_public_key, generate_key_id, generate_keypair
from badge_credentials.sign_credential import sign_credential

PRIVATE_KEY = "31875f663f58ee90686db580f0df732535b808674ac27f1d88f8cbd4e18ba52f"
PUBLIC_KEY = derive_public_key(PRIVATE_KEY)

VALID_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100">\n'
    '  <rect width="100" height="100" fill="blue"/>\n'
    '</svg>'
)

BASE_URL = "https://example.org"
VERIFICATION_METHOD = f"{BASE_URL}/api/badge/keys/{generate_key_id(PUBLIC_KEY)}"

CREDENTIAL_CONFIG = {
    "credentialId": "urn:uuid:6f1c2f4e-5d2b-4f5a-9a5e-0c1d2e3f4a5b",
    "issuer": {
        "id": BASE_URL,
        "name": "Example Org",
        "url": BASE_URL,
    },
    "subject": {
        "id": "mailto:a@example.org",
        "type": ["AchievementSubject"],
    },
    "achievement": {
        "id": f"{BASE_URL}/ach/1",
        "name": "Speaker",
        "description": "Presented a talk at the annual meetup.",
        "criteria": {"narrative": "Spoke at event"},
        "image": {"id": f"{BASE_URL}/img.png", "type": "Image"},
    },
    "validFrom": "2026-01-01T00:00:00Z",
}


@pytest.fixture
def key_pair() -> Ed25519KeyPair:
    return Ed25519KeyPair(PRIVATE_KEY, PUBLIC_KEY)


@pytest.fixture
def other_key_pair() -> Ed25519KeyPair:
    return generate_keypair()


@pytest.fixture
def credential_config() -> dict:
    return copy.deepcopy(CREDENTIAL_CONFIG)


@pytest.fixture
def credential(credential_config) -> dict:
    return create_credential(credential_config)


@pytest.fixture
def signed_credential(credential, key_pair) -> dict:
    return sign_credential(credential, key_pair, VERIFICATION_METHOD)
