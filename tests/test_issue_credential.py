from __future__ import annotations

import pytest

from badge_credentials.errors import ConfigurationError
from badge_credentials.issue_credential import create_credential, is_absolute_uri


def test_create_credential_builds_achievement_credential(credential_config) -> None:
    credential = create_credential(credential_config)

    assert credential["@context"] == [
        "https://www.w3.org/ns/credentials/v2",
        "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
    ]
    assert credential["type"] == ["VerifiableCredential", "AchievementCredential"]
    assert credential["id"] == credential_config["credentialId"]
    assert credential["name"] == "Speaker"
    assert credential["issuer"]["type"] == ["Profile"]
    assert credential["validFrom"] == "2026-01-01T00:00:00Z"
    assert "validUntil" not in credential
    assert "proof" not in credential

    achievement = credential["credentialSubject"]["achievement"]
    assert achievement["creator"]["id"] == "https://example.org"
    assert achievement["criteria"] == {"narrative": "Spoke at event"}
    assert achievement["image"] == {"id": "https://example.org/img.png", "type": "Image"}


def test_create_credential_generates_urn_uuid(credential_config) -> None:
    del credential_config["credentialId"]
    first = create_credential(credential_config)
    second = create_credential(credential_config)
    assert first["id"].startswith("urn:uuid:")
    assert first["id"] != second["id"]


def test_create_credential_copies_optional_fields(credential_config) -> None:
    credential_config["validUntil"] = "2027-01-01T00:00:00Z"
    credential_config["subject"]["name"] = "Ada"
    credential_config["issuer"]["email"] = "badges@example.org"
    credential_config["achievement"]["image"]["caption"] = "Speaker badge"
    credential_config["achievement"]["evidence"] = [
        {"id": "https://example.org/talks/1", "type": ["Evidence"], "name": "Talk recording"}
    ]

    credential = create_credential(credential_config)

    assert credential["validUntil"] == "2027-01-01T00:00:00Z"
    assert credential["credentialSubject"]["name"] == "Ada"
    assert credential["issuer"]["email"] == "badges@example.org"
    achievement = credential["credentialSubject"]["achievement"]
    assert achievement["image"]["caption"] == "Speaker badge"
    assert achievement["evidence"][0]["name"] == "Talk recording"


def _field_of(excinfo) -> str:
    return excinfo.value.context["field"]


@pytest.mark.parametrize(
    ("path", "value", "field"),
    [
        (("issuer", "id"), "not a url", "issuer.id"),
        (("issuer", "name"), "  ", "issuer.name"),
        (("issuer", "url"), "https://", "issuer.url"),
        (("subject", "type"), ["Person"], "subject.type"),
        (("subject", "id"), "", "subject.id"),
        (("achievement", "id"), None, "achievement.id"),
        (("achievement", "description"), "", "achievement.description"),
        (("achievement", "image"), None, "achievement.image"),
        (("validFrom",), "yesterday", "validFrom"),
        (("credentialId",), "no-scheme", "credentialId"),
    ],
)
def test_create_credential_names_the_invalid_field(credential_config, path, value, field) -> None:
    target = credential_config
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value

    with pytest.raises(ConfigurationError) as excinfo:
        create_credential(credential_config)
    assert _field_of(excinfo) == field


def test_missing_criteria_narrative_is_rejected(credential_config) -> None:
    credential_config["achievement"]["criteria"] = {"id": "https://example.org/criteria"}
    with pytest.raises(ConfigurationError) as excinfo:
        create_credential(credential_config)
    assert _field_of(excinfo) == "achievement.criteria.narrative"


def test_evidence_entries_are_checked(credential_config) -> None:
    credential_config["achievement"]["evidence"] = [{"id": "https://example.org/e", "type": ["Evidence"]}]
    with pytest.raises(ConfigurationError) as excinfo:
        create_credential(credential_config)
    assert _field_of(excinfo) == "achievement.evidence[0].name"


def test_invalid_valid_until_is_rejected(credential_config) -> None:
    credential_config["validUntil"] = "2027-13-01"
    with pytest.raises(ConfigurationError) as excinfo:
        create_credential(credential_config)
    assert _field_of(excinfo) == "validUntil"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("https://example.org", True),
        ("did:key:z6Mkabc", True),
        ("urn:uuid:1234", True),
        ("mailto:a@example.org", True),
        ("https:/example.org", False),
        ("example.org", False),
        ("", False),
        (None, False),
    ],
)
def test_is_absolute_uri(value, expected: bool) -> None:
    assert is_absolute_uri(value) is expected
