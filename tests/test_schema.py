from __future__ import annotations

import threading

import pytest

from badge_credentials import schema
from badge_credentials.errors import ValidationError
from badge_credentials.issue_credential import create_credential
from badge_credentials.schema import assert_valid_credential, get_validator, validate_credential


def test_full_sample_passes(credential_config) -> None:
    credential_config["validUntil"] = "2027-01-01T00:00:00Z"
    credential_config["issuer"]["email"] = "badges@example.org"
    credential_config["achievement"]["evidence"] = [
        {"id": "https://example.org/talks/1", "type": ["Evidence"], "name": "Talk recording"}
    ]
    result = validate_credential(create_credential(credential_config))
    assert result.valid, result.to_dict()
    assert result.to_dict() == {"valid": True}


def test_signed_credential_passes(signed_credential) -> None:
    assert validate_credential(signed_credential).valid
    assert_valid_credential(signed_credential)


def test_missing_valid_from_names_the_field(credential) -> None:
    del credential["validFrom"]
    result = validate_credential(credential)
    assert not result.valid
    assert [e.field for e in result.errors] == ["validFrom"]


def test_nested_errors_use_dotted_paths(credential) -> None:
    del credential["credentialSubject"]["achievement"]["criteria"]
    credential["issuer"]["url"] = 42

    fields = {e.field for e in validate_credential(credential).errors}
    assert "credentialSubject.achievement.criteria" in fields
    assert "issuer.url" in fields


def test_bad_date_time_format_is_reported(credential) -> None:
    credential["validFrom"] = "January 1st"
    result = validate_credential(credential)
    assert [e.field for e in result.errors] == ["validFrom"]


def test_non_object_reports_root_path() -> None:
    result = validate_credential([])
    assert result.errors[0].field == "$"


def test_assert_valid_credential_raises_with_field_errors(credential) -> None:
    del credential["validFrom"]
    with pytest.raises(ValidationError) as excinfo:
        assert_valid_credential(credential)
    assert excinfo.value.errors[0]["field"] == "validFrom"
    assert "validFrom" in excinfo.value.message


def test_validator_is_built_once_across_threads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(schema, "_validator", None)
    calls = []
    original = schema.load_schema

    def counting_load_schema() -> dict:
        calls.append(1)
        return original()

    monkeypatch.setattr(schema, "load_schema", counting_load_schema)

    seen = []
    threads = [threading.Thread(target=lambda: seen.append(get_validator())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert all(v is seen[0] for v in seen)
