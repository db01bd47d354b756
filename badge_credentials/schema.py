"""
JSON Schema (draft 2019-09) validation for AchievementCredentials.

The bundled schema is compiled once, on first use, into a shared
validator. Initialization is lock-guarded; the compiled validator is
read-only afterwards and safe to share between threads.
"""

import json
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from jsonschema import Draft201909Validator, FormatChecker

from .errors import ValidationError

SCHEMA_FILE = "ob_v3p0_achievementcredential_schema.json"

_REQUIRED_RE = re.compile(r"^'(?P<name>[^']+)' is a required property")

_validator = None
_validator_lock = threading.Lock()


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    value: object = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "value": self.value}


@dataclass(frozen=True)
class SchemaResult:
    valid: bool
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {"valid": self.valid}
        if self.errors:
            result["errors"] = [e.to_dict() for e in self.errors]
        return result


def load_schema() -> dict:
    with open(Path(__file__).parent / "schemas" / SCHEMA_FILE, encoding="utf-8") as f:
        return json.load(f)


def get_validator() -> Draft201909Validator:
    """Return the shared compiled validator, building it on first call."""
    global _validator
    if _validator is None:
        with _validator_lock:
            if _validator is None:
                schema = load_schema()
                Draft201909Validator.check_schema(schema)
                _validator = Draft201909Validator(schema, format_checker=FormatChecker())
    return _validator


def _field_path(error) -> str:
    parts = [str(p) for p in error.absolute_path]
    if error.validator == "required":
        match = _REQUIRED_RE.match(error.message)
        if match:
            parts.append(match.group("name"))
    return ".".join(parts) or "$"


def validate_credential(credential) -> SchemaResult:
    """Validate a credential; errors carry dotted field paths."""
    errors = [
        FieldError(field=_field_path(e), message=e.message, value=e.instance)
        for e in sorted(get_validator().iter_errors(credential), key=lambda e: list(map(str, e.absolute_path)))
    ]
    return SchemaResult(valid=not errors, errors=errors)


def assert_valid_credential(credential) -> None:
    result = validate_credential(credential)
    if not result.valid:
        details = "\n".join(f"{e.field}: {e.message}" for e in result.errors)
        raise ValidationError(
            f"Credential failed schema validation:\n{details}",
            errors=[e.to_dict() for e in result.errors],
        )
