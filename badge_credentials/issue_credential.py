"""
Create unsigned OpenBadges 3.0 AchievementCredentials.

The configuration is a plain mapping using the credential's own field
names; every field is validated before anything is built.
"""

import re
import uuid
from datetime import datetime

from .errors import ConfigurationError

OB_CONTEXT = [
    "https://www.w3.org/ns/credentials/v2",
    "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
]
CREDENTIAL_TYPE = ["VerifiableCredential", "AchievementCredential"]

_URI_SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:\S+$')


def is_absolute_uri(value) -> bool:
    """True for absolute URIs: http(s) URLs, did:, urn:, mailto: and the like."""
    if not isinstance(value, str) or not _URI_SCHEME_RE.match(value):
        return False
    scheme, rest = value.split(':', 1)
    if scheme.lower() in ('http', 'https'):
        return rest.startswith('//') and len(rest) > 2
    return True


def parse_iso8601(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing 'Z'."""
    if not isinstance(value, str) or not value:
        raise ValueError("empty timestamp")
    if value.endswith('Z') or value.endswith('z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def _fail(message: str, field: str, value=None):
    raise ConfigurationError(message, {"field": field, "value": value})


def _require_text(value, field: str, label: str):
    if not isinstance(value, str) or not value.strip():
        _fail(f"{label} is required", field, value)


def _require_uri(value, field: str, label: str):
    if not value or not isinstance(value, str):
        _fail(f"{label} is required", field, value)
    if not is_absolute_uri(value):
        _fail(f"{label} must be a valid URL", field, value)


def _validate_timestamp(value, field: str):
    try:
        parse_iso8601(value)
    except (TypeError, ValueError):
        _fail(f"{field} must be a valid ISO 8601 timestamp", field, value)


def validate_issuer_config(issuer) -> None:
    if not isinstance(issuer, dict):
        _fail("Issuer profile is required", "issuer", issuer)
    _require_uri(issuer.get('id'), 'issuer.id', "Issuer ID")
    _require_text(issuer.get('name'), 'issuer.name', "Issuer name")
    _require_uri(issuer.get('url'), 'issuer.url', "Issuer URL")
    if issuer.get('email') is not None and not isinstance(issuer['email'], str):
        _fail("Issuer email must be a string", 'issuer.email', issuer['email'])
    image = issuer.get('image')
    if image:
        if not isinstance(image, dict):
            _fail("Issuer image must be an object", 'issuer.image', image)
        _require_uri(image.get('id'), 'issuer.image.id', "Issuer image ID")


def validate_subject_config(subject) -> None:
    if not isinstance(subject, dict):
        _fail("Subject profile is required", "subject", subject)
    if not isinstance(subject.get('id'), str) or not subject['id']:
        _fail("Subject ID is required", 'subject.id', subject.get('id'))
    types = subject.get('type')
    if not isinstance(types, list) or not types:
        _fail("Subject type array is required", 'subject.type', types)
    if 'AchievementSubject' not in types:
        _fail('Subject type must include "AchievementSubject"', 'subject.type', types)


def validate_achievement_config(achievement) -> None:
    if not isinstance(achievement, dict):
        _fail("Achievement is required", "achievement", achievement)
    _require_uri(achievement.get('id'), 'achievement.id', "Achievement ID")
    _require_text(achievement.get('name'), 'achievement.name', "Achievement name")
    _require_text(
        achievement.get('description'), 'achievement.description', "Achievement description"
    )
    criteria = achievement.get('criteria')
    if not isinstance(criteria, dict):
        _fail("Achievement criteria narrative is required", 'achievement.criteria.narrative')
    _require_text(
        criteria.get('narrative'),
        'achievement.criteria.narrative',
        "Achievement criteria narrative",
    )
    if criteria.get('id') is not None:
        _require_uri(criteria['id'], 'achievement.criteria.id', "Criteria ID")

    image = achievement.get('image')
    if not isinstance(image, dict) or not image.get('id'):
        _fail("Achievement image is required", 'achievement.image', image)
    _require_uri(image['id'], 'achievement.image.id', "Achievement image ID")

    for index, evidence in enumerate(achievement.get('evidence') or []):
        field = f'achievement.evidence[{index}]'
        if not isinstance(evidence, dict):
            _fail(f"Evidence[{index}] must be an object", field, evidence)
        if not isinstance(evidence.get('id'), str) or not evidence['id']:
            _fail(f"Evidence[{index}] ID is required", f'{field}.id', evidence.get('id'))
        types = evidence.get('type')
        if not isinstance(types, list) or not types:
            _fail(f"Evidence[{index}] type array is required", f'{field}.type', types)
        if not isinstance(evidence.get('name'), str) or not evidence['name']:
            _fail(f"Evidence[{index}] name is required", f'{field}.name', evidence.get('name'))


def validate_credential_config(config) -> None:
    if not isinstance(config, dict):
        raise ConfigurationError("Credential configuration must be a mapping")
    credential_id = config.get('credentialId')
    if credential_id is not None:
        _require_uri(credential_id, 'credentialId', "Credential ID")

    if not config.get('validFrom') or not isinstance(config['validFrom'], str):
        _fail("validFrom timestamp is required", 'validFrom', config.get('validFrom'))
    _validate_timestamp(config['validFrom'], 'validFrom')
    if config.get('validUntil'):
        _validate_timestamp(config['validUntil'], 'validUntil')

    validate_issuer_config(config.get('issuer'))
    validate_subject_config(config.get('subject'))
    validate_achievement_config(config.get('achievement'))


def build_issuer_profile(issuer: dict) -> dict:
    profile = {
        "id": issuer['id'],
        "type": ["Profile"],
        "name": issuer['name'],
        "url": issuer['url'],
    }
    if issuer.get('email'):
        profile['email'] = issuer['email']
    if issuer.get('description'):
        profile['description'] = issuer['description']
    if issuer.get('image'):
        profile['image'] = {"id": issuer['image']['id'], "type": "Image"}
    return profile


def build_achievement(achievement: dict, issuer_profile: dict) -> dict:
    criteria = {"narrative": achievement['criteria']['narrative']}
    if achievement['criteria'].get('id'):
        criteria['id'] = achievement['criteria']['id']

    image = {"id": achievement['image']['id'], "type": "Image"}
    if achievement['image'].get('caption'):
        image['caption'] = achievement['image']['caption']

    built = {
        "id": achievement['id'],
        "type": ["Achievement"],
        "name": achievement['name'],
        "description": achievement['description'],
        "criteria": criteria,
        "image": image,
        # OB 3.0 names the achievement's issuer "creator"
        "creator": dict(issuer_profile),
    }
    if achievement.get('evidence'):
        built['evidence'] = [dict(e) for e in achievement['evidence']]
    return built


def create_credential(config: dict) -> dict:
    """
    Create an unsigned AchievementCredential.

    Config keys: credentialId (optional, defaults to a urn:uuid), name
    (optional, defaults to the achievement name), issuer, subject,
    achievement, validFrom, validUntil (optional).
    Raises ConfigurationError naming the offending field.
    """
    validate_credential_config(config)

    issuer = build_issuer_profile(config['issuer'])
    achievement = build_achievement(config['achievement'], issuer)

    subject = config['subject']
    credential_subject = {
        "id": subject['id'],
        "type": list(subject['type']),
        "achievement": achievement,
    }
    if subject.get('name'):
        credential_subject['name'] = subject['name']

    credential = {
        "@context": list(OB_CONTEXT),
        "id": config.get('credentialId') or f"urn:uuid:{uuid.uuid4()}",
        "type": list(CREDENTIAL_TYPE),
        "name": config.get('name') or achievement['name'],
        "credentialSubject": credential_subject,
        "issuer": issuer,
        "validFrom": config['validFrom'],
    }
    if config.get('validUntil'):
        credential['validUntil'] = config['validUntil']

    return credential
