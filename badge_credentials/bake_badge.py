"""
Bake an OpenBadges 3.0 credential into an SVG image, and extract it again.

Per the OpenBadges 3.0 baking rules the credential lives in an
<openbadges:credential> element directly under the root <svg> element:
a JWT goes in the element's verify attribute, a Data Integrity
credential goes in the element body as JSON wrapped in CDATA.

Extraction also understands OpenBadges 2.0 <openbadges:assertion>
elements.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from .errors import BakingError, ExtractionError

logger = logging.getLogger(__name__)

# OpenBadges namespace for SVG
OPENBADGES_NS = "https://purl.imsglobal.org/ob/v3p0"

_SVG_OPEN_RE = re.compile(r'<svg(?=[\s>/])[^>]*>', re.IGNORECASE)
_SVG_CLOSE_RE = re.compile(r'</svg\s*>', re.IGNORECASE)
_CREDENTIAL_RE = re.compile(
    r'<openbadges:credential(?P<attrs>[^>]*?)(?:/>|>(?P<body>.*?)</openbadges:credential>)',
    re.DOTALL,
)
_ASSERTION_RE = re.compile(
    r'<openbadges:assertion(?P<attrs>[^>]*?)(?:/>|>(?P<body>.*?)</openbadges:assertion>)',
    re.DOTALL,
)
_VERIFY_ATTR_RE = re.compile(r'''\bverify\s*=\s*(?:"([^"]*)"|'([^']*)')''')
_CDATA_RE = re.compile(r'^<!\[CDATA\[(.*)\]\]>$', re.DOTALL)
_JWT_RE = re.compile(r'^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*$')

REQUIRED_FIELDS = ('@context', 'type', 'issuer', 'credentialSubject')


class BadgeFormat(str, Enum):
    JWT = "ob3-jwt"
    DATA_INTEGRITY = "ob3-data-integrity"
    OB2_ASSERTION = "ob2-assertion"


@dataclass(frozen=True)
class ExtractedBadge:
    format: BadgeFormat
    payload: object


def _has_proof(credential) -> bool:
    proof = credential.get('proof') if isinstance(credential, dict) else None
    return isinstance(proof, list) and len(proof) > 0


def _check_svg(svg_content, error_cls):
    if not isinstance(svg_content, str) or not svg_content.strip():
        raise error_cls("SVG content must be a non-empty string")
    opening = _SVG_OPEN_RE.search(svg_content)
    if not opening:
        raise error_cls("SVG has no opening <svg> tag")
    if not _SVG_CLOSE_RE.search(svg_content, opening.end()):
        raise error_cls("SVG has no closing </svg> tag")
    return opening


def _credential_element(credential) -> str:
    if isinstance(credential, str):
        token = credential.strip()
        if not _JWT_RE.match(token):
            raise BakingError("JWT credential must be a compact JWS (header.payload.signature)")
        return f'<openbadges:credential verify="{token}"></openbadges:credential>'

    if isinstance(credential, dict):
        if not _has_proof(credential):
            raise BakingError(
                "Credential must be signed (non-empty proof list) before baking",
                {"id": credential.get('id')},
            )
        credential_json = json.dumps(credential, indent=2, ensure_ascii=False)
        # "]]>" would end the CDATA section early; it can only occur in strings
        credential_json = credential_json.replace(']]>', ']]\\u003e')
        return (
            '<openbadges:credential><![CDATA[\n'
            f'{credential_json}\n'
            ']]></openbadges:credential>'
        )

    raise BakingError(
        "Credential must be a signed credential object or a JWT string",
        {"type": type(credential).__name__},
    )


def bake_badge(svg_content: str, credential) -> str:
    """
    Embed a signed credential (dict with proof, or JWT string) into an SVG.

    The element is placed right after the opening <svg> tag; a previously
    baked credential is replaced.
    """
    _check_svg(svg_content, BakingError)
    element = _credential_element(credential)

    # Drop any earlier bake so there is exactly one credential element
    svg_content = _CREDENTIAL_RE.sub('', svg_content)

    opening = _SVG_OPEN_RE.search(svg_content)
    tag = opening.group(0)
    if 'xmlns:openbadges' not in tag:
        tag = re.sub(
            r'^<svg', f'<svg xmlns:openbadges="{OPENBADGES_NS}"', tag, count=1, flags=re.IGNORECASE
        )

    baked = (
        svg_content[:opening.start()]
        + tag
        + '\n  ' + element
        + svg_content[opening.end():]
    )
    logger.info("Baked %s credential into SVG", "JWT" if isinstance(credential, str) else "JSON-LD")
    return baked


def _verify_attr(attrs: str):
    match = _VERIFY_ATTR_RE.search(attrs or '')
    if not match:
        return None
    return match.group(1) if match.group(1) is not None else match.group(2)


def _parse_json_body(body: str) -> dict:
    text = body.strip()
    cdata = _CDATA_RE.match(text)
    if cdata:
        text = cdata.group(1).strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError("Baked credential is not valid JSON", {"error": str(exc)}) from exc
    if not isinstance(payload, dict):
        raise ExtractionError("Baked credential must be a JSON object")
    return payload


def extract_badge_with_format(svg_content: str) -> ExtractedBadge:
    """Extract the baked credential and report which format it was baked in."""
    _check_svg(svg_content, ExtractionError)

    match = _CREDENTIAL_RE.search(svg_content)
    if match:
        body = match.group('body') or ''
        verify = _verify_attr(match.group('attrs'))
        if verify is not None and not body.strip():
            token = verify.strip()
            if not _JWT_RE.match(token):
                raise ExtractionError("verify attribute does not hold a JWT")
            return ExtractedBadge(BadgeFormat.JWT, token)
        if not body.strip():
            raise ExtractionError("<openbadges:credential> element is empty")
        credential = _parse_json_body(body)
        if not _has_proof(credential):
            raise ExtractionError("Baked credential has no proof", {"id": credential.get('id')})
        return ExtractedBadge(BadgeFormat.DATA_INTEGRITY, credential)

    match = _ASSERTION_RE.search(svg_content)
    if match:
        body = match.group('body') or ''
        if not body.strip():
            raise ExtractionError(
                "OpenBadges 2.0 assertion has no embedded JSON",
                {"verify": _verify_attr(match.group('attrs'))},
            )
        return ExtractedBadge(BadgeFormat.OB2_ASSERTION, _parse_json_body(body))

    raise ExtractionError("No baked credential found in SVG")


def extract_badge(svg_content: str):
    """
    Extract a baked credential from an SVG image.

    Returns the JWT string or the credential dict; raises ExtractionError
    if nothing usable is baked in.
    """
    return extract_badge_with_format(svg_content).payload


def is_baked_svg(svg_content) -> bool:
    try:
        extract_badge_with_format(svg_content)
    except ExtractionError:
        return False
    return True


def validate_baked_svg(svg_content) -> dict:
    """
    Check a baked SVG without verifying signatures.

    Returns dict with 'valid', 'errors' and the detected 'format'.
    """
    result = {'valid': False, 'errors': [], 'format': None}
    try:
        extracted = extract_badge_with_format(svg_content)
    except ExtractionError as exc:
        result['errors'].append(exc.message)
        return result

    result['format'] = extracted.format.value
    if extracted.format is BadgeFormat.JWT:
        parts = extracted.payload.split('.')
        if len(parts) != 3 or not all(parts):
            result['errors'].append("JWT must have three non-empty segments")
    elif extracted.format is BadgeFormat.DATA_INTEGRITY:
        for field in REQUIRED_FIELDS:
            if not extracted.payload.get(field):
                result['errors'].append(f"Missing required field: {field}")
    else:
        result['errors'].append("OpenBadges 2.0 assertions are not OpenBadges 3.0 credentials")

    result['valid'] = not result['errors']
    return result
