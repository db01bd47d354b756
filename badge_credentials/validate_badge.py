"""
Verification pipeline for baked OpenBadges 3.0 SVGs.

Runs an ordered series of checks and reports every one of them instead
of stopping at the first problem. Only a badge that cannot be extracted
at all (or a JWT that cannot be verified) ends the run early.

Network lookups (issuer profile, key document, achievement) go through an
injectable httpx.AsyncClient, each with its own timeout, all bounded by
an optional overall deadline.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import httpx

from .bake_badge import BadgeFormat, extract_badge_with_format
from .contexts import CREDENTIALS_V2_CONTEXT
from .errors import CanonicalizationError, ExtractionError, KeyFormatError, VerificationError
from .issue_credential import parse_iso8601
from .jwt_credential import decode_jwt_unverified, verify_credential_jwt
from .keys import ISSUER_PATH_SUFFIX, did_key_to_public_key_hex, is_did_key, is_http_url, multibase_to_public_key_hex
from .sign_credential import canonical_fingerprint
from .verify_credential import get_proofs, verify_credential

logger = logging.getLogger(__name__)

ISSUER_TIMEOUT = 5.0
KEY_DOCUMENT_TIMEOUT = 4.0
ACHIEVEMENT_TIMEOUT = 5.0

DEFAULT_USER_AGENT = "badge-credentials-validator/0.1"


class CheckStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ValidationCheck:
    name: str
    status: CheckStatus
    message: str
    details: dict | None = None

    def to_dict(self) -> dict:
        result = {"name": self.name, "status": self.status.value, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        return result


@dataclass(frozen=True)
class ValidationResult:
    checks: list = field(default_factory=list)
    credential: dict | None = None
    format: str | None = None

    @property
    def errors(self) -> list:
        return [c for c in self.checks if c.status is CheckStatus.ERROR]

    @property
    def warnings(self) -> list:
        return [c for c in self.checks if c.status is CheckStatus.WARNING]

    @property
    def valid(self) -> bool:
        return self.credential is not None and not self.errors

    def check(self, name: str) -> ValidationCheck | None:
        """First check with the given name, if any."""
        return next((c for c in self.checks if c.name == name), None)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "format": self.format,
            "checks": [c.to_dict() for c in self.checks],
            "credential": self.credential,
        }


class DeadlineExceeded(Exception):
    """The overall validation deadline ran out before a fetch could start."""


class _Deadline:
    def __init__(self, seconds: float | None):
        self._end = None if seconds is None else time.monotonic() + seconds

    def cap(self, step_timeout: float) -> float:
        if self._end is None:
            return step_timeout
        remaining = self._end - time.monotonic()
        if remaining <= 0:
            raise DeadlineExceeded("Validation deadline exceeded")
        return min(step_timeout, remaining)


# Failures of a single fetch; they become checks, never propagate
_FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, DeadlineExceeded)


def _error_text(exc: Exception) -> str:
    text = str(exc)
    return text or type(exc).__name__


def _issuer_id(credential: dict):
    issuer = credential.get('issuer')
    return issuer.get('id') if isinstance(issuer, dict) else issuer


def _issuer_label(credential: dict):
    issuer = credential.get('issuer')
    if isinstance(issuer, dict):
        return issuer.get('name') or issuer.get('id')
    return issuer


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _subject_achievement(credential: dict):
    subject = credential.get('credentialSubject')
    return (subject if isinstance(subject, dict) else {}).get('achievement')


def _proof_verification_method(proof: dict, checks: list):
    """Return the proof's verificationMethod, or record a proof error and return None."""
    verification_method = proof.get('verificationMethod')
    if isinstance(verification_method, str) and verification_method:
        return verification_method
    checks.append(ValidationCheck(
        "proof", CheckStatus.ERROR, "Proof verificationMethod must be a non-empty string",
        {"verificationMethod": verification_method},
    ))
    return None


class BadgeValidator:
    """
    Validates baked badges.

    Pass ``http_client`` to control transport (tests use
    httpx.MockTransport); otherwise a client is created and owned here.
    ``jwt_public_key`` (Ed25519PublicKey or RsaPublicKey) is required to
    accept JWT badges.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        jwt_public_key=None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._owned_client = http_client is None
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)
        self._jwt_public_key = jwt_public_key
        self._headers = {"Accept": "application/ld+json, application/json", "User-Agent": user_agent}

    async def __aenter__(self) -> "BadgeValidator":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if it was created internally."""
        if self._owned_client:
            await self._http.aclose()

    async def validate(self, svg_content: str, *, timeout: float | None = None) -> ValidationResult:
        """Run every check against a baked SVG. ``timeout`` bounds the whole run, in seconds."""
        deadline = _Deadline(timeout)
        checks: list = []

        credential, badge_format, jwt_algorithm = self._extract(svg_content, checks)
        if credential is None:
            return ValidationResult(checks=checks, credential=None, format=badge_format)

        is_jwt = jwt_algorithm is not None
        issuer_id = self._check_structure(credential, is_jwt, checks)
        if not is_jwt:
            self._check_canonicalization(credential, checks)

        await self._check_issuer_and_proof(credential, jwt_algorithm, issuer_id, checks, deadline)
        await self._check_achievement(credential, checks, deadline)
        self._check_url_format(credential, checks)
        self._check_validity(credential, checks)

        result = ValidationResult(checks=checks, credential=credential, format=badge_format)
        logger.info(
            "Validated badge %s: %d errors, %d warnings",
            credential.get('id'), len(result.errors), len(result.warnings),
            extra={
                "credential_id": credential.get('id'),
                "badge_format": badge_format,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _extract(self, svg_content: str, checks: list) -> tuple:
        try:
            extracted = extract_badge_with_format(svg_content)
        except ExtractionError as exc:
            checks.append(ValidationCheck("extraction", CheckStatus.ERROR, exc.message))
            return None, None, None

        badge_format = extracted.format.value
        if extracted.format is BadgeFormat.OB2_ASSERTION:
            checks.append(ValidationCheck(
                "extraction", CheckStatus.ERROR,
                "OpenBadges 2.0 assertion found; only OpenBadges 3.0 credentials can be verified",
            ))
            return None, badge_format, None

        if extracted.format is BadgeFormat.JWT:
            if self._jwt_public_key is None:
                checks.append(ValidationCheck(
                    "extraction", CheckStatus.ERROR,
                    "Public key not configured for JWT verification",
                ))
                return None, badge_format, None
            try:
                credential = verify_credential_jwt(extracted.payload, self._jwt_public_key)
                header, _ = decode_jwt_unverified(extracted.payload)
            except VerificationError as exc:
                checks.append(ValidationCheck(
                    "extraction", CheckStatus.ERROR, f"JWT verification failed: {exc.message}"
                ))
                return None, badge_format, None
            checks.append(ValidationCheck(
                "extraction", CheckStatus.SUCCESS,
                "JWT credential extracted and signature verified",
                {
                    "credentialId": credential.get('id'),
                    "issuer": _issuer_label(credential),
                    "format": "JWT (Compact JWS)",
                },
            ))
            return credential, badge_format, header.get('alg') or "JWT"

        credential = extracted.payload
        checks.append(ValidationCheck(
            "extraction", CheckStatus.SUCCESS, "Credential extracted successfully",
            {
                "credentialId": credential.get('id'),
                "issuer": _issuer_label(credential),
                "format": "Data Integrity Proof",
            },
        ))
        return credential, badge_format, None

    def _check_structure(self, credential: dict, is_jwt: bool, checks: list):
        issues = []
        contexts = credential.get('@context')
        if not contexts:
            issues.append("Missing @context")
        elif CREDENTIALS_V2_CONTEXT not in (contexts if isinstance(contexts, list) else [contexts]):
            issues.append("Missing W3C Credentials v2 context")

        types = credential.get('type') or []
        if 'VerifiableCredential' not in (types if isinstance(types, list) else [types]):
            issues.append("Missing VerifiableCredential type")

        issuer_id = _issuer_id(credential)
        if not issuer_id or not isinstance(issuer_id, str):
            issuer_id = None
            issues.append("Missing issuer.id")

        subject = credential.get('credentialSubject')
        if not subject:
            issues.append("Missing credentialSubject")
        elif not isinstance(subject, dict):
            issues.append("credentialSubject must be an object")

        if not is_jwt and not get_proofs(credential):
            issues.append("Missing Data Integrity Proof")

        if issues:
            checks.append(ValidationCheck(
                "structure", CheckStatus.ERROR,
                f"Credential structure is invalid: {', '.join(issues)}",
                {"issues": issues},
            ))
        else:
            checks.append(ValidationCheck(
                "structure", CheckStatus.SUCCESS, "Credential structure is valid (OpenBadges 3.0)"
            ))
        return issuer_id

    def _check_canonicalization(self, credential: dict, checks: list) -> None:
        proofs = get_proofs(credential)
        if not proofs or not isinstance(proofs[0], dict):
            checks.append(ValidationCheck(
                "canonicalization", CheckStatus.ERROR, "Canonicalization skipped: no proof to canonicalize"
            ))
            return
        try:
            details = canonical_fingerprint(credential, proofs[0])
        except CanonicalizationError as exc:
            checks.append(ValidationCheck(
                "canonicalization", CheckStatus.ERROR, f"Canonicalization failed: {exc.message}", exc.context or None
            ))
            return
        checks.append(ValidationCheck(
            "canonicalization", CheckStatus.SUCCESS, "Canonicalization completed (URDNA2015)", details
        ))

    async def _check_issuer_and_proof(self, credential, jwt_algorithm, issuer_id, checks, deadline) -> None:
        if not issuer_id:
            return
        if is_did_key(issuer_id):
            self._check_did_issuer(credential, jwt_algorithm, issuer_id, checks)
        else:
            await self._check_http_issuer(credential, jwt_algorithm, issuer_id, checks, deadline)

    def _check_did_issuer(self, credential, jwt_algorithm, issuer_id, checks) -> None:
        checks.append(ValidationCheck(
            "issuer", CheckStatus.SUCCESS, "DID-based issuer (self-sovereign identity)",
            {"issuerId": issuer_id, "type": "did:key"},
        ))
        if jwt_algorithm:
            checks.append(self._jwt_proof_check(jwt_algorithm))
            return

        proofs = get_proofs(credential)
        if not proofs or not isinstance(proofs[0], dict):
            return
        proof = proofs[0]
        verification_method = _proof_verification_method(proof, checks)
        if verification_method is None:
            return
        if not verification_method.startswith(issuer_id):
            checks.append(ValidationCheck(
                "proof", CheckStatus.ERROR, "Verification method does not match issuer DID",
                {"expected": f"{issuer_id}#...", "actual": verification_method},
            ))
            return
        try:
            public_key_hex = did_key_to_public_key_hex(issuer_id)
        except KeyFormatError as exc:
            checks.append(ValidationCheck(
                "proof", CheckStatus.ERROR, f"Issuer DID does not hold an Ed25519 key: {exc.message}"
            ))
            return
        checks.append(self._signature_check(credential, proof, public_key_hex, did_based=True))

    async def _check_http_issuer(self, credential, jwt_algorithm, issuer_id, checks, deadline) -> None:
        try:
            response = await self._get(issuer_id, ISSUER_TIMEOUT, deadline)
        except _FETCH_ERRORS as exc:
            checks.append(ValidationCheck(
                "issuer", CheckStatus.ERROR, f"Failed to fetch issuer profile: {_error_text(exc)}",
                {"issuerId": issuer_id, "errorType": type(exc).__name__},
            ))
            return
        if not response.is_success:
            checks.append(ValidationCheck(
                "issuer", CheckStatus.WARNING,
                f"Issuer profile endpoint returned {response.status_code}",
                {"status": response.status_code},
            ))
            return
        try:
            profile = response.json()
        except ValueError:
            profile = None
        if not isinstance(profile, dict):
            checks.append(ValidationCheck(
                "issuer", CheckStatus.WARNING, "Issuer profile is not a JSON object", {"issuerId": issuer_id}
            ))
            return

        methods = profile.get('verificationMethod')
        methods = [m for m in methods if isinstance(m, dict)] if isinstance(methods, list) else []
        checks.append(ValidationCheck(
            "issuer", CheckStatus.SUCCESS, "Issuer profile retrieved successfully",
            {"issuerName": profile.get('name'), "hasVerificationMethod": bool(methods)},
        ))

        if jwt_algorithm:
            checks.append(self._jwt_proof_check(jwt_algorithm))
            return

        proofs = get_proofs(credential)
        if not proofs or not isinstance(proofs[0], dict):
            return
        proof = proofs[0]
        verification_method = _proof_verification_method(proof, checks)
        if verification_method is None:
            return
        method = next((m for m in methods if m.get('id') == verification_method), None)
        if method is None:
            checks.append(ValidationCheck(
                "proof", CheckStatus.WARNING, "Verification method not found in issuer profile",
                {
                    "expected": verification_method,
                    "available": [m.get('id') for m in methods],
                },
            ))
            return

        public_key_hex = await self._check_controller(verification_method, method, issuer_id, checks, deadline)
        if public_key_hex is None:
            checks.append(ValidationCheck(
                "proof", CheckStatus.WARNING,
                "Signature not checked: no usable public key for the verification method",
                {"verificationMethod": verification_method},
            ))
            return
        checks.append(self._signature_check(credential, proof, public_key_hex, did_based=False))

    async def _check_controller(self, verification_method, method, issuer_id, checks, deadline):
        """Cross-check controller and key document; return the key (hex) if one was found."""
        issues = []
        controller = method.get('controller')
        if not controller:
            issues.append("Missing controller on verification method")
        elif not isinstance(controller, str):
            issues.append("Controller on verification method must be a string")
        else:
            if controller != issuer_id:
                issues.append("Controller does not match issuer.id")
            if not controller.startswith('did:') and not controller.endswith(ISSUER_PATH_SUFFIX):
                issues.append(f"HTTP(S) controller does not end with {ISSUER_PATH_SUFFIX}")

        multibase = None
        try:
            response = await self._get(verification_method, KEY_DOCUMENT_TIMEOUT, deadline)
            if response.is_success:
                key_document = response.json()
                if not isinstance(key_document, dict):
                    issues.append("Key document is not a JSON object")
                else:
                    if key_document.get('controller') and key_document['controller'] != issuer_id:
                        issues.append("Key document controller mismatch issuer.id")
                    multibase = key_document.get('publicKeyMultibase')
                    if not multibase:
                        issues.append("Missing publicKeyMultibase in key document")
            else:
                issues.append(f"Failed to fetch key document ({response.status_code})")
        except _FETCH_ERRORS as exc:
            issues.append(f"Key document fetch error: {_error_text(exc)}")
        except ValueError:
            issues.append("Key document is not valid JSON")

        public_key_hex = None
        candidate = multibase or method.get('publicKeyMultibase')
        if candidate:
            try:
                public_key_hex = multibase_to_public_key_hex(candidate)
            except KeyFormatError as exc:
                issues.append(f"Invalid publicKeyMultibase: {exc.message}")

        if issues:
            checks.append(ValidationCheck(
                "controller", CheckStatus.ERROR, "Controller / key document consistency issues",
                {"issues": issues},
            ))
        else:
            checks.append(ValidationCheck(
                "controller", CheckStatus.SUCCESS, "Controller and key document are consistent",
                {"controller": controller},
            ))
        return public_key_hex

    def _signature_check(self, credential, proof, public_key_hex, *, did_based: bool) -> ValidationCheck:
        try:
            is_valid = verify_credential(credential, public_key_hex)
        except VerificationError as exc:
            return ValidationCheck(
                "proof", CheckStatus.ERROR, f"Signature verification error: {exc.message}",
                {"error": str(exc)},
            )
        if is_valid:
            return ValidationCheck(
                "proof", CheckStatus.SUCCESS,
                f"Cryptographic proof verified successfully ({proof.get('cryptosuite')})",
                {
                    "cryptosuite": proof.get('cryptosuite'),
                    "created": proof.get('created'),
                    "verificationMethod": proof.get('verificationMethod'),
                    "didBased": did_based,
                    "signatureValid": True,
                },
            )
        return ValidationCheck(
            "proof", CheckStatus.ERROR, "Cryptographic signature verification failed",
            {
                "cryptosuite": proof.get('cryptosuite'),
                "verificationMethod": proof.get('verificationMethod'),
                "signatureValid": False,
            },
        )

    def _jwt_proof_check(self, algorithm: str) -> ValidationCheck:
        return ValidationCheck(
            "proof", CheckStatus.SUCCESS,
            f"JWT signature verified during extraction ({algorithm})",
            {"cryptosuite": f"{algorithm} (JWT)", "signatureValid": True},
        )

    async def _check_achievement(self, credential, checks, deadline) -> None:
        achievement = _subject_achievement(credential)
        achievement_id = achievement.get('id') if isinstance(achievement, dict) else achievement
        if not achievement_id or not isinstance(achievement_id, str):
            return
        if not is_http_url(achievement_id):
            checks.append(ValidationCheck(
                "achievement", CheckStatus.WARNING,
                "Achievement id is not an HTTP(S) URL; definition not fetched",
                {"achievementId": achievement_id},
            ))
            return
        try:
            response = await self._get(achievement_id, ACHIEVEMENT_TIMEOUT, deadline)
        except _FETCH_ERRORS as exc:
            checks.append(ValidationCheck(
                "achievement", CheckStatus.WARNING,
                f"Could not fetch achievement definition: {_error_text(exc)}",
                {"achievementId": achievement_id, "errorType": type(exc).__name__},
            ))
            return
        if not response.is_success:
            checks.append(ValidationCheck(
                "achievement", CheckStatus.WARNING,
                f"Achievement endpoint returned {response.status_code}",
            ))
            return
        try:
            definition = response.json()
        except ValueError:
            definition = None
        if not isinstance(definition, dict):
            checks.append(ValidationCheck(
                "achievement", CheckStatus.WARNING, "Achievement definition is not a JSON object"
            ))
            return
        checks.append(ValidationCheck(
            "achievement", CheckStatus.SUCCESS, "Achievement definition retrieved",
            {"name": definition.get('name'), "hasCriteria": bool(definition.get('criteria'))},
        ))

    def _check_url_format(self, credential, checks) -> None:
        achievement = _subject_achievement(credential)
        if not isinstance(achievement, dict):
            return
        issues = []
        evidence = achievement.get('evidence')
        if isinstance(evidence, list):
            for index, item in enumerate(evidence):
                if isinstance(item, dict) and isinstance(item.get('id'), str) and ISSUER_PATH_SUFFIX in item['id']:
                    issues.append(f"Evidence[{index}] URL incorrectly contains {ISSUER_PATH_SUFFIX}")

        issuer = credential.get('issuer')
        issuer_url = issuer.get('url') if isinstance(issuer, dict) else None
        if isinstance(issuer_url, str) and issuer_url.endswith(ISSUER_PATH_SUFFIX):
            issues.append(
                f"issuer.url should point to organization homepage, not {ISSUER_PATH_SUFFIX} endpoint"
            )

        if issues:
            checks.append(ValidationCheck(
                "url-format", CheckStatus.WARNING, "URL format issues detected", {"issues": issues}
            ))
        elif evidence or issuer_url:
            checks.append(ValidationCheck(
                "url-format", CheckStatus.SUCCESS, "Evidence and issuer URLs are correctly formatted"
            ))

    def _check_validity(self, credential, checks) -> None:
        valid_from = credential.get('validFrom')
        valid_until = credential.get('validUntil')
        if not valid_from and not valid_until:
            return
        now = datetime.now(timezone.utc)
        try:
            start = _as_utc(parse_iso8601(valid_from)) if valid_from else None
            end = _as_utc(parse_iso8601(valid_until)) if valid_until else None
        except (TypeError, ValueError):
            checks.append(ValidationCheck(
                "validity", CheckStatus.ERROR, "Credential validity period is not a valid ISO 8601 timestamp",
                {"validFrom": valid_from, "validUntil": valid_until},
            ))
            return

        if end is not None and end < now:
            checks.append(ValidationCheck(
                "validity", CheckStatus.ERROR, "Credential has expired",
                {"validUntil": valid_until, "current": now.isoformat()},
            ))
        elif start is not None and start > now:
            checks.append(ValidationCheck(
                "validity", CheckStatus.WARNING, "Credential is not yet valid",
                {"validFrom": valid_from, "current": now.isoformat()},
            ))
        else:
            checks.append(ValidationCheck(
                "validity", CheckStatus.SUCCESS, "Credential is currently valid",
                {"validFrom": valid_from, "validUntil": valid_until},
            ))

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get(self, url: str, step_timeout: float, deadline: _Deadline) -> httpx.Response:
        budget = deadline.cap(step_timeout)
        return await asyncio.wait_for(
            self._http.get(url, headers=self._headers, timeout=budget), budget
        )


async def validate_badge(
    svg_content: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    jwt_public_key=None,
    timeout: float | None = None,
) -> ValidationResult:
    """Validate a baked SVG badge; see BadgeValidator."""
    async with BadgeValidator(http_client=http_client, jwt_public_key=jwt_public_key) as validator:
        return await validator.validate(svg_content, timeout=timeout)
