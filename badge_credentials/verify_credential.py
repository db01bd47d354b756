"""
Verify an OpenBadges 3.0 credential signed with a Data Integrity proof.

Only the eddsa-rdfc-2022 cryptosuite is supported. The first proof in
the credential's proof list is the one verified.
"""

import logging

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .encoding import decode_multibase, hex_to_bytes
from .errors import CanonicalizationError, EncodingError, KeyFormatError, VerificationError
from .keys import validate_public_key
from .sign_credential import CRYPTOSUITE, PROOF_TYPE, signing_input

logger = logging.getLogger(__name__)

REQUIRED_PROOF_FIELDS = ('type', 'cryptosuite', 'created', 'verificationMethod', 'proofPurpose', 'proofValue')


def get_proofs(credential: dict) -> list:
    """Return the credential's proofs as a list (a single object is accepted)."""
    proof = credential.get('proof') if isinstance(credential, dict) else None
    if isinstance(proof, dict):
        return [proof]
    if isinstance(proof, list):
        return proof
    return []


def verify_credential(credential: dict, public_key_hex: str) -> bool:
    """
    Verify the first Data Integrity proof of a signed credential.

    Returns False when the signature does not verify. Raises
    VerificationError for structurally unusable input: no key, no proof,
    an unsupported proof type or cryptosuite, a malformed proof or a
    document that cannot be canonicalized.
    """
    if not public_key_hex:
        raise VerificationError("Public key is required for verification")
    try:
        verify_key = VerifyKey(hex_to_bytes(validate_public_key(public_key_hex)))
    except KeyFormatError as exc:
        raise VerificationError(exc.message, exc.context) from exc

    proofs = get_proofs(credential)
    if not proofs:
        raise VerificationError("Credential has no proof")
    proof = proofs[0]
    if not isinstance(proof, dict):
        raise VerificationError("Proof must be a JSON object")

    if proof.get('type') != PROOF_TYPE:
        raise VerificationError(
            f"Unsupported proof type: {proof.get('type')}", {"type": proof.get('type')}
        )
    if proof.get('cryptosuite') != CRYPTOSUITE:
        raise VerificationError(
            f"Unsupported cryptosuite: {proof.get('cryptosuite')}",
            {"cryptosuite": proof.get('cryptosuite')},
        )
    missing = [field for field in REQUIRED_PROOF_FIELDS if not proof.get(field)]
    if missing:
        raise VerificationError("Proof is missing required fields", {"missing": missing})

    try:
        signature = decode_multibase(proof['proofValue'])
    except EncodingError as exc:
        raise VerificationError("Failed to decode proofValue", {"error": exc.message}) from exc

    try:
        message = signing_input(credential, proof)
    except CanonicalizationError as exc:
        raise VerificationError("Canonicalization failed", exc.context) from exc

    try:
        verify_key.verify(message, signature)
    except (BadSignatureError, ValueError):
        # ValueError: signature of the wrong length
        logger.info("Signature verification failed for %s", credential.get('id'))
        return False
    return True


def verify_credential_report(credential: dict, public_key_hex: str) -> dict:
    """
    Verify a credential and summarize it.

    Returns dict with verification result and details; never raises for
    verification problems, which are reported under 'errors'.
    """
    result = {
        'verified': False,
        'errors': [],
        'warnings': [],
        'credential_id': credential.get('id', 'unknown'),
        'issuer': None,
        'subject': None,
        'achievement': None,
        'proof': None,
    }

    proofs = get_proofs(credential)
    if proofs and isinstance(proofs[0], dict):
        result['proof'] = {
            'type': proofs[0].get('type'),
            'cryptosuite': proofs[0].get('cryptosuite'),
            'created': proofs[0].get('created'),
            'verificationMethod': proofs[0].get('verificationMethod'),
        }
    if len(proofs) > 1:
        result['warnings'].append(f"Only the first of {len(proofs)} proofs was verified")

    try:
        result['verified'] = verify_credential(credential, public_key_hex)
    except VerificationError as exc:
        result['errors'].append(str(exc))
        return result
    if not result['verified']:
        result['errors'].append("Signature verification failed")

    issuer = credential.get('issuer')
    if isinstance(issuer, dict):
        result['issuer'] = issuer.get('name', issuer.get('id'))
    else:
        result['issuer'] = issuer

    subject = credential.get('credentialSubject') or {}
    result['subject'] = subject.get('id', 'unknown')
    result['achievement'] = (subject.get('achievement') or {}).get('name', 'unknown')

    return result
