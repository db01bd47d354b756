"""
Sign an OpenBadges 3.0 credential using Ed25519 and a Data Integrity proof.

Uses the eddsa-rdfc-2022 cryptosuite: the credential and the proof
configuration are canonicalized separately with RDF Dataset
Canonicalization (URDNA2015), concatenated and signed.
"""

import copy
import hashlib
import logging
from datetime import datetime, timezone

from nacl.signing import SigningKey
from pyld import jsonld

from .contexts import CREDENTIALS_V2_CONTEXT, check_contexts, document_loader
from .encoding import encode_multibase, hex_to_bytes
from .errors import CanonicalizationError, ConfigurationError, KeyFormatError, SigningError
from .issue_credential import is_absolute_uri
from .keys import Ed25519KeyPair, derive_public_key, validate_public_key

logger = logging.getLogger(__name__)

PROOF_TYPE = "DataIntegrityProof"
CRYPTOSUITE = "eddsa-rdfc-2022"
PROOF_PURPOSE = "assertionMethod"


def canonicalize(document: dict) -> str:
    """
    Canonicalize a JSON-LD document to N-Quads using URDNA2015.

    Only the embedded contexts are resolvable; anything else raises
    CanonicalizationError.
    """
    if not isinstance(document, dict):
        raise CanonicalizationError("Document must be a JSON object")
    check_contexts(document)
    try:
        normalized = jsonld.normalize(
            copy.deepcopy(document),
            {
                'algorithm': 'URDNA2015',
                'format': 'application/n-quads',
                'documentLoader': document_loader,
            },
        )
    except jsonld.JsonLdError as exc:
        raise CanonicalizationError(
            "Failed to canonicalize JSON-LD document", {"error": str(exc)}
        ) from exc
    logger.debug("Canonicalized document into %d N-Quads", normalized.count('\n'))
    return normalized


def create_proof_config(verification_method: str, created: str) -> dict:
    """Create the proof configuration object (proof without proofValue)."""
    return {
        "type": PROOF_TYPE,
        "created": created,
        "verificationMethod": verification_method,
        "cryptosuite": CRYPTOSUITE,
        "proofPurpose": PROOF_PURPOSE,
    }


def canonicalize_for_proof(credential: dict, proof_config: dict) -> tuple:
    """
    Canonicalize the credential (without proof) and the proof config.

    Returns (canonical_document, canonical_proof) as N-Quads strings.
    """
    unsigned = {k: v for k, v in credential.items() if k != 'proof'}
    skeleton = {k: v for k, v in proof_config.items() if k not in ('proofValue', '@context')}
    # The proof config is canonicalized on its own, so it needs a context
    skeleton_with_context = {"@context": CREDENTIALS_V2_CONTEXT, **skeleton}
    return canonicalize(unsigned), canonicalize(skeleton_with_context)


def signing_input(credential: dict, proof_config: dict) -> bytes:
    canonical_document, canonical_proof = canonicalize_for_proof(credential, proof_config)
    return (canonical_document + canonical_proof).encode('utf-8')


def canonical_fingerprint(credential: dict, proof_config: dict) -> dict:
    """SHA-256 fingerprint of the canonical signing input, for diagnostics."""
    canonical_document, canonical_proof = canonicalize_for_proof(credential, proof_config)
    digest = hashlib.sha256((canonical_document + canonical_proof).encode('utf-8'))
    return {
        "canonicalDocLines": len(canonical_document.splitlines()),
        "canonicalProofLines": len(canonical_proof.splitlines()),
        "canonicalizationResult": digest.hexdigest(),
    }


def _check_signing_config(key_pair, verification_method) -> bytes:
    if not isinstance(key_pair, Ed25519KeyPair):
        raise ConfigurationError(
            "Data Integrity signing requires an Ed25519 key pair",
            {"keyType": type(key_pair).__name__},
        )
    try:
        public_key = validate_public_key(key_pair.public_key)
        derived = derive_public_key(key_pair.private_key)
    except KeyFormatError as exc:
        raise ConfigurationError(exc.message, exc.context) from exc
    if not is_absolute_uri(verification_method):
        raise ConfigurationError(
            "Verification method must be a valid URL",
            {"verificationMethod": verification_method},
        )
    if derived != public_key:
        raise SigningError(
            "Public key does not match the private key",
            {"expected": public_key, "derived": derived},
        )
    return hex_to_bytes(key_pair.private_key)


def sign_credential(credential: dict, key_pair: Ed25519KeyPair, verification_method: str) -> dict:
    """
    Sign a credential using the eddsa-rdfc-2022 cryptosuite.

    Process:
    1. Check the key pair and derive the public key from the private key
    2. Create the proof configuration (created = now)
    3. Canonicalize credential and proof configuration separately
    4. Sign the concatenated N-Quads with Ed25519
    5. Append the completed proof to a copy of the credential's proof list
    """
    if not isinstance(credential, dict):
        raise SigningError("Credential must be a JSON object")
    seed = _check_signing_config(key_pair, verification_method)

    created = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
    proof_config = create_proof_config(verification_method, created)

    try:
        message = signing_input(credential, proof_config)
    except CanonicalizationError as exc:
        raise SigningError("Failed to canonicalize credential", exc.context) from exc

    signature = SigningKey(seed).sign(message).signature
    proof = {**proof_config, "proofValue": encode_multibase(signature)}

    signed = copy.deepcopy(credential)
    existing = signed.get('proof')
    if existing is None:
        proofs = []
    elif isinstance(existing, list):
        proofs = existing
    else:
        proofs = [existing]
    signed['proof'] = proofs + [proof]

    logger.info(
        "Signed credential %s with %s", credential.get('id'), verification_method,
        extra={"credential_id": credential.get('id'), "verification_method": verification_method},
    )
    return signed
