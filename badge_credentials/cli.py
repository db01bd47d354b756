"""
badge-credentials command line.

Generate issuer keys, issue and sign credentials (Data Integrity or JWT),
bake them into SVG badges, extract them again and verify baked badges.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from .bake_badge import bake_badge, extract_badge_with_format
from .config import create_badge_configuration, load_settings
from .encoding import bytes_to_hex, decode_multibase, encode_multibase
from .errors import ConfigurationError, KeyFormatError, OpenBadgesError
from .issue_credential import create_credential
from .jwt_credential import sign_credential_jwt
from .keys import (
    Ed25519KeyPair,
    Ed25519PublicKey,
    RsaKeyPair,
    RsaPublicKey,
    derive_public_key,
    generate_key_id,
    generate_keypair,
    generate_multikey_document,
    generate_rsa_keypair,
    is_did_key,
    public_key_to_did_key,
    validate_public_key,
)
from .logging_config import setup_logging
from .schema import assert_valid_credential
from .sign_credential import sign_credential
from .validate_badge import CheckStatus, validate_badge
from .verify_credential import verify_credential_report

logger = logging.getLogger(__name__)

# Multicodec prefix for Ed25519 private keys
ED25519_PRIV_HEADER = bytes([0x80, 0x26])

STATUS_MARKERS = {
    CheckStatus.SUCCESS: "[ok]  ",
    CheckStatus.WARNING: "[warn]",
    CheckStatus.ERROR: "[fail]",
}


def _read_json(path: Path):
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def _write_text(path: Path, content: str) -> None:
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)


def load_key_file(path: Path) -> Ed25519KeyPair:
    """Load an Ed25519 key pair from a private key file written by keygen."""
    key_doc = _read_json(path)
    secret = key_doc.get('secretKeyMultibase')
    if not secret:
        raise KeyFormatError("Key file has no secretKeyMultibase", {"path": str(path)})
    decoded = decode_multibase(secret)
    if decoded[:2] != ED25519_PRIV_HEADER or len(decoded) != 34:
        raise KeyFormatError("Invalid Ed25519 private key format", {"path": str(path)})
    private_key = bytes_to_hex(decoded[2:])
    return Ed25519KeyPair(private_key, derive_public_key(private_key))


def _load_jwt_public_key(args):
    if args.rsa_public_key:
        return RsaPublicKey(args.rsa_public_key.read_text(encoding='ascii'))
    if args.ed25519_public_key:
        return Ed25519PublicKey(validate_public_key(args.ed25519_public_key))
    return None


def cmd_keygen(args) -> int:
    args.output_dir.mkdir(parents=True, exist_ok=True)

    if args.rsa:
        key_pair = generate_rsa_keypair(args.rsa_bits)
        private_path = args.output_dir / 'rsa-private.pem'
        public_path = args.output_dir / 'rsa-public.pem'
        _write_text(private_path, key_pair.private_key_pem)
        os.chmod(private_path, 0o600)
        _write_text(public_path, key_pair.public_key_pem)
        print(f"Private key saved to: {private_path}")
        print(f"Public key saved to: {public_path}")
        return 0

    key_pair = generate_keypair()
    controller = args.controller or public_key_to_did_key(key_pair.public_key)
    key_id = generate_key_id(key_pair.public_key)
    public_key_doc = generate_multikey_document(key_pair.public_key, key_id, controller)

    private_key_doc = {
        **public_key_doc,
        "secretKeyMultibase": encode_multibase(
            ED25519_PRIV_HEADER + bytes.fromhex(key_pair.private_key)
        ),
    }

    public_key_path = args.output_dir / f"{key_id}-public.json"
    _write_text(public_key_path, json.dumps(public_key_doc, indent=2))
    print(f"Public key saved to: {public_key_path}")

    # Save private key with restrictive permissions
    private_key_path = args.output_dir / f"{key_id}-private.json"
    _write_text(private_key_path, json.dumps(private_key_doc, indent=2))
    os.chmod(private_key_path, 0o600)
    print(f"Private key saved to: {private_key_path}")

    print(f"\nVerification Method ID: {public_key_doc['id']}")
    print(f"Public Key (hex): {key_pair.public_key}")
    if not is_did_key(controller):
        print("\nAdd the following to your issuer profile:")
        print(json.dumps({"verificationMethod": [public_key_doc]}, indent=2))
    return 0


def cmd_multikey(args) -> int:
    key_id = args.key_id or generate_key_id(args.public_key)
    print(json.dumps(generate_multikey_document(args.public_key, key_id, args.controller), indent=2))
    return 0


def _signing_material(args):
    """Return (key material, verification method) from flags or environment."""
    if args.key:
        key = load_key_file(args.key)
        verification_method = args.verification_method or _read_json(args.key).get('id')
        return key, verification_method
    if args.rsa_private_key:
        if not args.rsa_public_key:
            raise ConfigurationError("--rsa-public-key is required with --rsa-private-key")
        key = RsaKeyPair(
            args.rsa_private_key.read_text(encoding='ascii'),
            args.rsa_public_key.read_text(encoding='ascii'),
        )
        if not args.verification_method:
            raise ConfigurationError("--verification-method is required with --rsa-private-key")
        return key, args.verification_method

    badge_config = create_badge_configuration(load_settings())
    return badge_config.signing_key, args.verification_method or badge_config.verification_method


def cmd_issue(args) -> int:
    credential = create_credential(_read_json(args.config))
    assert_valid_credential(credential)

    key, verification_method = _signing_material(args)
    if args.jwt:
        signed = sign_credential_jwt(credential, key, verification_method)
        output = signed
    else:
        signed = sign_credential(credential, key, verification_method)
        output = json.dumps(signed, indent=2)

    if args.bake:
        baked = bake_badge(args.bake.read_text(encoding='utf-8'), signed)
        baked_path = args.bake_output or args.bake
        _write_text(baked_path, baked)
        print(f"Baked credential into: {baked_path}", file=sys.stderr)

    if args.output:
        _write_text(args.output, output)
        print(f"Signed credential saved to: {args.output}", file=sys.stderr)
    else:
        print(output)
    return 0


def cmd_bake(args) -> int:
    raw = args.credential.read_text(encoding='utf-8').strip()
    credential = raw if not raw.startswith('{') else json.loads(raw)
    baked = bake_badge(args.svg.read_text(encoding='utf-8'), credential)
    output_path = args.output or args.svg
    _write_text(output_path, baked)
    print(f"Baked credential into: {output_path}", file=sys.stderr)
    return 0


def cmd_extract(args) -> int:
    extracted = extract_badge_with_format(args.svg.read_text(encoding='utf-8'))
    payload = extracted.payload
    output = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
    print(f"Format: {extracted.format.value}", file=sys.stderr)
    if args.output:
        _write_text(args.output, output)
        print(f"Extracted credential to: {args.output}", file=sys.stderr)
    else:
        print(output)
    return 0


def cmd_verify(args) -> int:
    result = asyncio.run(validate_badge(
        args.svg.read_text(encoding='utf-8'),
        jwt_public_key=_load_jwt_public_key(args),
        timeout=args.timeout,
    ))
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        for check in result.checks:
            print(f"{STATUS_MARKERS[check.status]} {check.name}: {check.message}")
        print(f"\n{'VALID' if result.valid else 'INVALID'} "
              f"({len(result.errors)} errors, {len(result.warnings)} warnings)")
    return 0 if result.valid else 1


def cmd_verify_credential(args) -> int:
    credential = _read_json(args.credential)
    public_key = args.public_key or load_key_file(args.key).public_key
    report = verify_credential_report(credential, public_key)
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print(f"Credential: {report['credential_id']}")
        print(f"Issuer: {report['issuer']}")
        print(f"Subject: {report['subject']}")
        print(f"Achievement: {report['achievement']}")
        for warning in report['warnings']:
            print(f"Warning: {warning}")
        for error in report['errors']:
            print(f"Error: {error}")
        print("VERIFIED" if report['verified'] else "NOT VERIFIED")
    return 0 if report['verified'] else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='badge-credentials',
        description='Issue, bake and verify OpenBadges 3.0 credentials',
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    keygen = subparsers.add_parser('keygen', help='Generate an issuer key pair')
    keygen.add_argument('--output-dir', '-o', type=Path, default=Path('keys'),
                        help='Output directory for key files (default: keys)')
    keygen.add_argument('--controller', type=str,
                        help='Issuer profile URL ending in /api/badge/issuer (default: did:key)')
    keygen.add_argument('--rsa', action='store_true', help='Generate an RSA key pair for RS256 JWTs')
    keygen.add_argument('--rsa-bits', type=int, default=2048, help='RSA key size (default: 2048)')
    keygen.set_defaults(func=cmd_keygen)

    multikey = subparsers.add_parser('multikey', help='Print the Multikey document for a public key')
    multikey.add_argument('public_key', type=str, help='Ed25519 public key (64 hex chars)')
    multikey.add_argument('--controller', required=True, type=str,
                          help='Issuer profile URL or did:key identifier')
    multikey.add_argument('--key-id', type=str, help='Key id (default: key-<first 8 hex chars>)')
    multikey.set_defaults(func=cmd_multikey)

    issue = subparsers.add_parser('issue', help='Create and sign a credential')
    issue.add_argument('config', type=Path, help='Credential configuration JSON file')
    issue.add_argument('--key', '-k', type=Path, help='Ed25519 private key file from keygen')
    issue.add_argument('--rsa-private-key', type=Path, help='RSA private key PEM (JWT only)')
    issue.add_argument('--rsa-public-key', type=Path, help='RSA public key PEM')
    issue.add_argument('--verification-method', type=str,
                       help='Verification method URL (default: from key file or environment)')
    issue.add_argument('--jwt', action='store_true', help='Sign as a JWT instead of a Data Integrity proof')
    issue.add_argument('--bake', type=Path, help='SVG badge to bake the signed credential into')
    issue.add_argument('--bake-output', type=Path, help='Output path for the baked SVG (default: overwrites --bake)')
    issue.add_argument('--output', '-o', type=Path, help='Output path for the signed credential (default: stdout)')
    issue.set_defaults(func=cmd_issue)

    bake = subparsers.add_parser('bake', help='Bake a signed credential into an SVG')
    bake.add_argument('svg', type=Path, help='Path to SVG image file')
    bake.add_argument('credential', type=Path, help='Signed credential JSON or JWT file')
    bake.add_argument('--output', '-o', type=Path, help='Output path for baked SVG (default: overwrites input)')
    bake.set_defaults(func=cmd_bake)

    extract = subparsers.add_parser('extract', help='Extract a credential from a baked SVG')
    extract.add_argument('svg', type=Path, help='Path to baked SVG image file')
    extract.add_argument('--output', '-o', type=Path, help='Output path (default: stdout)')
    extract.set_defaults(func=cmd_extract)

    verify = subparsers.add_parser('verify', help='Run all verification checks on a baked SVG')
    verify.add_argument('svg', type=Path, help='Path to baked SVG image file')
    verify.add_argument('--rsa-public-key', type=Path, help='RSA public key PEM for JWT badges')
    verify.add_argument('--ed25519-public-key', type=str, help='Ed25519 public key (hex) for JWT badges')
    verify.add_argument('--timeout', type=float, help='Overall time limit in seconds')
    verify.add_argument('--json', action='store_true', help='Print the report as JSON')
    verify.set_defaults(func=cmd_verify)

    verify_credential = subparsers.add_parser(
        'verify-credential', help='Verify the Data Integrity proof of a credential JSON file'
    )
    verify_credential.add_argument('credential', type=Path, help='Signed credential JSON file')
    key_group = verify_credential.add_mutually_exclusive_group(required=True)
    key_group.add_argument('--public-key', type=str, help='Ed25519 public key (64 hex chars)')
    key_group.add_argument('--key', '-k', type=Path, help='Key file from keygen')
    verify_credential.add_argument('--json', action='store_true', help='Print the report as JSON')
    verify_credential.set_defaults(func=cmd_verify_credential)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    setup_logging(settings.log_level, json_format=settings.log_json)

    try:
        return args.func(args)
    except (OpenBadgesError, OSError, json.JSONDecodeError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
