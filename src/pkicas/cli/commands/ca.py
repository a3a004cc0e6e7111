"""CA management subcommands."""

from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import NoReturn

log = logging.getLogger(__name__)


def run_ca(settings, args) -> None:
    """Handle ca subcommands."""
    if args.ca_command == "root":
        _ca_root(settings)
    elif args.ca_command == "create":
        _ca_create(settings, args)
    elif args.ca_command == "test-sign":
        _ca_test_sign(settings)
    else:
        print("error: missing ca subcommand (root, create, test-sign)", file=sys.stderr)
        sys.exit(1)


def _fail(message: str) -> NoReturn:
    print(f"error: {message}", file=sys.stderr)
    sys.exit(1)


def _load_backend(settings):
    from pkicas.cas import CASError, new_cas
    from pkicas.config import build_options

    try:
        options = build_options(settings)
        return options, new_cas(options)
    except CASError as exc:
        _fail(f"failed to load CAS backend: {exc.detail}")


def _ca_root(settings) -> None:
    """Print the root certificate of the configured authority."""
    from pkicas.cas import CASError
    from pkicas.cas.pemutil import encode_certificate
    from pkicas.config import build_options
    from pkicas.pki import discover_root

    try:
        options = build_options(settings)
        discovered = discover_root(options)
    except CASError as exc:
        _fail(f"failed to fetch root certificate: {exc.detail}")

    if discovered is None:
        _fail(f"backend '{options.type}' cannot return root certificates")

    sys.stdout.write(encode_certificate(discovered.certificate))
    print(f"Root fingerprint (sha256): {discovered.fingerprint}")


def _parent_for(options, parent_name: str):
    """Resolve the parent authority of a new intermediate."""
    from pkicas.cas import CreateCertificateAuthorityResponse

    if parent_name:
        return CreateCertificateAuthorityResponse(name=parent_name, certificate=None)

    if options.issuer is not None and options.signer is not None:
        return CreateCertificateAuthorityResponse(
            name=options.issuer.subject.rfc4514_string(),
            certificate=options.issuer,
            certificate_chain=list(options.certificate_chain),
            signer=options.signer,
        )

    _fail("intermediate authorities need --parent or a configured softcas issuer")


def _ca_create(settings, args) -> None:
    """Create a root or intermediate authority."""
    from cryptography import x509
    from cryptography.hazmat.primitives import serialization
    from cryptography.x509.oid import NameOID

    from pkicas.cas import (
        CASError,
        CertificateAuthorityType,
        CertificateTemplate,
        CreateCertificateAuthorityRequest,
        require_creator,
    )
    from pkicas.cas.pemutil import encode_certificate, encode_chain, fingerprint

    options, cas = _load_backend(settings)
    common_name = args.common_name or args.name or "PKICAS Certificate Authority"
    template = CertificateTemplate(
        subject=x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]),
    )

    try:
        creator = require_creator(cas)
        if args.ca_type == "intermediate":
            ca_type = CertificateAuthorityType.INTERMEDIATE
            parent = _parent_for(options, args.parent)
        else:
            ca_type = CertificateAuthorityType.ROOT
            parent = None
        resp = creator.create_certificate_authority(
            CreateCertificateAuthorityRequest(
                type=ca_type,
                template=template,
                lifetime=timedelta(days=args.lifetime_days),
                parent=parent,
                name=args.name,
            ),
        )
    except CASError as exc:
        _fail(f"failed to create certificate authority: {exc.detail}")

    print(f"Created {args.ca_type} authority: {resp.name}")
    print(f"Fingerprint (sha256): {fingerprint(resp.certificate)}")
    sys.stdout.write(encode_certificate(resp.certificate))
    if resp.certificate_chain:
        sys.stdout.write(encode_chain(resp.certificate_chain))

    if resp.signer is not None:
        if not args.key_out:
            log.warning("Generated authority key was discarded (use --key-out to keep it)")
            return
        key_pem = resp.signer.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        key_path = Path(args.key_out)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), 0o600)
            f.write(key_pem)
        print(f"Private key written to {key_path}")


def _ca_test_sign(settings) -> None:
    """Issue a short-lived certificate to verify the backend is working."""
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    from pkicas.cas import CASError, CertificateTemplate, CreateCertificateRequest
    from pkicas.cas.pemutil import fingerprint

    _, cas = _load_backend(settings)

    # Ephemeral key + template
    key = ec.generate_private_key(ec.SECP256R1())
    template = CertificateTemplate(
        subject=x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "test.pkicas.internal")]),
        public_key=key.public_key(),
    )
    template.add_extension(
        x509.SubjectAlternativeName([x509.DNSName("test.pkicas.internal")]),
    )
    template.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)

    try:
        resp = cas.create_certificate(
            CreateCertificateRequest(template=template, lifetime=timedelta(hours=1)),
        )
    except CASError as exc:
        _fail(f"test signing failed: {exc.detail}")

    cert = resp.certificate
    print("Test signing OK")
    print(f"  serial:      {cert.serial_number:x}")
    print(f"  fingerprint: {fingerprint(cert)}")
    print(f"  chain:       {len(resp.certificate_chain)} certificate(s)")
