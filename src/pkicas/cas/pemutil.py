"""PEM decoding helpers for certificate material returned by backends.

Remote services return chains subject-to-issuer: issuing intermediates
first, the root (or the issuing authority itself) last.  The helpers here
preserve that order verbatim and never reorder.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from pkicas.cas.base import DecodeError

_PEM_MARKER = "-----BEGIN CERTIFICATE-----"


def parse_certificate(pem: str | bytes) -> x509.Certificate:
    """Parse a single PEM-encoded certificate.

    Raises
    ------
    DecodeError
        If *pem* is not a PEM block or does not contain a certificate.

    """
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    if _PEM_MARKER.encode("ascii") not in data:
        msg = "Error decoding certificate: not a valid PEM encoded block"
        raise DecodeError(msg)
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as exc:
        msg = f"Error parsing certificate: {exc}"
        raise DecodeError(msg) from exc


def parse_chain(pems: Iterable[str | bytes]) -> list[x509.Certificate]:
    """Parse every entry of *pems*, preserving order."""
    return [parse_certificate(pem) for pem in pems]


def split_issued_chain(
    leaf_pem: str | bytes,
    chain_pems: Iterable[str | bytes],
) -> tuple[x509.Certificate, list[x509.Certificate]]:
    """Decode an issued leaf and its chain.

    The remote service appends the issuing authority's own certificate
    at the tail of the chain; it is excluded here so the caller only
    receives the intermediates.
    """
    leaf = parse_certificate(leaf_pem)
    chain = list(chain_pems)
    return leaf, parse_chain(chain[:-1])


def fingerprint(cert: x509.Certificate) -> str:
    """Return the lower-case hex SHA-256 digest of *cert*'s DER encoding."""
    return hashlib.sha256(cert.public_bytes(serialization.Encoding.DER)).hexdigest()


def encode_certificate(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def encode_chain(certs: Iterable[x509.Certificate]) -> str:
    """Concatenate *certs* as PEM blocks, preserving order."""
    return "".join(encode_certificate(cert) for cert in certs)
