"""Certificate authority correlation extension.

Every certificate issued through a remote backend carries a private,
non-critical X.509 extension that records which backend issued it and
the backend's own identifier for the certificate.  Remote services
address certificates by that identifier, not by serial number, so the
extension is the only durable way back from a certificate to its record
(e.g. when revoking).

DER layout::

    CertificateAuthorityExtension ::= SEQUENCE {
        backendID      INTEGER,
        certificateID  UTF8String
    }
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from asn1crypto import core
from cryptography import x509

from pkicas.cas.base import DecodeError, MissingCorrelation

if TYPE_CHECKING:
    from pkicas.cas.template import CertificateTemplate

log = logging.getLogger(__name__)

CERTIFICATE_AUTHORITY_EXTENSION_OID = x509.ObjectIdentifier(
    "1.3.6.1.4.1.37476.9000.64.2",
)


class _CertificateAuthorityExtensionValue(core.Sequence):
    _fields = [
        ("backend_id", core.Integer),
        ("certificate_id", core.UTF8String),
    ]


@dataclass(frozen=True)
class CertificateAuthorityExtension:
    backend_id: int
    certificate_id: str


def encode(backend_id: int, certificate_id: str) -> bytes:
    """Return the DER encoding of the extension value."""
    value = _CertificateAuthorityExtensionValue(
        {
            "backend_id": int(backend_id),
            "certificate_id": certificate_id,
        },
    )
    return value.dump()


def decode(data: bytes) -> CertificateAuthorityExtension:
    """Parse a DER-encoded extension value.

    Raises
    ------
    DecodeError
        If *data* is not a well-formed extension value.

    """
    try:
        parsed = _CertificateAuthorityExtensionValue.load(data, strict=True)
        native = parsed.native
    except (ValueError, TypeError) as exc:
        msg = f"Error decoding certificate authority extension: {exc}"
        raise DecodeError(msg) from exc

    backend_id = native.get("backend_id")
    certificate_id = native.get("certificate_id")
    if not isinstance(backend_id, int) or not isinstance(certificate_id, str):
        msg = "Error decoding certificate authority extension: missing fields"
        raise DecodeError(msg)
    return CertificateAuthorityExtension(
        backend_id=backend_id,
        certificate_id=certificate_id,
    )


def create_certificate_authority_extension(
    backend_id: int,
    certificate_id: str,
) -> x509.Extension[x509.UnrecognizedExtension]:
    """Build the non-critical extension for *backend_id* / *certificate_id*."""
    value = x509.UnrecognizedExtension(
        CERTIFICATE_AUTHORITY_EXTENSION_OID,
        encode(backend_id, certificate_id),
    )
    return x509.Extension(CERTIFICATE_AUTHORITY_EXTENSION_OID, False, value)


def find_certificate_authority_extension(
    cert: x509.Certificate,
) -> x509.Extension[Any] | None:
    """Return the correlation extension of *cert*, or ``None``."""
    try:
        return cert.extensions.get_extension_for_oid(
            CERTIFICATE_AUTHORITY_EXTENSION_OID,
        )
    except x509.ExtensionNotFound:
        return None
    except ValueError as exc:
        msg = f"Error reading certificate extensions: {exc}"
        raise DecodeError(msg) from exc


def _extension_bytes(ext: x509.Extension[Any]) -> bytes:
    value = ext.value
    if isinstance(value, x509.UnrecognizedExtension):
        return value.value
    return value.public_bytes()


def certificate_authority_extension_of(
    cert: x509.Certificate,
) -> CertificateAuthorityExtension:
    """Recover the decoded correlation extension from *cert*.

    Raises
    ------
    MissingCorrelation
        If the certificate was not tagged by a CAS backend.
    DecodeError
        If the extension is present but malformed.

    """
    ext = find_certificate_authority_extension(cert)
    if ext is None:
        msg = "Certificate authority extension was not found"
        raise MissingCorrelation(msg)
    return decode(_extension_bytes(ext))


def remove_certificate_authority_extension(template: CertificateTemplate) -> bool:
    """Strip the correlation extension from *template* if present."""
    return template.remove_extension(CERTIFICATE_AUTHORITY_EXTENSION_OID)


def set_certificate_authority_extension(
    template: CertificateTemplate,
    backend_id: int,
    certificate_id: str,
) -> x509.Extension[x509.UnrecognizedExtension]:
    """Replace any correlation extension on *template* with a fresh one."""
    if remove_certificate_authority_extension(template):
        log.debug("Replaced existing certificate authority extension on template")
    ext = create_certificate_authority_extension(backend_id, certificate_id)
    template.extensions.append(ext)
    return ext
