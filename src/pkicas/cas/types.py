"""Value types shared by every CAS backend.

Request and response objects are created per call and carry no identity
beyond it.  :class:`RevocationReason` inherits from :class:`enum.IntEnum`
per RFC 5280 §5.3.1 integer codes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificateIssuerPrivateKeyTypes,
    )

    from pkicas.cas.template import CertificateTemplate

# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

SOFTCAS = "softcas"
CLOUDCAS = "cloudcas"

DEFAULT_REQUEST_TIMEOUT = timedelta(seconds=15)
DEFAULT_OPERATION_TIMEOUT = timedelta(seconds=60)


class BackendID(IntEnum):
    """Tag embedded in the certificate authority extension."""

    SOFTCAS = 1
    CLOUDCAS = 2


def normalize_backend_name(name: str | None) -> str:
    """Lower-case a backend name; an empty name selects ``softcas``."""
    if not name:
        return SOFTCAS
    return name.strip().lower()


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CertificateAuthorityType(IntEnum):
    ROOT = 1
    INTERMEDIATE = 2


class SignatureAlgorithm(StrEnum):
    UNSPECIFIED = ""
    SHA256_WITH_RSA = "SHA256-RSA"
    SHA384_WITH_RSA = "SHA384-RSA"
    SHA512_WITH_RSA = "SHA512-RSA"
    SHA256_WITH_RSA_PSS = "SHA256-RSAPSS"
    SHA384_WITH_RSA_PSS = "SHA384-RSAPSS"
    SHA512_WITH_RSA_PSS = "SHA512-RSAPSS"
    ECDSA_WITH_SHA256 = "ECDSA-SHA256"
    ECDSA_WITH_SHA384 = "ECDSA-SHA384"
    ECDSA_WITH_SHA512 = "ECDSA-SHA512"
    PURE_ED25519 = "Ed25519"


class RevocationReason(IntEnum):
    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    # 7 is unused
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Options:
    """Backend selection plus provider-scoped fields.

    Attributes
    ----------
    type:
        Registered backend name; empty selects ``softcas``.
    certificate_authority:
        Resource name of an existing remote authority, e.g.
        ``projects/p/locations/l/certificateAuthorities/ca``.
    project, location:
        Required when creating new remote authorities; derived from
        ``certificate_authority`` when omitted.
    is_creator:
        The instance is used to create authorities rather than issue
        from an existing one.
    credentials_file:
        Optional service-account credentials for the remote client.
    issuer, signer, certificate_chain:
        Local issuing material for ``softcas``.
    request_timeout, operation_timeout:
        Deadlines for immediate calls and for long-running operations.

    """

    type: str = SOFTCAS
    certificate_authority: str = ""
    project: str = ""
    location: str = ""
    is_creator: bool = False
    credentials_file: str = ""
    issuer: x509.Certificate | None = None
    signer: CertificateIssuerPrivateKeyTypes | None = None
    certificate_chain: tuple[x509.Certificate, ...] = ()
    request_timeout: timedelta = DEFAULT_REQUEST_TIMEOUT
    operation_timeout: timedelta = DEFAULT_OPERATION_TIMEOUT

    def is_(self, name: str) -> bool:
        """Return whether these options select the backend *name*."""
        return normalize_backend_name(self.type) == normalize_backend_name(name)


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateKeyOptions:
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.UNSPECIFIED
    bits: int = 0


@dataclass(frozen=True)
class CreateCertificateRequest:
    template: CertificateTemplate | None
    lifetime: timedelta | None
    request_id: str = ""


@dataclass(frozen=True)
class CreateCertificateResponse:
    certificate: x509.Certificate
    certificate_chain: list[x509.Certificate] = field(default_factory=list)


@dataclass(frozen=True)
class RenewCertificateRequest:
    template: CertificateTemplate | None
    lifetime: timedelta | None
    request_id: str = ""


@dataclass(frozen=True)
class RenewCertificateResponse:
    certificate: x509.Certificate
    certificate_chain: list[x509.Certificate] = field(default_factory=list)


@dataclass(frozen=True)
class RevokeCertificateRequest:
    certificate: x509.Certificate | None
    reason_code: int = RevocationReason.UNSPECIFIED
    reason: str = ""
    serial_number: str = ""
    request_id: str = ""


@dataclass(frozen=True)
class RevokeCertificateResponse:
    certificate: x509.Certificate
    certificate_chain: list[x509.Certificate] = field(default_factory=list)


@dataclass(frozen=True)
class CreateCertificateAuthorityResponse:
    """A created authority.

    ``signer`` is only populated by backends that hold the key locally.
    ``certificate`` is None when the authority is referenced by name only,
    as a remote parent is.
    """

    name: str
    certificate: x509.Certificate | None
    certificate_chain: list[x509.Certificate] = field(default_factory=list)
    signer: CertificateIssuerPrivateKeyTypes | None = None


@dataclass(frozen=True)
class CreateCertificateAuthorityRequest:
    type: CertificateAuthorityType
    template: CertificateTemplate | None
    lifetime: timedelta | None
    parent: CreateCertificateAuthorityResponse | None = None
    create_key: CreateKeyOptions | None = None
    name: str = ""
    request_id: str = ""


@dataclass(frozen=True)
class GetCertificateAuthorityRequest:
    name: str = ""


@dataclass(frozen=True)
class GetCertificateAuthorityResponse:
    root_certificate: x509.Certificate


def is_zero_lifetime(lifetime: timedelta | None) -> bool:
    """Return True for a missing, zero or negative lifetime."""
    return lifetime is None or lifetime <= timedelta(0)
