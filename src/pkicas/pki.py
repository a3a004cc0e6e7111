"""Root discovery and local PKI bootstrap.

When an authority is being initialised, its root certificate either
comes from a backend that can return it (a remote authority) or is
generated locally together with its key.  :func:`bootstrap_root`
encapsulates that choice; everything after it (writing files, printing
fingerprints) works on the returned :class:`RootDiscovery`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.x509.oid import NameOID

from pkicas.cas import pemutil
from pkicas.cas.base import require_getter, supports_root_retrieval
from pkicas.cas.registry import new_cas
from pkicas.cas.softcas import SoftCAS
from pkicas.cas.template import CertificateTemplate
from pkicas.cas.types import (
    CertificateAuthorityType,
    CreateCertificateAuthorityRequest,
    CreateCertificateAuthorityResponse,
    CreateKeyOptions,
    GetCertificateAuthorityRequest,
    Options,
)

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificateIssuerPrivateKeyTypes,
    )

    from pkicas.cas.registry import CASRegistry

log = logging.getLogger(__name__)

DEFAULT_ROOT_LIFETIME = timedelta(days=10 * 365)
DEFAULT_INTERMEDIATE_LIFETIME = timedelta(days=10 * 365)


@dataclass(frozen=True)
class RootDiscovery:
    """A root certificate and where it came from.

    ``signer`` is only set for locally generated roots; remote roots
    keep their key in the remote service.
    """

    certificate: x509.Certificate
    fingerprint: str
    remote: bool
    signer: CertificateIssuerPrivateKeyTypes | None = None


def _authority_template(name: str) -> CertificateTemplate:
    return CertificateTemplate(
        subject=x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)]),
    )


def generate_root_certificate(
    name: str,
    lifetime: timedelta = DEFAULT_ROOT_LIFETIME,
    create_key: CreateKeyOptions | None = None,
) -> CreateCertificateAuthorityResponse:
    """Generate a self-signed root named ``"<name> Root CA"`` locally."""
    cas = SoftCAS(Options())
    return cas.create_certificate_authority(
        CreateCertificateAuthorityRequest(
            type=CertificateAuthorityType.ROOT,
            template=_authority_template(f"{name} Root CA"),
            lifetime=lifetime,
            create_key=create_key,
        ),
    )


def generate_intermediate_certificate(
    name: str,
    root: x509.Certificate,
    root_key: CertificateIssuerPrivateKeyTypes,
    lifetime: timedelta = DEFAULT_INTERMEDIATE_LIFETIME,
) -> CreateCertificateAuthorityResponse:
    """Generate ``"<name> Intermediate CA"`` signed by *root* / *root_key*."""
    cas = SoftCAS(Options())
    parent = CreateCertificateAuthorityResponse(
        name=root.subject.rfc4514_string(),
        certificate=root,
        signer=root_key,
    )
    return cas.create_certificate_authority(
        CreateCertificateAuthorityRequest(
            type=CertificateAuthorityType.INTERMEDIATE,
            template=_authority_template(f"{name} Intermediate CA"),
            lifetime=lifetime,
            parent=parent,
        ),
    )


def discover_root(
    options: Options,
    registry: CASRegistry | None = None,
) -> RootDiscovery | None:
    """Fetch the root of ``options.certificate_authority`` if the backend can.

    Returns ``None`` when the selected backend has no root retrieval
    capability; errors from the backend itself propagate.
    """
    cas = new_cas(options, registry)
    if not supports_root_retrieval(cas):
        log.debug("Backend %s cannot return root certificates", options.type)
        return None

    resp = require_getter(cas).get_certificate_authority(
        GetCertificateAuthorityRequest(name=options.certificate_authority),
    )
    cert = resp.root_certificate
    fp = pemutil.fingerprint(cert)
    log.info("Discovered remote root %s (sha256=%s)", cert.subject.rfc4514_string(), fp)
    return RootDiscovery(certificate=cert, fingerprint=fp, remote=True)


def bootstrap_root(
    options: Options,
    name: str,
    registry: CASRegistry | None = None,
) -> RootDiscovery:
    """Return the remote root when discoverable, otherwise generate one."""
    discovered = discover_root(options, registry)
    if discovered is not None:
        return discovered

    root = generate_root_certificate(name)
    fp = pemutil.fingerprint(root.certificate)
    log.info("Generated local root %s (sha256=%s)", root.name, fp)
    return RootDiscovery(
        certificate=root.certificate,
        fingerprint=fp,
        remote=False,
        signer=root.signer,
    )
