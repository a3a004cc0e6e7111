"""Remote CAS backend -- issues certificates through Google Cloud CAS.

Certificates are signed by an existing remote certificate authority
(``Options.certificate_authority``); authorities themselves can be
created remotely when the backend is constructed with
``is_creator=True``.

The remote service addresses certificates by an identifier chosen by
the caller, so every certificate issued here is tagged with the
certificate authority extension carrying that identifier.  Revocation
reads it back from the presented certificate.

Calls block.  Immediate RPCs are bounded by ``request_timeout`` and
long-running operations by ``operation_timeout``; no step is retried or
rolled back.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import TYPE_CHECKING, Any

from pkicas.cas import cloudcas_config, extension, pemutil
from pkicas.cas.base import (
    CertificateAuthorityCreator,
    CertificateAuthorityGetter,
    CertificateAuthorityService,
    ConfigError,
    EmptyChain,
    MissingConfig,
    UnsupportedValue,
    ValidationError,
)
from pkicas.cas.cloudcas_client import (
    LongRunningOperation,
    call,
    new_certificate_authority_client,
)
from pkicas.cas.keyspec import negotiate
from pkicas.cas.revocation import require_reason
from pkicas.cas.types import (
    BackendID,
    CertificateAuthorityType,
    CreateCertificateAuthorityResponse,
    CreateCertificateResponse,
    GetCertificateAuthorityResponse,
    RenewCertificateResponse,
    RevokeCertificateResponse,
    is_zero_lifetime,
)

if TYPE_CHECKING:
    from datetime import timedelta

    from cryptography import x509

    from pkicas.cas.cloudcas_client import CertificateAuthorityClient
    from pkicas.cas.template import CertificateTemplate
    from pkicas.cas.types import (
        CreateCertificateAuthorityRequest,
        CreateCertificateRequest,
        GetCertificateAuthorityRequest,
        Options,
        RenewCertificateRequest,
        RevokeCertificateRequest,
    )

log = logging.getLogger(__name__)

_AUTHORITY_RE = re.compile(
    r"^projects/[^/]+/locations/[^/]+/certificateAuthorities/[^/]+$",
)
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

_AUTHORITY_TYPES = {
    CertificateAuthorityType.ROOT: "SELF_SIGNED",
    CertificateAuthorityType.INTERMEDIATE: "SUBORDINATE",
}


def normalize_certificate_authority_name(name: str) -> str:
    """Replace characters the remote service rejects in identifiers with ``-``."""
    return _INVALID_NAME_CHARS.sub("-", name)


def _new_id() -> str:
    return str(uuid.uuid4())


class CloudCAS(
    CertificateAuthorityService,
    CertificateAuthorityCreator,
    CertificateAuthorityGetter,
):
    """CAS backend for Google Cloud Certificate Authority Service.

    Parameters
    ----------
    options:
        Backend options; see :class:`~pkicas.cas.types.Options`.
    client:
        Client to use instead of the production one.

    Raises
    ------
    MissingConfig
        If the authority (issuing mode) or project/location (creator
        mode) are not configured.
    ConfigError
        If the authority resource name is malformed.

    """

    def __init__(
        self,
        options: Options,
        client: CertificateAuthorityClient | None = None,
    ) -> None:
        super().__init__(options)

        authority = options.certificate_authority
        project = options.project
        location = options.location

        if options.is_creator:
            if not project:
                msg = "cloudcas 'project' cannot be empty"
                raise MissingConfig(msg)
            if not location:
                msg = "cloudcas 'location' cannot be empty"
                raise MissingConfig(msg)
        else:
            if not authority:
                msg = "cloudcas 'certificateAuthority' cannot be empty"
                raise MissingConfig(msg)
            if not _AUTHORITY_RE.match(authority):
                msg = (
                    f"cloudcas 'certificateAuthority' '{authority}' is not valid; "
                    "expected projects/<p>/locations/<l>/certificateAuthorities/<ca>"
                )
                raise ConfigError(msg)

        if authority and _AUTHORITY_RE.match(authority):
            parts = authority.split("/")
            project = project or parts[1]
            location = location or parts[3]

        self._authority = authority
        self._project = project
        self._location = location
        self._request_timeout = options.request_timeout
        self._operation_timeout = options.operation_timeout
        self._client = client or new_certificate_authority_client(
            options.credentials_file,
        )
        log.info(
            "Initialised cloudcas backend (authority=%s, project=%s, location=%s)",
            authority or "-",
            project,
            location,
        )

    @property
    def certificate_authority(self) -> str:
        return self._authority

    @property
    def project(self) -> str:
        return self._project

    @property
    def location(self) -> str:
        return self._location

    # -- Root retrieval ----------------------------------------------------

    def get_certificate_authority(
        self,
        req: GetCertificateAuthorityRequest,
    ) -> GetCertificateAuthorityResponse:
        """Return the root certificate of the configured (or named) authority.

        The remote chain runs subject-to-issuer, so the root is the last
        element.
        """
        name = req.name or self._authority
        if not name:
            msg = "cloudcas 'certificateAuthority' cannot be empty"
            raise MissingConfig(msg)

        ca = call(
            "GetCertificateAuthority",
            self._client.get_certificate_authority,
            {"name": name},
            self._request_timeout,
        )
        pems = list(ca.pem_ca_certificates)
        if not pems:
            msg = f"GetCertificateAuthority returned no certificates for '{name}'"
            raise EmptyChain(msg)
        return GetCertificateAuthorityResponse(
            root_certificate=pemutil.parse_certificate(pems[-1]),
        )

    # -- Issuance ----------------------------------------------------------

    def create_certificate(
        self,
        req: CreateCertificateRequest,
    ) -> CreateCertificateResponse:
        if req.template is None:
            msg = "createCertificateRequest `template` is required"
            raise ValidationError(msg)
        if is_zero_lifetime(req.lifetime):
            msg = "createCertificateRequest `lifetime` cannot be 0"
            raise ValidationError(msg)

        cert, chain = self._create_certificate(
            req.template,
            req.lifetime,  # type: ignore[arg-type]
            req.request_id,
        )
        return CreateCertificateResponse(certificate=cert, certificate_chain=chain)

    def renew_certificate(
        self,
        req: RenewCertificateRequest,
    ) -> RenewCertificateResponse:
        if req.template is None:
            msg = "renewCertificateRequest `template` is required"
            raise ValidationError(msg)
        if is_zero_lifetime(req.lifetime):
            msg = "renewCertificateRequest `lifetime` cannot be 0"
            raise ValidationError(msg)

        cert, chain = self._create_certificate(
            req.template,
            req.lifetime,  # type: ignore[arg-type]
            req.request_id,
        )
        return RenewCertificateResponse(certificate=cert, certificate_chain=chain)

    def _create_certificate(
        self,
        template: CertificateTemplate,
        lifetime: timedelta,
        request_id: str,
    ) -> tuple[x509.Certificate, list[x509.Certificate]]:
        if not self._authority:
            msg = "cloudcas 'certificateAuthority' cannot be empty"
            raise MissingConfig(msg)

        certificate_id = _new_id()
        tagged = template.copy()
        extension.set_certificate_authority_extension(
            tagged,
            BackendID.CLOUDCAS,
            certificate_id,
        )

        request = {
            "parent": self._authority,
            "certificate_id": certificate_id,
            "certificate": {
                "config": cloudcas_config.create_certificate_config(tagged),
                "lifetime": cloudcas_config.duration(lifetime),
                "labels": {},
            },
            "request_id": request_id or _new_id(),
        }
        resp = call(
            "CreateCertificate",
            self._client.create_certificate,
            request,
            self._request_timeout,
        )
        cert, chain = pemutil.split_issued_chain(
            resp.pem_certificate,
            resp.pem_certificate_chain,
        )
        log.info(
            "Issued certificate %s (cn=%s) from %s",
            certificate_id,
            tagged.common_name,
            self._authority,
            extra={"certificate_id": certificate_id, "authority": self._authority},
        )
        return cert, chain

    # -- Revocation --------------------------------------------------------

    def revoke_certificate(
        self,
        req: RevokeCertificateRequest,
    ) -> RevokeCertificateResponse:
        """Revoke a certificate previously issued by this backend.

        Raises
        ------
        InvalidRevocationReason
            If ``req.reason_code`` has no remote equivalent.
        ValidationError
            If no certificate is given.
        MissingCorrelation
            If the certificate carries no certificate authority extension.

        """
        reason = require_reason(req.reason_code)
        if req.certificate is None:
            msg = "revokeCertificateRequest `certificate` is required"
            raise ValidationError(msg)

        ext = extension.certificate_authority_extension_of(req.certificate)
        name = f"{self._authority}/certificates/{ext.certificate_id}"

        resp = call(
            "RevokeCertificate",
            self._client.revoke_certificate,
            {
                "name": name,
                "reason": reason,
                "request_id": req.request_id or _new_id(),
            },
            self._request_timeout,
        )
        cert, chain = pemutil.split_issued_chain(
            resp.pem_certificate,
            resp.pem_certificate_chain,
        )
        log.info(
            "Revoked certificate %s (reason=%s)",
            ext.certificate_id,
            reason,
            extra={"certificate_id": ext.certificate_id, "authority": self._authority},
        )
        return RevokeCertificateResponse(certificate=cert, certificate_chain=chain)

    # -- Authority creation ------------------------------------------------

    def create_certificate_authority(
        self,
        req: CreateCertificateAuthorityRequest,
    ) -> CreateCertificateAuthorityResponse:
        """Create a root or subordinate authority in the remote service.

        For an intermediate, the new authority's CSR is signed by
        ``req.parent`` and the result activated.  A failure after the
        authority was created leaves it in the remote service as is.
        """
        if not self._project:
            msg = "cloudcas 'project' cannot be empty"
            raise MissingConfig(msg)
        if not self._location:
            msg = "cloudcas 'location' cannot be empty"
            raise MissingConfig(msg)
        if req.template is None:
            msg = "createCertificateAuthorityRequest `template` is required"
            raise ValidationError(msg)
        if is_zero_lifetime(req.lifetime):
            msg = "createCertificateAuthorityRequest `lifetime` cannot be 0"
            raise ValidationError(msg)

        authority_type = _AUTHORITY_TYPES.get(req.type)
        if authority_type is None:
            msg = f"createCertificateAuthorityRequest `type` {req.type!r} is not supported"
            raise UnsupportedValue(msg)
        if req.type == CertificateAuthorityType.INTERMEDIATE:
            if req.parent is None:
                msg = "createCertificateAuthorityRequest `parent` is required"
                raise ValidationError(msg)
            if not req.parent.name:
                msg = "createCertificateAuthorityRequest `parent.name` cannot be empty"
                raise ValidationError(msg)

        if req.name:
            ca_id = normalize_certificate_authority_name(req.name)
        else:
            ca_id = _new_id()

        create_key = req.create_key
        spec = negotiate(
            create_key.signature_algorithm if create_key else None,
            create_key.bits if create_key else 0,
        )

        request_id = req.request_id or _new_id()
        tagged = req.template.copy()
        extension.set_certificate_authority_extension(tagged, BackendID.CLOUDCAS, ca_id)

        request = {
            "parent": f"projects/{self._project}/locations/{self._location}",
            "certificate_authority_id": ca_id,
            "certificate_authority": {
                "type_": authority_type,
                "tier": "ENTERPRISE",
                "config": cloudcas_config.create_certificate_authority_config(tagged),
                "lifetime": cloudcas_config.duration(req.lifetime),  # type: ignore[arg-type]
                "key_spec": {"algorithm": spec.algorithm},
                "issuing_options": {
                    "include_ca_cert_url": True,
                    "include_crl_access_url": True,
                },
                "labels": {},
            },
            "request_id": request_id,
        }
        log.debug(
            "Creating %s certificate authority %s (key=%s)",
            authority_type,
            ca_id,
            spec.algorithm,
        )
        operation = call(
            "CreateCertificateAuthority",
            self._client.create_certificate_authority,
            request,
            self._request_timeout,
        )
        ca = LongRunningOperation("CreateCertificateAuthority", operation).wait(
            self._operation_timeout,
        )

        if req.type == CertificateAuthorityType.INTERMEDIATE:
            ca = self._sign_intermediate(
                ca,
                req.parent,  # type: ignore[arg-type]
                req.lifetime,  # type: ignore[arg-type]
                request_id,
            )

        pems = list(ca.pem_ca_certificates)
        if not pems:
            msg = f"Certificate authority '{ca.name}' returned no certificates"
            raise EmptyChain(msg)

        cert = pemutil.parse_certificate(pems[0])
        chain = pemutil.parse_chain(pems[1:])
        log.info(
            "Created %s certificate authority %s",
            authority_type,
            ca.name,
            extra={"authority": ca.name},
        )
        return CreateCertificateAuthorityResponse(
            name=ca.name,
            certificate=cert,
            certificate_chain=chain,
        )

    def _sign_intermediate(
        self,
        ca: Any,
        parent: CreateCertificateAuthorityResponse,
        lifetime: timedelta,
        request_id: str,
    ) -> Any:
        """Sign the subordinate's CSR with *parent* and activate it.

        The create call's *request_id* is reused for signing and activation.
        """
        csr = call(
            "FetchCertificateAuthorityCsr",
            self._client.fetch_certificate_authority_csr,
            {"name": ca.name},
            self._operation_timeout,
        )
        signed = call(
            "CreateCertificate",
            self._client.create_certificate,
            {
                "parent": parent.name,
                "certificate_id": _new_id(),
                "certificate": {
                    "pem_csr": csr.pem_csr,
                    "lifetime": cloudcas_config.duration(lifetime),
                },
                "request_id": request_id,
            },
            self._operation_timeout,
        )
        operation = call(
            "ActivateCertificateAuthority",
            self._client.activate_certificate_authority,
            {
                "name": ca.name,
                "pem_ca_certificate": signed.pem_certificate,
                "subordinate_config": {
                    "pem_issuer_chain": {
                        "pem_certificates": list(signed.pem_certificate_chain),
                    },
                },
                "request_id": request_id,
            },
            self._operation_timeout,
        )
        log.debug("Activating certificate authority %s signed by %s", ca.name, parent.name)
        return LongRunningOperation("ActivateCertificateAuthority", operation).wait(
            self._operation_timeout,
        )
