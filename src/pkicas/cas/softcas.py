"""Local-key CAS backend -- sign certificates with an in-process issuer key.

Uses the ``cryptography`` certificate builder with the issuer
certificate and signer from :class:`~pkicas.cas.types.Options`.  Both are
optional when the instance is only used to create new authorities, in
which case the generated key is returned to the caller.

Revocation is bookkeeping only: this backend keeps no CRL or OCSP state,
so revoking simply echoes the certificate back.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.x509.oid import ExtensionOID

from pkicas.cas.base import (
    CASError,
    CertificateAuthorityCreator,
    CertificateAuthorityService,
    UnsupportedValue,
    ValidationError,
)
from pkicas.cas.keyspec import negotiate
from pkicas.cas.types import (
    CertificateAuthorityType,
    CreateCertificateAuthorityResponse,
    CreateCertificateResponse,
    RenewCertificateResponse,
    RevokeCertificateResponse,
    SignatureAlgorithm,
    is_zero_lifetime,
)

if TYPE_CHECKING:
    from datetime import timedelta

    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificateIssuerPrivateKeyTypes,
    )

    from pkicas.cas.keyspec import KeyVersionSpec
    from pkicas.cas.template import CertificateTemplate
    from pkicas.cas.types import (
        CreateCertificateAuthorityRequest,
        CreateCertificateRequest,
        Options,
        RenewCertificateRequest,
        RevokeCertificateRequest,
    )

log = logging.getLogger(__name__)

# Extensions computed from the keys at signing time.
_KEY_IDENTIFIER_OIDS = frozenset(
    {
        ExtensionOID.SUBJECT_KEY_IDENTIFIER,
        ExtensionOID.AUTHORITY_KEY_IDENTIFIER,
    }
)

_CURVES = {
    256: ec.SECP256R1,
    384: ec.SECP384R1,
}


def _random_serial() -> int:
    # RFC 5280 sec 4.1.2.2: at most 20 octets, positive
    return int.from_bytes(secrets.token_bytes(20), "big") >> 1


def generate_key(spec: KeyVersionSpec) -> CertificateIssuerPrivateKeyTypes:
    """Generate a private key matching a negotiated key spec."""
    if spec.algorithm.startswith("EC_"):
        return ec.generate_private_key(_CURVES[spec.bits]())
    return rsa.generate_private_key(public_exponent=65537, key_size=spec.bits)


def _sign_arguments(
    signer: CertificateIssuerPrivateKeyTypes,
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.UNSPECIFIED,
) -> dict[str, Any]:
    """Return the ``CertificateBuilder.sign`` keyword arguments for *signer*."""
    if isinstance(signer, ed25519.Ed25519PrivateKey | ed448.Ed448PrivateKey):
        return {"algorithm": None}
    if isinstance(signer, ec.EllipticCurvePrivateKey):
        if signer.curve.key_size >= 384:  # noqa: PLR2004
            return {"algorithm": hashes.SHA384()}
        return {"algorithm": hashes.SHA256()}
    if isinstance(signer, rsa.RSAPrivateKey):
        if signature_algorithm is SignatureAlgorithm.SHA256_WITH_RSA_PSS:
            return {
                "algorithm": hashes.SHA256(),
                "rsa_padding": padding.PSS(
                    mgf=padding.MGF1(hashes.SHA256()),
                    salt_length=padding.PSS.DIGEST_LENGTH,
                ),
            }
        return {"algorithm": hashes.SHA256()}
    msg = f"Unsupported signer key type {type(signer).__name__}"
    raise UnsupportedValue(msg)


def sign_template(  # noqa: PLR0913
    template: CertificateTemplate,
    lifetime: timedelta,
    issuer_name: x509.Name,
    signer: CertificateIssuerPrivateKeyTypes,
    *,
    issuer_public_key: Any = None,
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.UNSPECIFIED,
) -> x509.Certificate:
    """Sign *template* with *signer* under *issuer_name*.

    Subject and authority key identifiers are always recomputed from
    the subject key and *issuer_public_key* (the signer's public key
    when omitted); every other template extension is copied verbatim.

    Raises
    ------
    ValidationError
        If the template has no public key.
    CASError
        On any signing failure.

    """
    if template.public_key is None:
        msg = "Certificate template public key cannot be empty"
        raise ValidationError(msg)

    not_before = template.not_before or datetime.now(UTC)
    serial_number = template.serial_number or _random_serial()
    issuer_public_key = issuer_public_key or signer.public_key()

    try:
        builder = (
            x509.CertificateBuilder()
            .subject_name(template.subject)
            .issuer_name(issuer_name)
            .public_key(template.public_key)  # type: ignore[arg-type]
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_before + lifetime)
        )
        for ext in template.extensions:
            if ext.oid in _KEY_IDENTIFIER_OIDS:
                continue
            builder = builder.add_extension(ext.value, critical=ext.critical)

        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(template.public_key),  # type: ignore[arg-type]
            critical=False,
        )
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key),
            critical=False,
        )
        return builder.sign(signer, **_sign_arguments(signer, signature_algorithm))
    except CASError:
        raise
    except Exception as exc:  # noqa: BLE001
        msg = f"Failed to build/sign certificate: {exc}"
        raise CASError(msg) from exc


def _ensure_ca_extensions(template: CertificateTemplate, path_length: int | None) -> None:
    if template.find_extension(ExtensionOID.BASIC_CONSTRAINTS) is None:
        template.add_extension(
            x509.BasicConstraints(ca=True, path_length=path_length),
            critical=True,
        )
    if template.find_extension(ExtensionOID.KEY_USAGE) is None:
        template.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )


class SoftCAS(CertificateAuthorityService, CertificateAuthorityCreator):
    """Sign certificates with a locally held issuer key.

    Parameters
    ----------
    options:
        ``issuer``, ``signer`` and ``certificate_chain`` are used for
        issuance; all other fields are ignored.

    """

    def __init__(self, options: Options) -> None:
        super().__init__(options)
        self._issuer = options.issuer
        self._signer = options.signer
        self._chain = list(options.certificate_chain)
        log.info(
            "Initialised softcas backend (issuer=%s)",
            options.issuer.subject.rfc4514_string() if options.issuer else "-",
        )

    def _issuer_chain(self) -> list[x509.Certificate]:
        if self._issuer is None:
            return list(self._chain)
        return [self._issuer, *self._chain]

    def _sign(
        self,
        template: CertificateTemplate | None,
        lifetime: timedelta | None,
        label: str,
    ) -> x509.Certificate:
        if template is None:
            msg = f"{label} `template` is required"
            raise ValidationError(msg)
        if is_zero_lifetime(lifetime):
            msg = f"{label} `lifetime` cannot be 0"
            raise ValidationError(msg)
        if self._issuer is None:
            msg = "softcas issuer certificate is not configured"
            raise ValidationError(msg)
        if self._signer is None:
            msg = "softcas signer is not configured"
            raise ValidationError(msg)

        cert = sign_template(
            template,
            lifetime,  # type: ignore[arg-type]
            self._issuer.subject,
            self._signer,
            issuer_public_key=self._issuer.public_key(),
        )
        log.info(
            "Softcas signed certificate: serial=%x, cn=%s, not_after=%s",
            cert.serial_number,
            template.common_name,
            cert.not_valid_after_utc.isoformat(),
            extra={"serial": f"{cert.serial_number:x}"},
        )
        return cert

    def create_certificate(
        self,
        req: CreateCertificateRequest,
    ) -> CreateCertificateResponse:
        cert = self._sign(req.template, req.lifetime, "createCertificateRequest")
        return CreateCertificateResponse(
            certificate=cert,
            certificate_chain=self._issuer_chain(),
        )

    def renew_certificate(
        self,
        req: RenewCertificateRequest,
    ) -> RenewCertificateResponse:
        cert = self._sign(req.template, req.lifetime, "renewCertificateRequest")
        return RenewCertificateResponse(
            certificate=cert,
            certificate_chain=self._issuer_chain(),
        )

    def revoke_certificate(
        self,
        req: RevokeCertificateRequest,
    ) -> RevokeCertificateResponse:
        """Acknowledge a revocation; no CRL/OCSP action is taken."""
        if req.certificate is None:
            msg = "revokeCertificateRequest `certificate` is required"
            raise ValidationError(msg)
        log.info(
            "Softcas revocation recorded: serial=%x (reason=%d) -- no CRL/OCSP action",
            req.certificate.serial_number,
            req.reason_code,
        )
        return RevokeCertificateResponse(
            certificate=req.certificate,
            certificate_chain=self._issuer_chain(),
        )

    def create_certificate_authority(
        self,
        req: CreateCertificateAuthorityRequest,
    ) -> CreateCertificateAuthorityResponse:
        """Generate a key and self-sign (root) or parent-sign (intermediate).

        Raises
        ------
        ValidationError
            On a missing template, zero lifetime, or an intermediate
            without a parent certificate and signer.
        UnsupportedValue
            If ``req.type`` is unknown.
        UnsupportedKeySpec
            If the requested key is not supported.

        """
        if req.template is None:
            msg = "createCertificateAuthorityRequest `template` is required"
            raise ValidationError(msg)
        if is_zero_lifetime(req.lifetime):
            msg = "createCertificateAuthorityRequest `lifetime` cannot be 0"
            raise ValidationError(msg)
        if req.type not in (CertificateAuthorityType.ROOT, CertificateAuthorityType.INTERMEDIATE):
            msg = f"createCertificateAuthorityRequest `type` {req.type!r} is not supported"
            raise UnsupportedValue(msg)

        create_key = req.create_key
        spec = negotiate(
            create_key.signature_algorithm if create_key else None,
            create_key.bits if create_key else 0,
        )

        template = req.template.copy()
        key = generate_key(spec)
        template.public_key = key.public_key()

        if req.type == CertificateAuthorityType.ROOT:
            _ensure_ca_extensions(template, None)
            cert = sign_template(
                template,
                req.lifetime,  # type: ignore[arg-type]
                template.subject,
                key,
                signature_algorithm=spec.signature_algorithm,
            )
            chain: list[x509.Certificate] = []
        else:
            parent = req.parent
            if parent is None or parent.signer is None or parent.certificate is None:
                msg = (
                    "createCertificateAuthorityRequest `parent` with a certificate "
                    "and signer is required"
                )
                raise ValidationError(msg)
            _ensure_ca_extensions(template, 0)
            cert = sign_template(
                template,
                req.lifetime,  # type: ignore[arg-type]
                parent.certificate.subject,
                parent.signer,
                issuer_public_key=parent.certificate.public_key(),
            )
            chain = [parent.certificate, *parent.certificate_chain]

        name = req.name or template.common_name
        log.info(
            "Softcas created %s certificate authority %s (key=%s)",
            CertificateAuthorityType(req.type).name.lower(),
            name,
            spec.algorithm,
            extra={"authority": name},
        )
        return CreateCertificateAuthorityResponse(
            name=name,
            certificate=cert,
            certificate_chain=chain,
            signer=key,
        )
