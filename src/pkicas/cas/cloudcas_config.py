"""Translate certificate templates into remote service request fragments.

The remote API does not accept a DER template; it takes a structured
``CertificateConfig`` (subject, alternative names, reusable extension
values and the public key).  Builders here return plain dicts using the
API's field names so that they can be passed straight to the client as
``request=`` payloads, and inspected directly in tests.

Extensions the API models explicitly (SAN, key usage, EKU, basic
constraints, policies, AIA OCSP) are mapped onto their fields; key
identifiers are computed by the service and dropped.  Anything else,
the correlation extension included, is forwarded verbatim as an
additional extension.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import (
    AuthorityInformationAccessOID,
    ExtendedKeyUsageOID,
    ExtensionOID,
    NameOID,
)

from pkicas.cas.base import UnsupportedValue, ValidationError

if TYPE_CHECKING:
    from pkicas.cas.template import CertificateTemplate

# ---------------------------------------------------------------------------
# Mappings
# ---------------------------------------------------------------------------

_KEY_USAGE_FIELDS = {
    "digital_signature": "digital_signature",
    "content_commitment": "content_commitment",
    "key_encipherment": "key_encipherment",
    "data_encipherment": "data_encipherment",
    "key_agreement": "key_agreement",
    "key_cert_sign": "cert_sign",
    "crl_sign": "crl_sign",
}

_EKU_FIELDS = {
    ExtendedKeyUsageOID.SERVER_AUTH: "server_auth",
    ExtendedKeyUsageOID.CLIENT_AUTH: "client_auth",
    ExtendedKeyUsageOID.CODE_SIGNING: "code_signing",
    ExtendedKeyUsageOID.EMAIL_PROTECTION: "email_protection",
    ExtendedKeyUsageOID.TIME_STAMPING: "time_stamping",
    ExtendedKeyUsageOID.OCSP_SIGNING: "ocsp_signing",
}

_SUBJECT_FIELDS = {
    NameOID.COUNTRY_NAME: "country_code",
    NameOID.ORGANIZATION_NAME: "organization",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "organizational_unit",
    NameOID.LOCALITY_NAME: "locality",
    NameOID.STATE_OR_PROVINCE_NAME: "province",
    NameOID.STREET_ADDRESS: "street_address",
    NameOID.POSTAL_CODE: "postal_code",
}

# Extensions mapped to dedicated fields or computed by the service.
_MAPPED_EXTENSIONS = frozenset(
    {
        ExtensionOID.SUBJECT_ALTERNATIVE_NAME,
        ExtensionOID.KEY_USAGE,
        ExtensionOID.EXTENDED_KEY_USAGE,
        ExtensionOID.BASIC_CONSTRAINTS,
        ExtensionOID.CERTIFICATE_POLICIES,
        ExtensionOID.AUTHORITY_INFORMATION_ACCESS,
        ExtensionOID.SUBJECT_KEY_IDENTIFIER,
        ExtensionOID.AUTHORITY_KEY_IDENTIFIER,
    }
)


def object_id(oid: x509.ObjectIdentifier) -> dict[str, list[int]]:
    return {"object_id_path": [int(part) for part in oid.dotted_string.split(".")]}


def duration(lifetime: timedelta) -> dict[str, int]:
    """Encode *lifetime* as a protobuf ``Duration`` mapping."""
    total_us = (lifetime.days * 86400 + lifetime.seconds) * 1_000_000 + lifetime.microseconds
    seconds, micros = divmod(total_us, 1_000_000)
    return {"seconds": seconds, "nanos": micros * 1000}


# ---------------------------------------------------------------------------
# Subject
# ---------------------------------------------------------------------------


def create_subject(template: CertificateTemplate) -> dict[str, str]:
    """Return the subject fields of *template*, first value per attribute."""
    subject: dict[str, str] = {}
    for oid, name in _SUBJECT_FIELDS.items():
        attrs = template.subject.get_attributes_for_oid(oid)
        if attrs:
            value = attrs[0].value
            subject[name] = value.decode("utf-8") if isinstance(value, bytes) else value
    return subject


def create_subject_alt_names(template: CertificateTemplate) -> dict[str, list[str]]:
    san = template.get_extension_value(x509.SubjectAlternativeName)
    if san is None:
        return {}
    result: dict[str, list[str]] = {}
    dns_names = san.get_values_for_type(x509.DNSName)
    if dns_names:
        result["dns_names"] = dns_names
    uris = san.get_values_for_type(x509.UniformResourceIdentifier)
    if uris:
        result["uris"] = uris
    emails = san.get_values_for_type(x509.RFC822Name)
    if emails:
        result["email_addresses"] = emails
    ips = san.get_values_for_type(x509.IPAddress)
    if ips:
        result["ip_addresses"] = [str(ip) for ip in ips]
    return result


def create_subject_config(template: CertificateTemplate) -> dict[str, Any]:
    config: dict[str, Any] = {
        "subject": create_subject(template),
        "common_name": template.common_name,
    }
    sans = create_subject_alt_names(template)
    if sans:
        config["subject_alt_name"] = sans
    return config


# ---------------------------------------------------------------------------
# Reusable config (extension values)
# ---------------------------------------------------------------------------


def _create_key_usage(template: CertificateTemplate) -> dict[str, Any]:
    key_usage: dict[str, Any] = {}

    ku = template.get_extension_value(x509.KeyUsage)
    if ku is not None:
        base = {remote: getattr(ku, attr) for attr, remote in _KEY_USAGE_FIELDS.items()}
        if ku.key_agreement:
            base["encipher_only"] = ku.encipher_only
            base["decipher_only"] = ku.decipher_only
        key_usage["base_key_usage"] = base

    eku = template.get_extension_value(x509.ExtendedKeyUsage)
    if eku is not None:
        known: dict[str, bool] = {}
        unknown: list[dict[str, list[int]]] = []
        for oid in eku:
            name = _EKU_FIELDS.get(oid)
            if name is None:
                unknown.append(object_id(oid))
            else:
                known[name] = True
        if known:
            key_usage["extended_key_usage"] = known
        if unknown:
            key_usage["unknown_extended_key_usages"] = unknown

    return key_usage


def create_reusable_config(template: CertificateTemplate) -> dict[str, Any]:
    """Return a ``ReusableConfigWrapper`` with inline values for *template*."""
    values: dict[str, Any] = {}

    key_usage = _create_key_usage(template)
    if key_usage:
        values["key_usage"] = key_usage

    bc = template.get_extension_value(x509.BasicConstraints)
    if bc is not None:
        ca_options: dict[str, Any] = {"is_ca": bc.ca}
        if bc.ca and bc.path_length is not None:
            ca_options["max_issuer_path_length"] = bc.path_length
        values["ca_options"] = ca_options

    policies = template.get_extension_value(x509.CertificatePolicies)
    if policies is not None:
        values["policy_ids"] = [object_id(p.policy_identifier) for p in policies]

    aia = template.get_extension_value(x509.AuthorityInformationAccess)
    if aia is not None:
        ocsp = [
            desc.access_location.value
            for desc in aia
            if desc.access_method == AuthorityInformationAccessOID.OCSP
            and isinstance(desc.access_location, x509.UniformResourceIdentifier)
        ]
        if ocsp:
            values["aia_ocsp_servers"] = ocsp

    additional = [
        {
            "object_id": object_id(ext.oid),
            "critical": ext.critical,
            "value": ext.value.public_bytes(),
        }
        for ext in template.extensions
        if ext.oid not in _MAPPED_EXTENSIONS
    ]
    if additional:
        values["additional_extensions"] = additional

    return {"reusable_config_values": values}


# ---------------------------------------------------------------------------
# Public key
# ---------------------------------------------------------------------------


def create_public_key(template: CertificateTemplate) -> dict[str, Any]:
    key = template.public_key
    if key is None:
        msg = "Certificate template public key cannot be empty"
        raise ValidationError(msg)
    if isinstance(key, rsa.RSAPublicKey):
        key_type = "PEM_RSA_KEY"
    elif isinstance(key, ec.EllipticCurvePublicKey):
        key_type = "PEM_EC_KEY"
    else:
        msg = f"Unsupported public key type {type(key).__name__}"
        raise UnsupportedValue(msg)
    pem = key.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"type_": key_type, "key": pem}


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def create_certificate_config(template: CertificateTemplate) -> dict[str, Any]:
    """Return the ``CertificateConfig`` for issuing a leaf from *template*."""
    return {
        "subject_config": create_subject_config(template),
        "reusable_config": create_reusable_config(template),
        "public_key": create_public_key(template),
    }


def create_certificate_authority_config(template: CertificateTemplate) -> dict[str, Any]:
    """Return the ``CertificateConfig`` of a new authority (key is remote)."""
    return {
        "subject_config": create_subject_config(template),
        "reusable_config": create_reusable_config(template),
    }
