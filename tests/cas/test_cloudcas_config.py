"""Tests for pkicas.cas.cloudcas_config request builders."""

from __future__ import annotations

import ipaddress
from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa
from cryptography.x509.oid import (
    AuthorityInformationAccessOID,
    ExtendedKeyUsageOID,
    NameOID,
)

from pkicas.cas import cloudcas_config
from pkicas.cas.base import UnsupportedValue, ValidationError
from pkicas.cas.extension import CERTIFICATE_AUTHORITY_EXTENSION_OID, set_certificate_authority_extension
from pkicas.cas.template import CertificateTemplate


def _make_template(public_key=None) -> CertificateTemplate:
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Org"),
            x509.NameAttribute(NameOID.COMMON_NAME, "svc.example.com"),
        ]
    )
    return CertificateTemplate(subject=subject, public_key=public_key)


class TestHelpers:
    def test_object_id(self):
        oid = x509.ObjectIdentifier("1.3.6.1.4.1.37476.9000.64.2")
        assert cloudcas_config.object_id(oid) == {
            "object_id_path": [1, 3, 6, 1, 4, 1, 37476, 9000, 64, 2],
        }

    def test_duration_whole_seconds(self):
        assert cloudcas_config.duration(timedelta(days=1)) == {"seconds": 86400, "nanos": 0}

    def test_duration_fractional(self):
        assert cloudcas_config.duration(timedelta(seconds=2, microseconds=500)) == {
            "seconds": 2,
            "nanos": 500_000,
        }


class TestSubjectConfig:
    def test_subject_fields(self):
        config = cloudcas_config.create_subject_config(_make_template())
        assert config["common_name"] == "svc.example.com"
        assert config["subject"] == {"country_code": "US", "organization": "Example Org"}
        assert "subject_alt_name" not in config

    def test_subject_alt_names(self):
        template = _make_template()
        template.add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName("svc.example.com"),
                    x509.DNSName("alt.example.com"),
                    x509.IPAddress(ipaddress.ip_address("10.0.0.1")),
                    x509.RFC822Name("ops@example.com"),
                    x509.UniformResourceIdentifier("spiffe://example/svc"),
                ]
            )
        )
        sans = cloudcas_config.create_subject_config(template)["subject_alt_name"]
        assert sans == {
            "dns_names": ["svc.example.com", "alt.example.com"],
            "uris": ["spiffe://example/svc"],
            "email_addresses": ["ops@example.com"],
            "ip_addresses": ["10.0.0.1"],
        }


class TestReusableConfig:
    def test_empty_template(self):
        assert cloudcas_config.create_reusable_config(_make_template()) == {
            "reusable_config_values": {},
        }

    def test_key_usage_and_eku(self):
        template = _make_template()
        template.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        template.add_extension(
            x509.ExtendedKeyUsage(
                [
                    ExtendedKeyUsageOID.SERVER_AUTH,
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                    x509.ObjectIdentifier("1.2.3.4"),
                ]
            )
        )
        values = cloudcas_config.create_reusable_config(template)["reusable_config_values"]
        key_usage = values["key_usage"]
        assert key_usage["base_key_usage"]["digital_signature"] is True
        assert key_usage["base_key_usage"]["key_encipherment"] is True
        assert key_usage["base_key_usage"]["cert_sign"] is False
        assert "encipher_only" not in key_usage["base_key_usage"]
        assert key_usage["extended_key_usage"] == {"server_auth": True, "client_auth": True}
        assert key_usage["unknown_extended_key_usages"] == [
            {"object_id_path": [1, 2, 3, 4]},
        ]
        assert "additional_extensions" not in values

    def test_ca_options(self):
        template = _make_template()
        template.add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        values = cloudcas_config.create_reusable_config(template)["reusable_config_values"]
        assert values["ca_options"] == {"is_ca": True, "max_issuer_path_length": 0}

    def test_ocsp_servers(self):
        template = _make_template()
        template.add_extension(
            x509.AuthorityInformationAccess(
                [
                    x509.AccessDescription(
                        AuthorityInformationAccessOID.OCSP,
                        x509.UniformResourceIdentifier("http://ocsp.example.com"),
                    ),
                    x509.AccessDescription(
                        AuthorityInformationAccessOID.CA_ISSUERS,
                        x509.UniformResourceIdentifier("http://ca.example.com/ca.crt"),
                    ),
                ]
            )
        )
        values = cloudcas_config.create_reusable_config(template)["reusable_config_values"]
        assert values["aia_ocsp_servers"] == ["http://ocsp.example.com"]

    def test_correlation_extension_is_forwarded(self):
        template = _make_template()
        set_certificate_authority_extension(template, 2, "abc")
        values = cloudcas_config.create_reusable_config(template)["reusable_config_values"]
        (additional,) = values["additional_extensions"]
        assert additional["object_id"] == cloudcas_config.object_id(
            CERTIFICATE_AUTHORITY_EXTENSION_OID,
        )
        assert additional["critical"] is False
        assert additional["value"] == bytes.fromhex("3008020102") + b"\x0c\x03abc"


class TestPublicKey:
    def test_ec_key(self, ec_key):
        public_key = cloudcas_config.create_public_key(_make_template(ec_key.public_key()))
        assert public_key["type_"] == "PEM_EC_KEY"
        assert public_key["key"].startswith(b"-----BEGIN PUBLIC KEY-----")

    def test_rsa_key(self):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        public_key = cloudcas_config.create_public_key(_make_template(key.public_key()))
        assert public_key["type_"] == "PEM_RSA_KEY"

    def test_missing_key(self):
        with pytest.raises(ValidationError):
            cloudcas_config.create_public_key(_make_template())

    def test_unsupported_key(self):
        key = ed25519.Ed25519PrivateKey.generate().public_key()
        with pytest.raises(UnsupportedValue):
            cloudcas_config.create_public_key(_make_template(key))


class TestAggregates:
    def test_certificate_config(self, ec_key):
        config = cloudcas_config.create_certificate_config(_make_template(ec_key.public_key()))
        assert set(config) == {"subject_config", "reusable_config", "public_key"}

    def test_authority_config_has_no_key(self):
        config = cloudcas_config.create_certificate_authority_config(_make_template())
        assert set(config) == {"subject_config", "reusable_config"}
