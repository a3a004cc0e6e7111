"""Tests for pkicas.pki: local generation and root discovery."""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest
from cryptography import x509

from pkicas.cas.base import RemoteError
from pkicas.cas.cloudcas import CloudCAS
from pkicas.cas.pemutil import encode_certificate, fingerprint
from pkicas.cas.registry import CASRegistry
from pkicas.cas.softcas import SoftCAS
from pkicas.cas.types import CreateKeyOptions, Options, SignatureAlgorithm
from pkicas.pki import (
    bootstrap_root,
    discover_root,
    generate_intermediate_certificate,
    generate_root_certificate,
)

AUTHORITY = "projects/p/locations/l/certificateAuthorities/ca"


class _RootClient:
    def __init__(self, pems=None, error=None):
        self._pems = pems or []
        self._error = error
        self.requests = []

    def get_certificate_authority(self, *, request, timeout):
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        return SimpleNamespace(pem_ca_certificates=self._pems)


def _registry(client) -> CASRegistry:
    registry = CASRegistry()
    registry.register("cloudcas", lambda options: CloudCAS(options, client=client))
    registry.register("softcas", SoftCAS)
    return registry


class TestGenerate:
    def test_root(self):
        root = generate_root_certificate("Example")
        assert root.name == "Example Root CA"
        assert root.certificate.subject.rfc4514_string() == "CN=Example Root CA"
        assert root.signer is not None

    def test_root_lifetime_and_key(self):
        root = generate_root_certificate(
            "Example",
            lifetime=timedelta(days=30),
            create_key=CreateKeyOptions(SignatureAlgorithm.ECDSA_WITH_SHA384),
        )
        cert = root.certificate
        assert cert.not_valid_after_utc - cert.not_valid_before_utc == timedelta(days=30)
        assert root.signer.curve.key_size == 384

    def test_intermediate(self):
        root = generate_root_certificate("Example")
        inter = generate_intermediate_certificate("Example", root.certificate, root.signer)
        assert inter.certificate.subject.rfc4514_string() == "CN=Example Intermediate CA"
        inter.certificate.verify_directly_issued_by(root.certificate)
        bc = inter.certificate.extensions.get_extension_for_class(x509.BasicConstraints).value
        assert bc.ca is True
        assert bc.path_length == 0


class TestDiscoverRoot:
    def test_remote_root(self, self_signed_factory):
        inter, root = self_signed_factory("inter"), self_signed_factory("root")
        client = _RootClient([encode_certificate(inter), encode_certificate(root)])
        options = Options(type="cloudcas", certificate_authority=AUTHORITY)

        discovered = discover_root(options, _registry(client))
        assert discovered.remote is True
        assert discovered.certificate == root
        assert discovered.fingerprint == fingerprint(root)
        assert discovered.signer is None
        assert client.requests == [{"name": AUTHORITY}]

    def test_backend_without_getter(self):
        assert discover_root(Options(type="softcas"), _registry(_RootClient())) is None

    def test_backend_errors_propagate(self):
        client = _RootClient(error=RuntimeError("unavailable"))
        options = Options(type="cloudcas", certificate_authority=AUTHORITY)
        with pytest.raises(RemoteError):
            discover_root(options, _registry(client))


class TestBootstrapRoot:
    def test_prefers_remote_root(self, self_signed_factory):
        root = self_signed_factory("remote root")
        client = _RootClient([encode_certificate(root)])
        options = Options(type="cloudcas", certificate_authority=AUTHORITY)
        discovered = bootstrap_root(options, "Example", _registry(client))
        assert discovered.remote is True
        assert discovered.certificate == root

    def test_generates_locally(self):
        discovered = bootstrap_root(Options(type="softcas"), "Example", _registry(_RootClient()))
        assert discovered.remote is False
        assert discovered.signer is not None
        assert discovered.certificate.subject.rfc4514_string() == "CN=Example Root CA"
        assert discovered.fingerprint == fingerprint(discovered.certificate)
