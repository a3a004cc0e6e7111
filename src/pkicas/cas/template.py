"""Mutable certificate template handed to CAS backends.

A template is the backend-agnostic description of a certificate to
issue: subject, public key, and an explicit, ordered list of X.509
extensions.  Backends read the standard extensions (SAN, key usage,
basic constraints, ...) to build their own request shape and may append
or strip extensions of their own, e.g. the certificate authority
correlation extension.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from cryptography import x509
from cryptography.x509.oid import NameOID

if TYPE_CHECKING:
    from datetime import datetime

    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificatePublicKeyTypes,
    )

_E = TypeVar("_E", bound=x509.ExtensionType)


@dataclass
class CertificateTemplate:
    """Subject, key and extension list of a certificate to be issued.

    ``extensions`` is a plain list so that callers and backends can
    inspect and rewrite it in place.
    """

    subject: x509.Name
    public_key: CertificatePublicKeyTypes | None = None
    extensions: list[x509.Extension[Any]] = field(default_factory=list)
    serial_number: int | None = None
    not_before: datetime | None = None

    @classmethod
    def from_csr(cls, csr: x509.CertificateSigningRequest) -> CertificateTemplate:
        """Build a template from the subject, key and extensions of *csr*."""
        return cls(
            subject=csr.subject,
            public_key=csr.public_key(),
            extensions=list(csr.extensions),
        )

    @property
    def common_name(self) -> str:
        attrs = self.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not attrs:
            return ""
        value = attrs[0].value
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def find_extension(self, oid: x509.ObjectIdentifier) -> x509.Extension[Any] | None:
        for ext in self.extensions:
            if ext.oid == oid:
                return ext
        return None

    def get_extension_value(self, ext_type: type[_E]) -> _E | None:
        """Return the value of the first extension of *ext_type*, if any."""
        ext = self.find_extension(ext_type.oid)
        if ext is None:
            return None
        return ext.value  # type: ignore[return-value]

    def add_extension(
        self,
        value: x509.ExtensionType,
        *,
        critical: bool = False,
    ) -> x509.Extension[Any]:
        ext = x509.Extension(value.oid, critical, value)
        self.extensions.append(ext)
        return ext

    def remove_extension(self, oid: x509.ObjectIdentifier) -> bool:
        """Remove every extension with *oid*.

        Idempotent: returns ``True`` if something was removed, ``False``
        when the template did not carry the extension.
        """
        kept = [ext for ext in self.extensions if ext.oid != oid]
        removed = len(kept) != len(self.extensions)
        self.extensions[:] = kept
        return removed

    def copy(self) -> CertificateTemplate:
        """Return a copy with an independent extension list."""
        clone = copy.copy(self)
        clone.extensions = list(self.extensions)
        return clone
