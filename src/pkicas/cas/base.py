"""Abstract operation contract and error taxonomy for CAS backends.

Every backend (built-in and custom) inherits from
:class:`CertificateAuthorityService` and implements the three certificate
operations: create, renew and revoke.  Two optional capabilities are
modelled as separate abstract classes so that callers can check for them
explicitly instead of relying on silent no-ops:

- :class:`CertificateAuthorityCreator`: backend can create root or
  intermediate authorities.
- :class:`CertificateAuthorityGetter`: backend can return the root
  certificate of an existing authority.

All failures are raised as subclasses of :class:`CASError`.  The original
cause is always chained (``raise ... from exc``); this layer never retries.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkicas.cas.types import (
        CreateCertificateAuthorityRequest,
        CreateCertificateAuthorityResponse,
        CreateCertificateRequest,
        CreateCertificateResponse,
        GetCertificateAuthorityRequest,
        GetCertificateAuthorityResponse,
        Options,
        RenewCertificateRequest,
        RenewCertificateResponse,
        RevokeCertificateRequest,
        RevokeCertificateResponse,
    )

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CASError(Exception):
    """Base class for every CAS failure.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the caller may retry.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class ValidationError(CASError):
    """A required request field is missing or zero."""


class ConfigError(CASError):
    """Backend options are missing or malformed."""


class MissingConfig(ConfigError):
    """Project, location or authority resource is not configured."""


class UnknownBackend(ConfigError):
    """No backend is registered under the requested name."""


class UnsupportedValue(CASError):
    """A value has no equivalent in the backend."""


class UnsupportedKeySpec(UnsupportedValue):
    """Signature algorithm / key size combination is not supported."""


class InvalidRevocationReason(UnsupportedValue):
    """Revocation reason code cannot be mapped to a backend reason."""


class DecodeError(CASError):
    """Malformed PEM data or extension encoding."""


class MissingCorrelation(CASError):
    """Certificate does not carry the certificate authority extension."""


class RemoteError(CASError):
    """The remote call failed or returned an empty/invalid payload."""


class EmptyChain(RemoteError):
    """The remote service returned no certificates."""


class OperationTimeout(CASError):
    """A long-running remote operation did not finish within its deadline."""

    def __init__(self, detail: str, *, retryable: bool = True) -> None:
        super().__init__(detail, retryable=retryable)


class UnsupportedCapability(CASError):
    """The backend does not implement an optional capability."""


# ---------------------------------------------------------------------------
# Operation contract
# ---------------------------------------------------------------------------


class CertificateAuthorityService(abc.ABC):
    """Base class for all CAS backend implementations.

    Parameters
    ----------
    options:
        Backend selection and provider-scoped fields.

    """

    def __init__(self, options: Options) -> None:
        self._options = options

    @property
    def options(self) -> Options:
        return self._options

    @abc.abstractmethod
    def create_certificate(
        self,
        req: CreateCertificateRequest,
    ) -> CreateCertificateResponse:
        """Sign a new certificate from ``req.template``.

        Raises
        ------
        ValidationError
            If the template is missing or the lifetime is zero.
        CASError
            On any signing failure.

        """

    @abc.abstractmethod
    def renew_certificate(
        self,
        req: RenewCertificateRequest,
    ) -> RenewCertificateResponse:
        """Issue a fresh certificate for an existing template."""

    @abc.abstractmethod
    def revoke_certificate(
        self,
        req: RevokeCertificateRequest,
    ) -> RevokeCertificateResponse:
        """Revoke a certificate previously issued by this backend."""


class CertificateAuthorityCreator(abc.ABC):
    """Capability: create root and intermediate authorities."""

    @abc.abstractmethod
    def create_certificate_authority(
        self,
        req: CreateCertificateAuthorityRequest,
    ) -> CreateCertificateAuthorityResponse:
        """Create a new certificate authority."""


class CertificateAuthorityGetter(abc.ABC):
    """Capability: return the root certificate of an existing authority."""

    @abc.abstractmethod
    def get_certificate_authority(
        self,
        req: GetCertificateAuthorityRequest,
    ) -> GetCertificateAuthorityResponse:
        """Return the root certificate of the named authority."""


def supports_root_retrieval(cas: object) -> bool:
    """Return whether *cas* can fetch an authority's root certificate."""
    return isinstance(cas, CertificateAuthorityGetter)


def supports_authority_creation(cas: object) -> bool:
    """Return whether *cas* can create certificate authorities."""
    return isinstance(cas, CertificateAuthorityCreator)


def require_getter(cas: object) -> CertificateAuthorityGetter:
    """Return *cas* as a getter or raise :class:`UnsupportedCapability`."""
    if not isinstance(cas, CertificateAuthorityGetter):
        msg = f"{type(cas).__name__} does not support root certificate retrieval"
        raise UnsupportedCapability(msg)
    return cas


def require_creator(cas: object) -> CertificateAuthorityCreator:
    """Return *cas* as a creator or raise :class:`UnsupportedCapability`."""
    if not isinstance(cas, CertificateAuthorityCreator):
        msg = f"{type(cas).__name__} does not support certificate authority creation"
        raise UnsupportedCapability(msg)
    return cas
