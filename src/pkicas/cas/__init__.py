"""Pluggable certificate authority service (CAS) backends.

Exports the operation contract, capability classes, error types, value
types and the registry helpers.
"""

from pkicas.cas.base import (
    CASError,
    CertificateAuthorityCreator,
    CertificateAuthorityGetter,
    CertificateAuthorityService,
    ConfigError,
    DecodeError,
    EmptyChain,
    InvalidRevocationReason,
    MissingConfig,
    MissingCorrelation,
    OperationTimeout,
    RemoteError,
    UnknownBackend,
    UnsupportedCapability,
    UnsupportedKeySpec,
    UnsupportedValue,
    ValidationError,
    require_creator,
    require_getter,
    supports_authority_creation,
    supports_root_retrieval,
)
from pkicas.cas.registry import CASRegistry, default_registry, new_cas
from pkicas.cas.template import CertificateTemplate
from pkicas.cas.types import (
    CLOUDCAS,
    SOFTCAS,
    BackendID,
    CertificateAuthorityType,
    CreateCertificateAuthorityRequest,
    CreateCertificateAuthorityResponse,
    CreateCertificateRequest,
    CreateCertificateResponse,
    CreateKeyOptions,
    GetCertificateAuthorityRequest,
    GetCertificateAuthorityResponse,
    Options,
    RenewCertificateRequest,
    RenewCertificateResponse,
    RevocationReason,
    RevokeCertificateRequest,
    RevokeCertificateResponse,
    SignatureAlgorithm,
)

__all__ = [
    "CLOUDCAS",
    "SOFTCAS",
    "BackendID",
    "CASError",
    "CASRegistry",
    "CertificateAuthorityCreator",
    "CertificateAuthorityGetter",
    "CertificateAuthorityService",
    "CertificateAuthorityType",
    "CertificateTemplate",
    "ConfigError",
    "CreateCertificateAuthorityRequest",
    "CreateCertificateAuthorityResponse",
    "CreateCertificateRequest",
    "CreateCertificateResponse",
    "CreateKeyOptions",
    "DecodeError",
    "EmptyChain",
    "GetCertificateAuthorityRequest",
    "GetCertificateAuthorityResponse",
    "InvalidRevocationReason",
    "MissingConfig",
    "MissingCorrelation",
    "OperationTimeout",
    "Options",
    "RemoteError",
    "RenewCertificateRequest",
    "RenewCertificateResponse",
    "RevocationReason",
    "RevokeCertificateRequest",
    "RevokeCertificateResponse",
    "SignatureAlgorithm",
    "UnknownBackend",
    "UnsupportedCapability",
    "UnsupportedKeySpec",
    "UnsupportedValue",
    "ValidationError",
    "default_registry",
    "new_cas",
    "require_creator",
    "require_getter",
    "supports_authority_creation",
    "supports_root_retrieval",
]
