"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
The builders here are what the application actually reads.

Access pattern::

    from pkicas.config import load_config

    settings = load_config("config.yaml")
    print(settings.cas.backend, settings.cas.certificate_authority)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# CAS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SoftCASSettings:
    """Local issuer material for the ``softcas`` backend."""

    issuer_cert_path: str
    issuer_key_path: str
    chain_path: str | None


@dataclass(frozen=True)
class CASSettings:
    """Certificate authority service configuration (backend, deadlines)."""

    backend: str
    certificate_authority: str
    project: str
    location: str
    is_creator: bool
    credentials_file: str
    request_timeout_seconds: float
    operation_timeout_seconds: float
    soft: SoftCASSettings


def backend_name(value: object) -> str:
    # ext: names carry a case-sensitive import path
    name = str(value or "softcas").strip()
    return name if name.startswith("ext:") else name.lower()


def _build_cas(data: dict | None) -> CASSettings:
    d = data or {}
    soft_d = d.get("soft") or {}
    return CASSettings(
        backend=backend_name(d.get("backend")),
        certificate_authority=d.get("certificate_authority", ""),
        project=d.get("project", ""),
        location=d.get("location", ""),
        is_creator=bool(d.get("is_creator", False)),
        credentials_file=d.get("credentials_file", ""),
        request_timeout_seconds=float(d.get("request_timeout_seconds", 15)),
        operation_timeout_seconds=float(d.get("operation_timeout_seconds", 60)),
        soft=SoftCASSettings(
            issuer_cert_path=soft_d.get("issuer_cert_path", ""),
            issuer_key_path=soft_d.get("issuer_key_path", ""),
            chain_path=soft_d.get("chain_path"),
        ),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format)."""

    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PkicasSettings:
    cas: CASSettings
    logging: LoggingSettings


def build_settings(data: dict) -> PkicasSettings:
    """Build the full typed settings tree from raw config data.

    Called by :func:`~pkicas.config.pkicas_config.load_config` after
    environment-variable resolution and validation.
    """
    return PkicasSettings(
        cas=_build_cas(data.get("cas")),
        logging=_build_logging(data.get("logging")),
    )
