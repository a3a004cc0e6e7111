"""PKICAS configuration loader.

Lifecycle::

    settings = load_config("/etc/pkicas/config.yaml")
    options = build_options(settings)
    cas = new_cas(options)

The file is YAML (``.yaml`` / ``.yml``) or JSON.  ``${VAR}`` and
``${VAR:-default}`` string values are replaced with environment
variables before validation, so substituted values are checked too.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from pkicas.cas.base import ConfigError
from pkicas.cas.types import Options
from pkicas.config.settings import PkicasSettings, backend_name, build_settings

log = logging.getLogger(__name__)

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_AUTHORITY_RE = re.compile(
    r"^projects/[^/]+/locations/[^/]+/certificateAuthorities/[^/]+$",
)

_BUILTIN_BACKENDS = frozenset({"softcas", "cloudcas"})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_LOG_FORMATS = frozenset({"json", "text"})
_STRING_KEYS = (
    "backend",
    "certificate_authority",
    "project",
    "location",
    "credentials_file",
)


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when cross-field validation finds one or more problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Cross-field validation
# ---------------------------------------------------------------------------


def _positive_number(value: Any) -> bool:  # noqa: ANN401
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def validate(data: dict) -> None:  # noqa: C901, PLR0912
    """Semantic & cross-field validation of the raw config mapping.

    Collects every problem before raising so that a broken file is
    reported in one go.  Non-fatal findings are logged as warnings.

    Raises
    ------
    ConfigValidationError
        If one or more errors were found.

    """
    errors: list[str] = []
    warnings: list[str] = []

    cas = data.get("cas") or {}
    logging_cfg = data.get("logging") or {}

    if not isinstance(cas, dict):
        errors.append("cas must be a mapping")
        cas = {}
    if not isinstance(logging_cfg, dict):
        errors.append("logging must be a mapping")
        logging_cfg = {}

    for key in _STRING_KEYS:
        if key in cas and cas[key] is not None and not isinstance(cas[key], str):
            errors.append(f"cas.{key} must be a string (got {cas[key]!r})")
            cas = {k: v for k, v in cas.items() if k != key}
    if "is_creator" in cas and not isinstance(cas["is_creator"], bool):
        errors.append(f"cas.is_creator must be a boolean (got {cas['is_creator']!r})")

    # -- backend --
    backend = backend_name(cas.get("backend"))
    if backend not in _BUILTIN_BACKENDS and not backend.startswith("ext:"):
        errors.append(
            f"cas.backend '{backend}' is unknown; use one of "
            f"{sorted(_BUILTIN_BACKENDS)} or 'ext:mypackage.module.ClassName'",
        )

    # -- cloudcas --
    if backend == "cloudcas":
        authority = cas.get("certificate_authority", "")
        if cas.get("is_creator", False):
            if not cas.get("project"):
                errors.append("cas.project is required when cas.is_creator is true")
            if not cas.get("location"):
                errors.append("cas.location is required when cas.is_creator is true")
        elif not authority:
            errors.append("cas.certificate_authority is required for the cloudcas backend")
        if authority and not _AUTHORITY_RE.match(authority):
            errors.append(
                f"cas.certificate_authority '{authority}' must look like "
                "'projects/<p>/locations/<l>/certificateAuthorities/<ca>'",
            )
        credentials_file = cas.get("credentials_file", "")
        if credentials_file and not Path(credentials_file).is_file():
            warnings.append(
                f"cas.credentials_file '{credentials_file}' does not exist",
            )

    # -- softcas --
    if backend == "softcas":
        soft = cas.get("soft") or {}
        if not isinstance(soft, dict):
            errors.append("cas.soft must be a mapping")
            soft = {}
        for key in ("issuer_cert_path", "issuer_key_path", "chain_path"):
            if soft.get(key) is not None and not isinstance(soft[key], str):
                errors.append(f"cas.soft.{key} must be a string (got {soft[key]!r})")
        has_cert = bool(soft.get("issuer_cert_path"))
        has_key = bool(soft.get("issuer_key_path"))
        if has_cert != has_key:
            errors.append(
                "cas.soft.issuer_cert_path and cas.soft.issuer_key_path "
                "must be set together",
            )
        if not has_cert and not has_key:
            warnings.append(
                "cas.soft has no issuer; the backend can only create authorities",
            )

    # -- deadlines --
    for key in ("request_timeout_seconds", "operation_timeout_seconds"):
        if key in cas and not _positive_number(cas[key]):
            errors.append(f"cas.{key} must be a positive number (got {cas[key]!r})")

    # -- logging --
    level = str(logging_cfg.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        errors.append(f"logging.level '{level}' is not one of {sorted(_LOG_LEVELS)}")
    fmt = logging_cfg.get("format", "json")
    if not isinstance(fmt, str) or fmt not in _LOG_FORMATS:
        errors.append(f"logging.format '{fmt}' is not one of {sorted(_LOG_FORMATS)}")

    for w in warnings:
        log.warning("Config warning: %s", w)

    if errors:
        raise ConfigValidationError(errors)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_file(path: Path) -> dict:
    with path.open(encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path}: top level must be a mapping"
        raise ConfigValidationError([msg])
    return data


def load_config(path: str | Path) -> PkicasSettings:
    """Read, resolve, validate and build the settings tree from *path*.

    Raises
    ------
    ConfigValidationError
        On unresolvable env-var references or validation failures.
    OSError
        If the file cannot be read.
    yaml.YAMLError, json.JSONDecodeError
        If the file cannot be parsed.

    """
    config_path = Path(path)
    data = _read_file(config_path)
    _resolve_env_vars(data)
    validate(data)
    settings = build_settings(data)
    log.debug("Loaded configuration from %s", config_path)
    return settings


def build_options(settings: PkicasSettings) -> Options:
    """Turn the ``cas`` section of *settings* into backend :class:`Options`.

    Softcas issuer material is read from disk here.

    Raises
    ------
    ConfigError
        If a softcas PEM file cannot be read or parsed.

    """
    cas = settings.cas
    issuer = signer = None
    chain: tuple = ()
    if cas.backend == "softcas" and cas.soft.issuer_cert_path:
        issuer, signer, chain = _load_soft_material(
            cas.soft.issuer_cert_path,
            cas.soft.issuer_key_path,
            cas.soft.chain_path,
        )

    return Options(
        type=cas.backend,
        certificate_authority=cas.certificate_authority,
        project=cas.project,
        location=cas.location,
        is_creator=cas.is_creator,
        credentials_file=cas.credentials_file,
        issuer=issuer,
        signer=signer,
        certificate_chain=chain,
        request_timeout=timedelta(seconds=cas.request_timeout_seconds),
        operation_timeout=timedelta(seconds=cas.operation_timeout_seconds),
    )


def _load_soft_material(
    cert_path: str,
    key_path: str,
    chain_path: str | None,
) -> tuple[Any, Any, tuple]:
    try:
        issuer = x509.load_pem_x509_certificate(Path(cert_path).read_bytes())
    except (OSError, ValueError) as exc:
        msg = f"Failed to load softcas issuer certificate from {cert_path}: {exc}"
        raise ConfigError(msg) from exc

    try:
        signer = serialization.load_pem_private_key(
            Path(key_path).read_bytes(),
            password=None,
        )
    except (OSError, ValueError, TypeError) as exc:
        msg = f"Failed to load softcas issuer key from {key_path}: {exc}"
        raise ConfigError(msg) from exc

    chain: tuple = ()
    if chain_path:
        try:
            chain = tuple(x509.load_pem_x509_certificates(Path(chain_path).read_bytes()))
        except (OSError, ValueError) as exc:
            msg = f"Failed to load softcas chain from {chain_path}: {exc}"
            raise ConfigError(msg) from exc

    log.debug("Loaded softcas issuer %s", issuer.subject.rfc4514_string())
    return issuer, signer, chain
