"""CAS backend registry.

Maps backend names to constructors and builds initialised
:class:`CertificateAuthorityService` instances from
:class:`~pkicas.cas.types.Options`.  Built-in backends (``softcas``,
``cloudcas``) are listed explicitly and loaded on first use; custom
backends are reachable with the ``ext:`` prefix.

Usage::

    from pkicas.cas.registry import new_cas

    cas = new_cas(Options(type="cloudcas", certificate_authority=name))
    resp = cas.create_certificate(CreateCertificateRequest(template, lifetime))
"""

from __future__ import annotations

import importlib
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from pkicas.cas.base import (
    CertificateAuthorityService,
    ConfigError,
    UnknownBackend,
)
from pkicas.cas.types import CLOUDCAS, SOFTCAS, normalize_backend_name

if TYPE_CHECKING:
    from pkicas.cas.types import Options

log = logging.getLogger(__name__)

Constructor = Callable[["Options"], CertificateAuthorityService]

_EXT_PREFIX = "ext:"

# Maps backend name -> (module_path, class_name)
_BUILTIN_BACKENDS: dict[str, tuple[str, str]] = {
    SOFTCAS: ("pkicas.cas.softcas", "SoftCAS"),
    CLOUDCAS: ("pkicas.cas.cloudcas", "CloudCAS"),
}

_REQUIRED_METHODS = ("create_certificate", "renew_certificate", "revoke_certificate")


class CASRegistry:
    """Name -> constructor table for CAS backends.

    Safe to share between threads; registration and lookup take a lock.
    """

    def __init__(self) -> None:
        self._constructors: dict[str, Constructor] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return normalize_backend_name(name) in self._constructors

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._constructors)

    def register(self, name: str, constructor: Constructor) -> None:
        """Register *constructor* under *name*.

        Registering the same constructor again is a no-op.

        Raises
        ------
        ConfigError
            If a different constructor is already registered under *name*.

        """
        key = normalize_backend_name(name)
        with self._lock:
            existing = self._constructors.get(key)
            if existing is not None and existing is not constructor:
                msg = f"CAS backend '{key}' is already registered"
                raise ConfigError(msg)
            self._constructors[key] = constructor
        log.debug("Registered CAS backend: %s", key)

    def resolve(self, name: str) -> Constructor:
        """Return the constructor registered under *name*.

        Names starting with ``ext:`` are imported as
        ``ext:package.module.ClassName``.

        Raises
        ------
        UnknownBackend
            If nothing is registered under *name*.
        ConfigError
            If an ``ext:`` backend cannot be loaded.

        """
        if name.startswith(_EXT_PREFIX):
            return _load_external(name[len(_EXT_PREFIX):])

        key = normalize_backend_name(name)
        with self._lock:
            constructor = self._constructors.get(key)
        if constructor is None:
            msg = (
                f"Unknown CAS backend '{key}'; "
                f"registered: {self.names()}. "
                f"Use 'ext:mypackage.module.ClassName' for custom backends."
            )
            raise UnknownBackend(msg)
        return constructor

    def construct(self, options: Options) -> CertificateAuthorityService:
        """Build the backend selected by ``options.type``.

        Errors raised by the backend constructor propagate unchanged.
        """
        constructor = self.resolve(options.type)
        cas = constructor(options)
        log.info("Loaded CAS backend: %s", options.type or SOFTCAS)
        return cas


def _builtin_constructor(name: str) -> Constructor:
    """Return a constructor that imports the built-in backend on first call."""
    mod_path, cls_name = _BUILTIN_BACKENDS[name]

    def construct(options: Options) -> CertificateAuthorityService:
        try:
            module = importlib.import_module(mod_path)
            cls = getattr(module, cls_name)
        except (ImportError, AttributeError) as exc:
            msg = f"Failed to load built-in CAS backend '{name}': {exc}"
            raise ConfigError(msg) from exc
        _validate_class(cls, name)
        return cls(options)

    construct.__name__ = f"construct_{name}"
    return construct


def _load_external(fqn: str) -> Constructor:
    """Load a custom backend class by fully-qualified name.

    Parameters
    ----------
    fqn:
        e.g. ``"mycompany.pki.backends.VaultCAS"``

    """
    module_path, _, cls_name = fqn.rpartition(".")
    if not module_path:
        msg = (
            f"Invalid external CAS backend '{fqn}': must be fully "
            "qualified (e.g. 'mypackage.module.ClassName')"
        )
        raise ConfigError(msg)

    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load external CAS backend '{fqn}': {exc}"
        raise ConfigError(msg) from exc

    _validate_class(cls, f"{_EXT_PREFIX}{fqn}")
    log.info("Loaded external CAS backend: %s", fqn)
    return cls


def _validate_class(cls: object, label: str) -> None:
    """Verify that a backend class implements the operation contract."""
    if not (isinstance(cls, type) and issubclass(cls, CertificateAuthorityService)):
        msg = f"CAS backend '{label}' is not a subclass of CertificateAuthorityService"
        raise ConfigError(msg)

    for method_name in _REQUIRED_METHODS:
        method = getattr(cls, method_name, None)
        if method is None or getattr(method, "__isabstractmethod__", False):
            msg = f"CAS backend '{label}' does not implement '{method_name}()'"
            raise ConfigError(msg)


def default_registry() -> CASRegistry:
    """Return a registry holding the built-in backends."""
    registry = CASRegistry()
    for name in _BUILTIN_BACKENDS:
        registry.register(name, _builtin_constructor(name))
    return registry


def new_cas(
    options: Options,
    registry: CASRegistry | None = None,
) -> CertificateAuthorityService:
    """Construct the backend selected by *options*.

    Uses :func:`default_registry` when *registry* is not given.
    """
    return (registry or default_registry()).construct(options)
