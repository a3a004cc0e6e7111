"""Configuration subsystem for PKICAS.

Public API::

    from pkicas.config import build_options, load_config

    settings = load_config("config.yaml")
    options = build_options(settings)       # backend Options
    level = settings.logging.level          # typed access
"""

from pkicas.config.pkicas_config import (
    ConfigValidationError,
    build_options,
    load_config,
)
from pkicas.config.settings import (
    CASSettings,
    LoggingSettings,
    PkicasSettings,
    SoftCASSettings,
    build_settings,
)

__all__ = [
    "CASSettings",
    "ConfigValidationError",
    "LoggingSettings",
    "PkicasSettings",
    "SoftCASSettings",
    "build_options",
    "build_settings",
    "load_config",
]
