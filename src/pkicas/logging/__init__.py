"""Logging subsystem for PKICAS.

Public API::

    from pkicas.logging import configure_logging

    configure_logging(settings.logging)
"""

from pkicas.logging.setup import configure_logging

__all__ = ["configure_logging"]
