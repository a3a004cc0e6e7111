"""PKICAS: pluggable Certificate Authority Service backends."""

__version__ = "1.0.0"
