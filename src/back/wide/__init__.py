"""wide: backend for a browser-based project workspace."""

__version__ = '0.1.0'
