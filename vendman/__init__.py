"""vendman — vendor external git repositories into a managed workspace."""

__version__ = "0.1.0"
