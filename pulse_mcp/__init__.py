"""Model Context Protocol servers for the PulseMCP tool collection."""

__version__ = "0.1.0"
