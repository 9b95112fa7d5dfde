"""hmem: hybrid conversational memory store."""

__version__ = "2026.1.0"
