"""Live stream session control for content fabric ingest nodes."""

__version__ = "0.1.0"
