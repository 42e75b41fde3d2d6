"""Server-sent events broadcast hub."""

__version__ = "0.1.0"
