"""Find and resolve duplicate recordings in a music library."""

__version__ = "0.1.0"
