"""Dream Log service: dream-to-story generation and dual persistence."""

__version__ = "1.0.0"
