"""Stock-replenishment notification service."""

__version__ = "1.0.0"
