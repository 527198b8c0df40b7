"""Helper modules for the StudioManager application."""

__all__ = [
    "metrics",
]
