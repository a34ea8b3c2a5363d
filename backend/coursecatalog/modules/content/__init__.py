"""Content module gives read-only access to the tutorial documents on disk."""

__all__ = [
    "dto",
    "sources",
]
