"""Catalog module parses the manifest, builds snapshots and answers queries."""

__all__ = [
    "schemas",
    "manifest",
    "builder",
    "service",
    "bootstrap",
]
