"""Helper modules for the credential market."""

__all__ = [
    "migration",
    "references",
    "sanitize",
]
