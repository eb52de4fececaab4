"""Utility modules for dsflint."""

from .cache import ConcurrentCache
from .paths import (
    normalize_directory,
    normalize_path,
    normalize_reference,
    relative_posix,
    remove_version_suffix,
)

__all__ = [
    "ConcurrentCache",
    "normalize_directory",
    "normalize_path",
    "normalize_reference",
    "relative_posix",
    "remove_version_suffix",
]
