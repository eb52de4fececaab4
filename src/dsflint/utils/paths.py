"""Path and reference normalization utilities."""

import os
from collections.abc import Sequence
from pathlib import Path

DEFAULT_MARKER_PREFIXES = ("classpath:",)
DEFAULT_SOURCE_PREFIXES = ("src/main/resources/",)


def normalize_path(path: str) -> str:
    """Convert any path to canonical forward slash format.

    Args:
        path: Path with any separator format

    Returns:
        Path with forward slashes only

    Examples:
        >>> normalize_path("fhir\\\\Task\\\\task-start.xml")
        'fhir/Task/task-start.xml'
        >>> normalize_path("bpe/ping.bpmn")
        'bpe/ping.bpmn'
    """
    if not path:
        return path

    return path.replace("\\", "/")


def normalize_reference(
    ref: str | None,
    marker_prefixes: Sequence[str] = DEFAULT_MARKER_PREFIXES,
    source_prefixes: Sequence[str] = DEFAULT_SOURCE_PREFIXES,
) -> str:
    """Canonicalize a resource reference to a bare relative path.

    Strips an embedded marker such as ``classpath:``, the conventional
    ``src/main/resources/`` source root and any leading separators, and
    converts backslashes to forward slashes. The function is total and
    idempotent: ``normalize_reference(normalize_reference(x)) == normalize_reference(x)``.

    Examples:
        >>> normalize_reference("classpath:fhir/Task/t1.xml")
        'fhir/Task/t1.xml'
        >>> normalize_reference("  /src/main/resources/bpe/ping.bpmn ")
        'bpe/ping.bpmn'
        >>> normalize_reference(None)
        ''
    """
    if not ref:
        return ""

    current = normalize_path(ref)
    while True:
        stripped = _strip_once(current, marker_prefixes, source_prefixes)
        if stripped == current:
            return stripped
        current = stripped


def _strip_once(value: str, marker_prefixes: Sequence[str], source_prefixes: Sequence[str]) -> str:
    value = value.strip().lstrip("/")
    for marker in marker_prefixes:
        if marker and value.startswith(marker):
            return value[len(marker):]
    for prefix in source_prefixes:
        prefix = normalize_path(prefix).lstrip("/")
        if prefix and value.startswith(prefix):
            return value[len(prefix):]
    return value


def normalize_directory(path: str | None) -> str:
    """Normalize a directory reference and make sure it ends with a slash.

    Examples:
        >>> normalize_directory("classpath:fhir\\\\Task")
        'fhir/Task/'
        >>> normalize_directory("")
        ''
    """
    normalized = normalize_reference(path)
    if normalized and not normalized.endswith("/"):
        normalized += "/"
    return normalized


def remove_version_suffix(canonical: str | None) -> str:
    """Drop a ``|version`` suffix from a canonical URL.

    Examples:
        >>> remove_version_suffix("http://dsf.dev/bpe/Process/ping|1.0")
        'http://dsf.dev/bpe/Process/ping'
    """
    if not canonical:
        return ""
    return canonical.split("|", 1)[0].strip()


def relative_posix(path: Path, base: Path) -> str:
    """Return ``path`` relative to ``base`` in forward slash form."""
    return normalize_path(os.path.relpath(path, base))
