"""Seam for the implementation-class capability check.

Whether a class really implements an interface can only be answered by
inspecting compiled artifacts. dsflint delegates that question to an injected
verifier and only records the answer.
"""

from collections.abc import Iterable, Mapping
from typing import Protocol


class CapabilityVerifier(Protocol):
    """Answers whether an implementation class provides a capability."""

    def verifies(self, class_name: str, required_capability: str) -> bool: ...


class StaticCapabilityVerifier:
    """Verifier backed by a known class -> capabilities mapping."""

    def __init__(self, capabilities: Mapping[str, Iterable[str]]):
        self._capabilities = {name: frozenset(caps) for name, caps in capabilities.items()}

    def verifies(self, class_name: str, required_capability: str) -> bool:
        return required_capability in self._capabilities.get(class_name, frozenset())

