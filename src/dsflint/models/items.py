"""Validation items: the single output shape of every dsflint check."""

from dataclasses import dataclass
from enum import Enum


class Severity(str, Enum):
    """Severity of a validation item."""
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    SUCCESS = "SUCCESS"


class ItemCategory(str, Enum):
    """What part of a plugin an item is about."""
    REFERENCE = "reference"
    LEFTOVER = "leftover"
    LEFTOVER_WORKFLOW = "leftover-workflow"
    LEFTOVER_RESOURCE = "leftover-resource"
    DOCUMENT = "document"
    PROFILE = "profile"
    CARDINALITY = "cardinality"
    AUTHORIZATION = "authorization"
    DEFINITION = "definition"
    CAPABILITY = "capability"
    CHECK = "check"


@dataclass(frozen=True)
class ValidationItem:
    """A single finding produced by a check."""
    severity: Severity
    category: ItemCategory
    message: str
    file: str | None = None
    element_id: str | None = None
    reference: str | None = None
    plugin: str | None = None

    def __str__(self) -> str:
        location = ""
        if self.file:
            location += f" in {self.file}"
        if self.element_id:
            location += f" at {self.element_id}"
        return f"[{self.severity.value}] {self.category.value}: {self.message}{location}"

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "file": self.file,
            "elementId": self.element_id,
            "reference": self.reference,
            "plugin": self.plugin,
        }