"""Core validation framework for dsflint.

Checks are small pluggable classes run in a fixed order against one plugin at
a time. Every finding, positive or negative, is recorded as an immutable
``ValidationItem`` so reporting layers can show what was verified as well as
what failed.
"""

import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..config import DsflintConfig
from ..models.items import ItemCategory, Severity, ValidationItem
from ..models.resource import ResourceCategory, ResourceReference
from ..resources.documents import UnparsableDocumentError, parse_bytes, resource_type

if TYPE_CHECKING:
    from ..analysis.leftovers import LeftoverAnalysisResult, LeftoverResourceDetector
    from ..capability import CapabilityVerifier
    from ..models.plugin import PluginContext
    from ..resources.resolver import ResourceResolver

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Ordered items and counters collected for one plugin."""
    plugin: str
    status: Severity = Severity.SUCCESS
    items: list[ValidationItem] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        """Exit code for CI: 0 = success/warn, 1 = any error."""
        return 1 if self.status == Severity.ERROR else 0

    def add_item(self, item: ValidationItem) -> None:
        self.items.append(item)

        # Update overall status (error > warn > success)
        if item.severity == Severity.ERROR:
            self.status = Severity.ERROR
        elif item.severity == Severity.WARN and self.status == Severity.SUCCESS:
            self.status = Severity.WARN

    def extend(self, items) -> None:
        for item in items:
            self.add_item(item)

    def increment_counter(self, name: str, value: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + value

    def count(self, severity: Severity) -> int:
        return sum(1 for item in self.items if item.severity == severity)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "plugin": self.plugin,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "counters": self.counters,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class LoadedDocument:
    """A resource-definition reference of a plugin and its parsed element tree."""
    reference: ResourceReference
    root: ET.Element | None = None
    error: str | None = None

    @property
    def file(self) -> str:
        return self.reference.normalized

    @property
    def resource_type(self) -> str | None:
        return resource_type(self.root) if self.root is not None else None


@dataclass
class PluginRunContext:
    """Everything a check needs to validate one plugin of a run."""
    plugin: "PluginContext"
    project_root: Path
    resolver: "ResourceResolver"
    config: DsflintConfig
    leftovers: "LeftoverAnalysisResult | None" = None
    detector: "LeftoverResourceDetector | None" = None
    verifier: "CapabilityVerifier | None" = None
    is_last_plugin: bool = True
    is_single_plugin_project: bool = True
    _documents: list[LoadedDocument] | None = field(default=None, init=False, repr=False)

    @property
    def resource_root(self) -> Path:
        return self.plugin.resource_root or self.project_root

    def documents(self) -> list[LoadedDocument]:
        """Parse the plugin's resource definitions once per run.

        Unresolvable references are left out; they are reported by the
        reference check. A document that fails to load or parse is kept with
        its error so exactly one check can report it.
        """
        if self._documents is not None:
            return self._documents

        documents = []
        for reference in self.plugin.references_of(ResourceCategory.RESOURCE_DEFINITION):
            try:
                stream = self.resolver.resolve_to_stream(reference.raw, self.project_root,
                                                         self.plugin.resource_root)
                if stream is None:
                    continue
                with stream:
                    data = stream.read()
                documents.append(LoadedDocument(reference, parse_bytes(data, reference.normalized)))
            except UnparsableDocumentError as e:
                logger.warning(f"Could not parse {reference.normalized}: {e}")
                documents.append(LoadedDocument(reference, error=str(e)))
            except Exception as e:
                logger.error(f"Could not load {reference.normalized}: {e}")
                documents.append(LoadedDocument(reference, error=str(e)))

        self._documents = documents
        return documents

    def parsed_documents(self, resource_type_name: str | None = None) -> list[LoadedDocument]:
        return [
            doc for doc in self.documents()
            if doc.root is not None and (resource_type_name is None or doc.resource_type == resource_type_name)
        ]


class ValidationCheck(ABC):
    """Base class for validation checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Check name for identification."""
        pass

    @abstractmethod
    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        """Execute the check.

        Args:
            context: Plugin under validation and the run's shared collaborators
            result: Validation result to update with items/counters
        """
        pass


class ValidationFramework:
    """Runs the configured checks for one plugin at a time."""

    def __init__(self, config: DsflintConfig):
        self.config = config
        self.checks: list[ValidationCheck] = []

    def add_check(self, check: ValidationCheck) -> None:
        self.checks.append(check)

    def validate(self, context: PluginRunContext) -> ValidationResult:
        """Run every check against one plugin.

        A check that raises does not abort the plugin: the failure becomes a
        single ERROR item and the remaining checks still run.

        Returns:
            ValidationResult with status, items, and counters
        """
        plugin_name = context.plugin.name
        result = ValidationResult(plugin=plugin_name)

        logger.info(f"Validating plugin '{plugin_name}' with {len(self.checks)} checks")

        for check in self.checks:
            logger.debug(f"Executing check: {check.name}")
            try:
                check.validate(context, result)
            except Exception as e:
                logger.error(f"Check {check.name} failed with error: {e}")
                result.add_item(ValidationItem(
                    Severity.ERROR,
                    ItemCategory.CHECK,
                    f"Check '{check.name}' execution failed: {e}",
                    plugin=plugin_name,
                ))

        logger.info(
            f"Plugin '{plugin_name}' finished with status {result.status.value} "
            f"({result.count(Severity.ERROR)} errors, {result.count(Severity.WARN)} warnings)"
        )
        return result

    def create_default_checks(self) -> None:
        """Install the standard checks in their reporting order."""
        from .rules import (
            AuthorizationCheck,
            CapabilityCheck,
            DefinitionReferenceCheck,
            DocumentParseCheck,
            InstanceCardinalityCheck,
            LeftoverAttributionCheck,
            ReferenceResolutionCheck,
        )

        self.add_check(ReferenceResolutionCheck())
        self.add_check(DocumentParseCheck())
        self.add_check(CapabilityCheck())
        self.add_check(DefinitionReferenceCheck())
        self.add_check(InstanceCardinalityCheck())
        self.add_check(AuthorizationCheck())
        self.add_check(LeftoverAttributionCheck())
