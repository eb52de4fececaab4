"""Detection of BPMN and FHIR files shipped without being referenced.

A leftover is a file present in the workflow or resource subtree that no
plugin definition references. In projects containing several plugins the
findings are shared out between plugins by a name-matching heuristic.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config import DsflintConfig
from ..models.items import ItemCategory, Severity, ValidationItem
from ..models.plugin import PluginContext
from ..utils.paths import relative_posix

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "All BPMN and FHIR resources found in the project are correctly referenced in ProcessPluginDefinition."
WORKFLOW_MESSAGE = "BPMN file exists but is not referenced in ProcessPluginDefinition"
RESOURCE_MESSAGE = "FHIR file exists but is not referenced in ProcessPluginDefinition"

LEFTOVER_CATEGORIES = (ItemCategory.LEFTOVER_WORKFLOW, ItemCategory.LEFTOVER_RESOURCE)


@dataclass(frozen=True)
class LeftoverAnalysisResult:
    """Unreferenced files of one analysis plus the items derived from them."""
    leftover_workflow_paths: frozenset[str]
    leftover_resource_paths: frozenset[str]
    items: tuple[ValidationItem, ...]
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def has_leftovers(self) -> bool:
        return bool(self.leftover_workflow_paths or self.leftover_resource_paths)

    @property
    def total_leftover_count(self) -> int:
        return len(self.leftover_workflow_paths) + len(self.leftover_resource_paths)


class LeftoverResourceDetector:
    """Computes ``actual - referenced`` for the workflow and resource subtrees.

    Args:
        config: dsflint configuration (layout directories and suffixes)
        plugin_names: Plugin names in discovery order, used to attribute
            leftovers deterministically when a path matches several plugins
    """

    def __init__(self, config: DsflintConfig | None = None, plugin_names: Sequence[str] = ()):
        self.config = config or DsflintConfig()
        self.plugin_names = list(plugin_names)

    def analyze(self, project_root: Path, resource_root: Path,
                referenced_workflow_paths: Iterable[str],
                referenced_resource_paths: Iterable[str]) -> LeftoverAnalysisResult:
        """Enumerate the subtrees below ``resource_root`` and diff them against the references.

        Paths are compared relative to ``resource_root`` in forward slash form,
        e.g. ``bpe/ping.bpmn`` or ``fhir/Task/task-ping.xml``. A reference given
        relative to its subtree (``ping.bpmn``) also counts for the file below it.
        """
        layout = self.config.layout
        resource_root = Path(resource_root)

        actual_workflows = self._enumerate(resource_root, layout.workflow_dir, layout.workflow_suffixes)
        actual_resources = self._enumerate(resource_root, layout.resource_dir, layout.resource_suffixes)
        referenced_workflows = _with_subtree_prefix(referenced_workflow_paths, layout.workflow_dir)
        referenced_resources = _with_subtree_prefix(referenced_resource_paths, layout.resource_dir)

        leftover_workflows = frozenset(actual_workflows - referenced_workflows)
        leftover_resources = frozenset(actual_resources - referenced_resources)

        logger.info(
            f"BPMN analysis: {len(actual_workflows)} files found, "
            f"{len(actual_workflows & referenced_workflows)} referenced, {len(leftover_workflows)} unused"
        )
        logger.info(
            f"FHIR analysis: {len(actual_resources)} files found, "
            f"{len(actual_resources & referenced_resources)} referenced, {len(leftover_resources)} unused"
        )

        items: list[ValidationItem] = []
        if not leftover_workflows and not leftover_resources:
            items.append(ValidationItem(
                Severity.SUCCESS,
                ItemCategory.LEFTOVER,
                SUCCESS_MESSAGE,
                file=relative_posix(resource_root, project_root) if _is_inside(resource_root, project_root) else None,
            ))
        else:
            for path in sorted(leftover_workflows):
                items.append(ValidationItem(Severity.WARN, ItemCategory.LEFTOVER_WORKFLOW, WORKFLOW_MESSAGE,
                                            file=path, reference=path))
            for path in sorted(leftover_resources):
                items.append(ValidationItem(Severity.WARN, ItemCategory.LEFTOVER_RESOURCE, RESOURCE_MESSAGE,
                                            file=path, reference=path))

        return LeftoverAnalysisResult(
            leftover_workflow_paths=leftover_workflows,
            leftover_resource_paths=leftover_resources,
            items=tuple(items),
            counters={
                "workflowFiles": len(actual_workflows),
                "resourceFiles": len(actual_resources),
                "leftoverWorkflows": len(leftover_workflows),
                "leftoverResources": len(leftover_resources),
            },
        )

    @staticmethod
    def _enumerate(resource_root: Path, subtree: str, suffixes: Sequence[str]) -> set[str]:
        directory = resource_root / subtree
        if not directory.is_dir():
            return set()
        suffixes = tuple(s.lower() for s in suffixes)
        return {
            relative_posix(path, resource_root)
            for path in directory.rglob("*")
            if path.is_file() and path.suffix.lower() in suffixes
        }

    def get_items_for_plugin(self, result: LeftoverAnalysisResult, plugin_name: str | None,
                             plugin_context: PluginContext | None, is_last_plugin: bool,
                             is_single_plugin_project: bool) -> list[ValidationItem]:
        """Select the analysis items reported for one plugin.

        * Single-plugin project: every item.
        * Several plugins, no leftovers: the success item, for the last plugin only.
        * Several plugins with leftovers: each leftover goes to the first plugin
          (discovery order) whose name occurs, case-insensitively, in the file's
          name or path. Unmatched leftovers go to the last plugin.
        """
        if is_single_plugin_project:
            return list(result.items)

        if not result.has_leftovers:
            return list(result.items) if is_last_plugin else []

        name = plugin_name or (plugin_context.name if plugin_context is not None else "")
        candidates = self.plugin_names or [name]

        selected = []
        for item in result.items:
            if item.category not in LEFTOVER_CATEGORIES:
                continue
            owner = self.owner_of(item, candidates)
            if owner is None:
                if is_last_plugin:
                    selected.append(item)
            elif owner == name:
                selected.append(item)
        return selected

    @staticmethod
    def owner_of(item: ValidationItem, plugin_names: Sequence[str]) -> str | None:
        """First plugin whose name appears in the item's file name or path."""
        path = (item.reference or item.file or "").lower()
        for plugin_name in plugin_names:
            needle = plugin_name.lower()
            if needle and needle in path:
                return plugin_name
        return None


def _with_subtree_prefix(paths: Iterable[str], subtree: str) -> set[str]:
    prefix = f"{subtree}/"
    result = set()
    for path in paths:
        if not path:
            continue
        result.add(path)
        if not path.startswith(prefix):
            result.add(prefix + path)
    return result


def _is_inside(path: Path, base: Path) -> bool:
    try:
        return Path(path).resolve().is_relative_to(Path(base).resolve())
    except OSError:
        return False
