"""Discovery of process plugins from a plugin descriptor file.

The descriptor lists every process plugin of a project with the references its
ProcessPluginDefinition declares::

    {"plugins": [{"name": "ping",
                  "originHint": "target/classes",
                  "processModels": ["bpe/ping.bpmn"],
                  "fhirResources": {"dsfdev_ping": ["fhir/Task/task-ping.xml"]},
                  "implementations": [{"className": "dev.dsf.bpe.Ping",
                                       "capability": "ProcessPluginDefinition"}]}]}
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import DsflintConfig
from .models.plugin import PluginContext
from .models.resource import CapabilityRequirement, ResourceCategory, ResourceReference

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE_NAME = "dsf-plugins.json"


class PluginDescriptor(BaseModel):
    """One plugin entry of the descriptor file."""
    name: str
    origin_hint: str | None = Field(alias="originHint", default=None)
    process_models: list[str] = Field(alias="processModels", default_factory=list)
    fhir_resources: dict[str, list[str]] = Field(alias="fhirResources", default_factory=dict)
    implementations: list[CapabilityRequirement] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class PluginDescriptorFile(BaseModel):
    """Top-level structure of the descriptor file."""
    plugins: list[PluginDescriptor]

    model_config = ConfigDict(populate_by_name=True)


def find_descriptor(project_root: Path) -> Path | None:
    candidate = Path(project_root) / DESCRIPTOR_FILE_NAME
    return candidate if candidate.is_file() else None


def load_plugin_contexts(descriptor_path: Path, config: DsflintConfig | None = None) -> list[PluginContext]:
    """Load plugin contexts in descriptor order.

    Duplicate plugin names get a numeric suffix (``ping#2``) so every plugin
    can be addressed unambiguously. Resource paths do not carry the suffix, so
    leftovers named after a duplicated plugin go to its first occurrence.

    Raises:
        FileNotFoundError: If the descriptor does not exist
        ValueError: If the descriptor is not valid JSON or has the wrong structure
    """
    descriptor_path = Path(descriptor_path)
    if not descriptor_path.is_file():
        raise FileNotFoundError(f"Plugin descriptor not found: {descriptor_path}")

    try:
        with open(descriptor_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in plugin descriptor {descriptor_path}: {e}")

    try:
        descriptor = PluginDescriptorFile(**data) if isinstance(data, dict) else PluginDescriptorFile(plugins=data)
    except ValidationError as e:
        raise ValueError(f"Invalid plugin descriptor {descriptor_path}: {e}")

    return build_plugin_contexts(descriptor.plugins, config)


def build_plugin_contexts(descriptors: list[PluginDescriptor],
                          config: DsflintConfig | None = None) -> list[PluginContext]:
    config = config or DsflintConfig()
    markers = config.resolution.marker_prefixes
    sources = config.resolution.source_prefixes

    contexts: list[PluginContext] = []
    declared = {descriptor.name for descriptor in descriptors}
    taken: set[str] = set()
    for order, descriptor in enumerate(descriptors):
        name = _unique_name(descriptor.name, declared, taken)
        taken.add(name)

        references = [
            ResourceReference.from_raw(raw, ResourceCategory.WORKFLOW, markers, sources)
            for raw in descriptor.process_models
        ]
        for raws in descriptor.fhir_resources.values():
            references.extend(
                ResourceReference.from_raw(raw, ResourceCategory.RESOURCE_DEFINITION, markers, sources)
                for raw in raws
            )

        contexts.append(PluginContext(
            name=name,
            order=order,
            origin_hint=Path(descriptor.origin_hint) if descriptor.origin_hint else None,
            references=references,
            capabilities=list(descriptor.implementations),
        ))
        logger.debug(f"Discovered plugin '{name}' with {len(references)} references")

    logger.info(f"Discovered {len(contexts)} plugin(s)")
    return contexts


def _unique_name(name: str, declared: set[str], taken: set[str]) -> str:
    """Return ``name``, or ``name#N`` with the smallest N >= 2 no other plugin uses."""
    if name not in taken:
        return name
    n = 2
    while f"{name}#{n}" in declared or f"{name}#{n}" in taken:
        n += 1
    return f"{name}#{n}"
