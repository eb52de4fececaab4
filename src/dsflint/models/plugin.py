"""Plugin context model shared by discovery, resolution and validation."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from dsflint.models.resource import CapabilityRequirement, ResourceCategory, ResourceReference


class PluginContext(BaseModel):
    """One discovered process plugin and the references it declares."""
    name: str
    order: int = 0  # Discovery index; fixes attribution order
    origin_hint: Path | None = Field(alias="originHint", default=None)
    resource_root: Path | None = Field(alias="resourceRoot", default=None)
    references: list[ResourceReference] = Field(default_factory=list)
    capabilities: list[CapabilityRequirement] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def references_of(self, category: ResourceCategory) -> list[ResourceReference]:
        return [ref for ref in self.references if ref.category == category]

    def workflow_paths(self) -> list[str]:
        """Normalized workflow references, deduplicated in declaration order."""
        return _unique(ref.normalized for ref in self.references_of(ResourceCategory.WORKFLOW))

    def resource_paths(self) -> list[str]:
        """Normalized resource-definition references, deduplicated in declaration order."""
        return _unique(ref.normalized for ref in self.references_of(ResourceCategory.RESOURCE_DEFINITION))


def _unique(values) -> list[str]:
    return [value for value in dict.fromkeys(values) if value]
