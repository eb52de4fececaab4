"""Models for resource references and their resolved locations."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from dsflint.utils.paths import normalize_path, normalize_reference


class ResourceCategory(str, Enum):
    """Kind of artifact a reference points at."""
    WORKFLOW = "workflow"
    RESOURCE_DEFINITION = "resource-definition"


class ResourceReference(BaseModel):
    """A reference declared by a plugin, as written and in canonical form."""
    raw: str
    normalized: str
    category: ResourceCategory

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_raw(
        cls,
        raw: str,
        category: ResourceCategory,
        marker_prefixes: tuple[str, ...] | list[str] | None = None,
        source_prefixes: tuple[str, ...] | list[str] | None = None,
    ) -> "ResourceReference":
        """Create a reference, normalizing ``raw`` once at discovery time."""
        kwargs = {}
        if marker_prefixes is not None:
            kwargs["marker_prefixes"] = marker_prefixes
        if source_prefixes is not None:
            kwargs["source_prefixes"] = source_prefixes
        return cls(raw=raw, normalized=normalize_reference(raw, **kwargs), category=category)

    @property
    def is_absolute(self) -> bool:
        """Whether the reference was written as an absolute filesystem path."""
        raw = self.raw.strip()
        return bool(raw) and Path(raw).is_absolute()


class ResolutionSource(str, Enum):
    """Where a reference was found."""
    DISK_IN_ROOT = "disk-in-root"
    DISK_OUTSIDE_ROOT = "disk-outside-root"
    PACKAGE_DEPENDENCY = "package-dependency"
    NOT_FOUND = "not-found"


@dataclass(frozen=True, eq=False)
class ResolvedLocation:
    """A reference's concrete file plus its provenance.

    Package-sourced locations point at a materialized temporary copy that keeps
    the reference's sub-path. Instances are cached by the resolver, so repeated
    lookups of the same key return the identical object.
    """
    path: Path
    normalized_path: str
    source: ResolutionSource
    package_name: str | None = None
    materialized: bool = False

    @property
    def from_package(self) -> bool:
        return self.source == ResolutionSource.PACKAGE_DEPENDENCY

    @property
    def display_path(self) -> str:
        if self.package_name:
            return f"{self.package_name}!/{self.normalized_path}"
        return normalize_path(str(self.path))


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of a strict resolution against a plugin's expected root."""
    source: ResolutionSource
    location: ResolvedLocation | None = None
    expected_root: Path | None = None
    actual_location: str | None = None

    @property
    def found(self) -> bool:
        return self.location is not None

    @classmethod
    def not_found(cls, expected_root: Path | None = None) -> "ResolutionResult":
        return cls(ResolutionSource.NOT_FOUND, expected_root=expected_root)

    @classmethod
    def in_root(cls, location: ResolvedLocation, expected_root: Path) -> "ResolutionResult":
        return cls(ResolutionSource.DISK_IN_ROOT, location, expected_root, str(location.path))

    @classmethod
    def outside_root(cls, location: ResolvedLocation, expected_root: Path) -> "ResolutionResult":
        return cls(ResolutionSource.DISK_OUTSIDE_ROOT, location, expected_root, str(location.path))

    @classmethod
    def from_package(cls, location: ResolvedLocation, expected_root: Path | None = None) -> "ResolutionResult":
        return cls(ResolutionSource.PACKAGE_DEPENDENCY, location, expected_root, location.display_path)


class CapabilityRequirement(BaseModel):
    """An implementation class a plugin declares, with the capability it must provide."""
    class_name: str = Field(alias="className")
    capability: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)
