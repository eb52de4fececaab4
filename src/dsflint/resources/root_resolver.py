"""Detection of a plugin's resource root directory.

The resource root is the directory below which a plugin's ``bpe/`` and
``fhir/`` subtrees live. It depends on how the project was built: Maven copies
resources into ``target/classes``, Gradle keeps them in ``build/resources/main``
next to ``build/classes/<lang>/main``, and an unbuilt checkout only has
``src/main/resources``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..utils.cache import ConcurrentCache

logger = logging.getLogger(__name__)

MAVEN_MARKERS = ("pom.xml",)
GRADLE_MARKERS = ("build.gradle", "build.gradle.kts")


class ResolutionStrategy(str, Enum):
    """How a resource root was determined, in priority order."""
    ORIGIN_HINT_MAVEN = "origin-hint-maven"
    ORIGIN_HINT_GRADLE = "origin-hint-gradle"
    ORIGIN_HINT_DIRECT = "origin-hint-direct"
    MAVEN_TARGET_CLASSES = "maven-target-classes"
    MAVEN_SOURCE_RESOURCES = "maven-source-resources"
    GRADLE_BUILD_RESOURCES = "gradle-build-resources"
    GRADLE_SOURCE_RESOURCES = "gradle-source-resources"
    PROJECT_ROOT_FALLBACK = "project-root-fallback"


@dataclass(frozen=True)
class RootResolution:
    """The chosen resource root and how it was found."""
    resource_root: Path
    strategy: ResolutionStrategy
    description: str


class ResourceRootResolver:
    """Finds the resource root of a plugin project.

    Results are cached per canonical project path and origin hint for the
    lifetime of the resolver, since the layout cannot change during a run.
    """

    def __init__(self, workflow_dir: str = "bpe", resource_dir: str = "fhir"):
        self.workflow_dir = workflow_dir
        self.resource_dir = resource_dir
        self._cache = ConcurrentCache[tuple[Path, Path | None], RootResolution]("resource-roots")

    def resolve(self, project_root: Path, origin_hint: Path | None = None) -> RootResolution:
        """Determine the resource root for a project.

        Args:
            project_root: Project directory
            origin_hint: Directory the plugin implementation was loaded from,
                relative paths are taken relative to ``project_root``

        Returns:
            RootResolution; falls back to the project root itself
        """
        root = _canonical(Path(project_root))
        hint = None
        if origin_hint is not None:
            hint = Path(origin_hint)
            if not hint.is_absolute():
                hint = root / hint
            hint = _canonical(hint)

        return self._cache.get_or_create((root, hint), lambda key: self._resolve(*key))

    def _resolve(self, root: Path, hint: Path | None) -> RootResolution:
        if hint is not None:
            resolution = self._from_hint(hint)
            if resolution is not None:
                logger.debug(f"Resource root from origin hint: {resolution.resource_root}")
                return resolution

        resolution = self._from_layout(root)
        if resolution is not None:
            logger.debug(f"Resource root from project layout ({resolution.strategy.value}): {resolution.resource_root}")
            return resolution

        return RootResolution(root, ResolutionStrategy.PROJECT_ROOT_FALLBACK,
                              f"No known build layout in {root}, using project root")

    def _from_hint(self, hint: Path) -> RootResolution | None:
        if not _is_dir(hint):
            return None

        parts = hint.parts
        if parts[-2:] == ("target", "classes"):
            return RootResolution(hint, ResolutionStrategy.ORIGIN_HINT_MAVEN, f"Maven output directory {hint}")

        if len(parts) >= 4 and parts[-4] == "build" and parts[-3] == "classes":
            # build/classes/<lang>/<sourceSet> pairs with build/resources/<sourceSet>
            paired = hint.parents[2] / "resources" / hint.name
            if not self._has_resources(hint) and _is_dir(paired):
                return RootResolution(paired, ResolutionStrategy.ORIGIN_HINT_GRADLE,
                                      f"Gradle resources paired with {hint}")
            return RootResolution(hint, ResolutionStrategy.ORIGIN_HINT_GRADLE, f"Gradle output directory {hint}")

        return RootResolution(hint, ResolutionStrategy.ORIGIN_HINT_DIRECT, f"Origin directory {hint}")

    def _from_layout(self, root: Path) -> RootResolution | None:
        if any(_is_file(root / marker) for marker in MAVEN_MARKERS):
            candidates = [
                (root / "target" / "classes", ResolutionStrategy.MAVEN_TARGET_CLASSES),
                (root / "src" / "main" / "resources", ResolutionStrategy.MAVEN_SOURCE_RESOURCES),
            ]
        elif any(_is_file(root / marker) for marker in GRADLE_MARKERS):
            candidates = [
                (root / "build" / "resources" / "main", ResolutionStrategy.GRADLE_BUILD_RESOURCES),
                (root / "src" / "main" / "resources", ResolutionStrategy.GRADLE_SOURCE_RESOURCES),
            ]
        else:
            return None

        existing = [(candidate, strategy) for candidate, strategy in candidates if _is_dir(candidate)]
        if not existing:
            return None

        # An empty compiled-output directory loses to a populated source tree
        populated = [entry for entry in existing if self._has_resources(entry[0])]
        candidate, strategy = (populated or existing)[0]
        return RootResolution(candidate, strategy, f"{strategy.value} layout at {candidate}")

    def _has_resources(self, directory: Path) -> bool:
        return _is_dir(directory / self.workflow_dir) or _is_dir(directory / self.resource_dir)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_size(self) -> int:
        return self._cache.size()


def _canonical(path: Path) -> Path:
    try:
        return path.resolve()
    except OSError:
        return path.absolute()


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False
