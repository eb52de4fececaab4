"""Resolution of plugin resource references to concrete files.

A reference is looked up, in order, below the plugin's resource root, below
each extra subpath (``bpe``, ``fhir``), as a raw absolute path and finally in
the project's dependency packages. Package resources are materialized into a
temporary arena owned by the resolver, keeping the reference's sub-path so
same-named files from different directories never collide.

One resolver is created per validation run. All caches live on the instance
and are released by ``clear_cache()`` or by leaving the ``with`` block.
"""

import hashlib
import logging
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO, Callable

from ..config import DsflintConfig
from ..models.resource import ResolutionResult, ResolutionSource, ResolvedLocation
from ..utils.cache import ConcurrentCache
from ..utils.paths import normalize_reference, relative_posix, remove_version_suffix
from .documents import UnparsableDocumentError, parse_bytes, parse_document, resource_type, value_of
from .packages import ArchivePackageProvider, PackageLookupProvider
from .root_resolver import ResourceRootResolver

logger = logging.getLogger(__name__)

# (resource type, canonical url) -> (is_package, normalized path)
CanonicalIndex = dict[tuple[str, str], tuple[bool, str]]


class ResourceResolver:
    """Resolves references for one validation run."""

    def __init__(
        self,
        config: DsflintConfig | None = None,
        root_resolver: ResourceRootResolver | None = None,
        package_provider_factory: Callable[[Path], PackageLookupProvider | None] | None = None,
    ):
        self.config = config or DsflintConfig()
        layout = self.config.layout
        self.root_resolver = root_resolver or ResourceRootResolver(layout.workflow_dir, layout.resource_dir)
        self._provider_factory = package_provider_factory or self._default_provider
        self._arena: Path | None = None

        self._providers = ConcurrentCache[Path, PackageLookupProvider]("package-providers",
                                                                       cleanup=lambda p: p.close())
        self._locations = ConcurrentCache[tuple, ResolvedLocation]("locations")
        self._materialized = ConcurrentCache[tuple[Path, str], ResolvedLocation]("materialized",
                                                                                  cleanup=_delete_materialized)
        self._canonical_index = ConcurrentCache[tuple[Path, Path], CanonicalIndex]("canonical-index")

    def _default_provider(self, project_root: Path) -> PackageLookupProvider:
        resolution = self.config.resolution
        return ArchivePackageProvider(project_root, resolution.dependency_dirs, resolution.archive_suffixes)

    def __enter__(self) -> "ResourceResolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear_cache()

    def normalize(self, ref: str | None) -> str:
        resolution = self.config.resolution
        return normalize_reference(ref, resolution.marker_prefixes, resolution.source_prefixes)

    def resource_root(self, project_root: Path, origin_hint: Path | None = None) -> Path:
        return self.root_resolver.resolve(project_root, origin_hint).resource_root

    def package_provider(self, project_root: Path) -> PackageLookupProvider | None:
        return self._providers.get_or_create(_canonical(project_root), self._provider_factory)

    def resolve_to_location(self, ref: str | None, project_root: Path,
                            extra_subpaths: Sequence[str] | None = None,
                            resource_root: Path | None = None) -> ResolvedLocation | None:
        """Resolve a reference to a file, materializing package resources.

        Args:
            ref: Reference in any accepted shape
            project_root: Project directory of the plugin
            extra_subpaths: Subdirectories tried below each search root
                (default: the configured ``extraSubpaths``)
            resource_root: The plugin's resource root if already known,
                otherwise it is detected from the project layout

        Returns:
            The cached ResolvedLocation, or None if the reference cannot be found
        """
        normalized = self.normalize(ref)
        if not normalized:
            return None

        root = _canonical(project_root)
        base = self._effective_root(root, resource_root)
        subpaths = tuple(self.config.resolution.extra_subpaths if extra_subpaths is None else extra_subpaths)
        key = ("project", root, base, normalized, subpaths)
        return self._locations.get_or_create(key, lambda _: self._locate(ref, normalized, root, base, subpaths))

    def _locate(self, ref: str, normalized: str, root: Path, base: Path,
                subpaths: tuple[str, ...]) -> ResolvedLocation | None:
        found = self._find_on_disk(_search_bases(root, base), normalized, subpaths)
        if found is not None:
            logger.debug(f"Resolved '{ref}' on disk: {found}")
            return ResolvedLocation(found, normalized, ResolutionSource.DISK_IN_ROOT)

        raw = Path(ref.strip())
        if raw.is_absolute() and raw.is_file():
            source = (ResolutionSource.DISK_IN_ROOT if _canonical(raw).is_relative_to(root)
                      else ResolutionSource.DISK_OUTSIDE_ROOT)
            logger.debug(f"Resolved '{ref}' as absolute path")
            return ResolvedLocation(_canonical(raw), normalized, source)

        return self._materialize(root, normalized)

    def _effective_root(self, root: Path, resource_root: Path | None) -> Path:
        if resource_root is None:
            return _canonical(self.resource_root(root))
        return _canonical(resource_root)

    @staticmethod
    def _find_on_disk(bases: Sequence[Path], normalized: str, subpaths: Sequence[str]) -> Path | None:
        for base in bases:
            for candidate in [base / normalized, *(base / sub / normalized for sub in subpaths)]:
                if candidate.is_file():
                    return candidate
        return None

    def _materialize(self, root: Path, normalized: str) -> ResolvedLocation | None:
        def factory(key: tuple[Path, str]) -> ResolvedLocation | None:
            provider = self.package_provider(root)
            if provider is None:
                return None
            entry = provider.find(normalized)
            if entry is None:
                return None

            target = self._arena_dir() / _root_digest(root) / normalized
            if not target.resolve().is_relative_to(self._arena_dir().resolve()):
                logger.warning(f"Refusing to materialize '{normalized}' outside the temporary directory")
                return None
            try:
                stream = provider.open(normalized)
                if stream is None:
                    return None
                target.parent.mkdir(parents=True, exist_ok=True)
                with stream, open(target, "wb") as out:
                    shutil.copyfileobj(stream, out)
            except OSError as e:
                logger.warning(f"Failed to materialize '{normalized}' from {entry.package_name}: {e}")
                return None

            logger.debug(f"Materialized '{normalized}' from {entry.package_name} to {target}")
            return ResolvedLocation(target, normalized, ResolutionSource.PACKAGE_DEPENDENCY,
                                    package_name=entry.package_name, materialized=True)

        return self._materialized.get_or_create((root, normalized), factory)

    def _arena_dir(self) -> Path:
        if self._arena is None:
            self._arena = Path(tempfile.mkdtemp(prefix="dsflint-"))
        return self._arena

    def resolve_strict(self, ref: str | None, expected_root: Path,
                       project_root: Path | None = None) -> ResolutionResult:
        """Resolve a reference and classify where it was found.

        A file below ``expected_root`` is in root. A file found elsewhere in the
        project on disk is outside the expected root; a file found only in a
        dependency package is a package dependency.
        """
        normalized = self.normalize(ref)
        expected = _canonical(expected_root)
        if not normalized:
            return ResolutionResult.not_found(expected)

        subpaths = tuple(self.config.resolution.extra_subpaths)

        def in_root(_key) -> ResolvedLocation | None:
            found = self._find_on_disk([expected], normalized, subpaths)
            if found is None:
                return None
            return ResolvedLocation(found, normalized, ResolutionSource.DISK_IN_ROOT)

        location = self._locations.get_or_create(("expected", expected, normalized, subpaths), in_root)
        if location is not None:
            return ResolutionResult.in_root(location, expected)

        location = self.resolve_to_location(ref, project_root or expected)
        if location is None:
            return ResolutionResult.not_found(expected)
        if location.from_package:
            return ResolutionResult.from_package(location, expected)
        return ResolutionResult.outside_root(location, expected)

    def resolve_to_stream(self, ref: str | None, project_root: Path,
                          resource_root: Path | None = None) -> BinaryIO | None:
        """Open a reference for reading without materializing package content."""
        normalized = self.normalize(ref)
        if not normalized:
            return None
        root = _canonical(project_root)
        found = self._find_unmaterialized(ref, normalized, root, resource_root)
        if found is not None:
            return open(found, "rb")
        provider = self.package_provider(root)
        return provider.open(normalized) if provider is not None else None

    def resolve_to_url(self, ref: str | None, project_root: Path,
                       resource_root: Path | None = None) -> str | None:
        """Return a ``file:`` or ``jar:`` URL for a reference without materializing it."""
        normalized = self.normalize(ref)
        if not normalized:
            return None
        root = _canonical(project_root)
        found = self._find_unmaterialized(ref, normalized, root, resource_root)
        if found is not None:
            return found.resolve().as_uri()
        provider = self.package_provider(root)
        return provider.url_for(normalized) if provider is not None else None

    def _find_unmaterialized(self, ref: str, normalized: str, root: Path,
                             resource_root: Path | None) -> Path | None:
        bases = _search_bases(root, self._effective_root(root, resource_root))
        found = self._find_on_disk(bases, normalized, self.config.resolution.extra_subpaths)
        if found is not None:
            return found
        raw = Path(ref.strip())
        return raw if raw.is_absolute() and raw.is_file() else None

    def find_by_canonical(self, project_root: Path, resource_type_name: str,
                          canonical: str | None, resource_root: Path | None = None) -> ResolvedLocation | None:
        """Locate a FHIR resource by its canonical URL.

        The ``|version`` suffix is ignored. Resources on disk take precedence
        over resources bundled in dependency packages. Disk resources are
        indexed below ``resource_root``, or below the detected resource root
        of the project when none is given.
        """
        url = remove_version_suffix(canonical)
        if not url:
            return None

        root = _canonical(project_root)
        base = self._effective_root(root, resource_root)
        index = self._canonical_index.get_or_create((root, base), self._build_canonical_index)
        match = index.get((resource_type_name, url))
        if match is None:
            logger.debug(f"No {resource_type_name} with url '{url}' in {base}")
            return None

        is_package, path = match
        if is_package:
            return self._materialize(root, path)
        return self.resolve_to_location(path, root, resource_root=base)

    def _build_canonical_index(self, key: tuple[Path, Path]) -> CanonicalIndex:
        root, resource_root = key
        layout = self.config.layout
        suffixes = tuple(s.lower() for s in layout.resource_suffixes)
        index: CanonicalIndex = {}

        for file in _iter_files(resource_root / layout.resource_dir, suffixes):
            try:
                element = parse_document(file)
            except UnparsableDocumentError as e:
                logger.debug(f"Skipping unparsable resource while indexing: {e}")
                continue
            self._index_element(index, element, False, relative_posix(file, resource_root))

        provider = self.package_provider(root)
        if provider is not None:
            for path in provider.list_paths(f"{layout.resource_dir}/"):
                if not path.lower().endswith(suffixes):
                    continue
                stream = provider.open(path)
                if stream is None:
                    continue
                with stream:
                    data = stream.read()
                try:
                    element = parse_bytes(data, path)
                except UnparsableDocumentError as e:
                    logger.debug(f"Skipping unparsable package resource while indexing: {e}")
                    continue
                self._index_element(index, element, True, path)

        logger.info(f"Canonical index for {resource_root}: {len(index)} resources")
        return index

    @staticmethod
    def _index_element(index: CanonicalIndex, element, is_package: bool, path: str) -> None:
        url = remove_version_suffix(value_of(element, "url"))
        if url:
            index.setdefault((resource_type(element), url), (is_package, path))

    def clear_cache(self) -> None:
        """Delete materialized files and clear every cache of this resolver.

        Cleanup is best effort: failures are logged and never raised.
        """
        removed = self._materialized.clear()
        if self._arena is not None:
            try:
                shutil.rmtree(self._arena)
            except OSError as e:
                logger.warning(f"Failed to remove temporary directory {self._arena}: {e}")
            self._arena = None
        self._locations.clear()
        self._canonical_index.clear()
        self._providers.clear()
        self.root_resolver.clear_cache()
        logger.debug(f"Resolver caches cleared ({removed} materialized files released)")

    def cache_stats(self) -> dict[str, int]:
        return {
            "locations": self._locations.size(),
            "materialized": self._materialized.size(),
            "canonicalIndexes": self._canonical_index.size(),
            "packageProviders": self._providers.size(),
            "roots": self.root_resolver.cache_size(),
        }


def _canonical(path: Path) -> Path:
    try:
        return Path(path).resolve()
    except OSError:
        return Path(path).absolute()


def _search_bases(root: Path, resource_root: Path) -> list[Path]:
    return list(dict.fromkeys([resource_root, root]))


def _root_digest(root: Path) -> str:
    return hashlib.sha1(str(root).encode("utf-8")).hexdigest()[:12]


def _delete_materialized(location: ResolvedLocation) -> None:
    location.path.unlink(missing_ok=True)


def _iter_files(directory: Path, suffixes: tuple[str, ...]) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in suffixes)
