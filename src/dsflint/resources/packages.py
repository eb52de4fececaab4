"""Lookup of resources bundled in dependency archives.

Process plugins frequently reuse profiles, code systems and value sets shipped
inside dependency jars. The package provider indexes those archives once and
answers lookups by normalized resource path.
"""

import io
import logging
import zipfile
import zlib
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from ..utils.cache import ConcurrentCache
from ..utils.paths import normalize_directory, normalize_path

logger = logging.getLogger(__name__)

IGNORED_ENTRY_SUFFIXES = (".class",)

# Corrupt or truncated entries surface as any of these while decompressing
ENTRY_READ_ERRORS = (OSError, EOFError, KeyError, NotImplementedError, zipfile.BadZipFile, zlib.error)


@dataclass(frozen=True)
class PackageEntry:
    """A file inside a dependency archive."""
    archive: Path
    entry_name: str

    @property
    def package_name(self) -> str:
        return self.archive.name


class PackageLookupProvider(Protocol):
    """Resolves normalized resource paths against bundled dependency packages."""

    def find(self, path: str) -> PackageEntry | None: ...

    def open(self, path: str) -> BinaryIO | None: ...

    def url_for(self, path: str) -> str | None: ...

    def list_paths(self, prefix: str) -> list[str]: ...

    def close(self) -> None: ...


class ArchivePackageProvider:
    """Package provider backed by jar/zip files of a project.

    Archives directly in the project root are indexed non-recursively, the
    dependency directories recursively. When two archives contain the same
    path, the first one indexed wins.
    """

    def __init__(self, project_root: Path, dependency_dirs: Sequence[str] = ("target/dependency", "target/dependencies"),
                 archive_suffixes: Sequence[str] = (".jar", ".zip")):
        self.project_root = Path(project_root)
        self.dependency_dirs = list(dependency_dirs)
        self.archive_suffixes = tuple(suffix.lower() for suffix in archive_suffixes)
        self._index: dict[str, PackageEntry] | None = None
        self._archives = ConcurrentCache[Path, zipfile.ZipFile]("package-archives", cleanup=lambda zf: zf.close())

    @property
    def archives(self) -> list[Path]:
        """Candidate archives in indexing order."""
        found: list[Path] = []
        if self.project_root.is_dir():
            found.extend(sorted(p for p in self.project_root.iterdir() if self._is_archive(p)))
        for dep_dir in self.dependency_dirs:
            directory = self.project_root / dep_dir
            if directory.is_dir():
                found.extend(sorted(p for p in directory.rglob("*") if self._is_archive(p)))
        return found

    def _is_archive(self, path: Path) -> bool:
        return path.is_file() and path.suffix.lower() in self.archive_suffixes

    def _build_index(self) -> dict[str, PackageEntry]:
        if self._index is not None:
            return self._index

        index: dict[str, PackageEntry] = {}
        for archive in self.archives:
            zf = self._open_archive(archive)
            if zf is None:
                continue
            count = 0
            for name in zf.namelist():
                if name.endswith("/") or name.lower().endswith(IGNORED_ENTRY_SUFFIXES):
                    continue
                key = normalize_path(name).lstrip("/")
                if key not in index:
                    index[key] = PackageEntry(archive, name)
                    count += 1
            logger.debug(f"Indexed {count} entries from {archive.name}")

        logger.info(f"Package index built: {len(index)} entries from {self._archives.size()} archives")
        self._index = index
        return index

    def _open_archive(self, archive: Path) -> zipfile.ZipFile | None:
        def factory(path: Path) -> zipfile.ZipFile | None:
            try:
                return zipfile.ZipFile(path)
            except (OSError, zipfile.BadZipFile) as e:
                logger.warning(f"Skipping unreadable archive {path}: {e}")
                return None

        return self._archives.get_or_create(archive, factory)

    def find(self, path: str) -> PackageEntry | None:
        return self._build_index().get(normalize_path(path).lstrip("/"))

    def read_bytes(self, path: str) -> bytes | None:
        entry = self.find(path)
        if entry is None:
            return None
        zf = self._open_archive(entry.archive)
        if zf is None:
            return None
        try:
            return zf.read(entry.entry_name)
        except ENTRY_READ_ERRORS as e:
            logger.warning(f"Failed to read {entry.entry_name} from {entry.package_name}: {e}")
            return None

    def open(self, path: str) -> BinaryIO | None:
        data = self.read_bytes(path)
        return io.BytesIO(data) if data is not None else None

    def url_for(self, path: str) -> str | None:
        entry = self.find(path)
        if entry is None:
            return None
        return f"jar:{entry.archive.resolve().as_uri()}!/{entry.entry_name}"

    def list_paths(self, prefix: str) -> list[str]:
        prefix = normalize_directory(prefix)
        return sorted(key for key in self._build_index() if key.startswith(prefix))

    def close(self) -> None:
        """Close every open archive and forget the index."""
        self._archives.clear()
        self._index = None
