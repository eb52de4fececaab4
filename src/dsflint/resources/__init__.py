"""Resource location and loading for dsflint."""

from .documents import UnparsableDocumentError, parse_bytes, parse_document
from .packages import ArchivePackageProvider, PackageEntry, PackageLookupProvider
from .resolver import ResourceResolver
from .root_resolver import ResolutionStrategy, ResourceRootResolver, RootResolution

__all__ = [
    "ArchivePackageProvider",
    "PackageEntry",
    "PackageLookupProvider",
    "ResolutionStrategy",
    "ResourceResolver",
    "ResourceRootResolver",
    "RootResolution",
    "UnparsableDocumentError",
    "parse_bytes",
    "parse_document",
]
