"""Data models for dsflint."""

from .items import ItemCategory, Severity, ValidationItem
from .plugin import PluginContext
from .resource import (
    CapabilityRequirement,
    ResolutionResult,
    ResolutionSource,
    ResolvedLocation,
    ResourceCategory,
    ResourceReference,
)

__all__ = [
    "CapabilityRequirement",
    "ItemCategory",
    "PluginContext",
    "ResolutionResult",
    "ResolutionSource",
    "ResolvedLocation",
    "ResourceCategory",
    "ResourceReference",
    "Severity",
    "ValidationItem",
]
