"""Validation layer for dsflint.

Checks run per plugin against the shared resolver of a run and produce
``ValidationItem``s for every verified or violated rule.
"""

from .framework import (
    LoadedDocument,
    PluginRunContext,
    ValidationCheck,
    ValidationFramework,
    ValidationResult,
)
from .rules import (
    AuthorizationCheck,
    CapabilityCheck,
    DefinitionReferenceCheck,
    DocumentParseCheck,
    InstanceCardinalityCheck,
    LeftoverAttributionCheck,
    ReferenceResolutionCheck,
)

__all__ = [
    "LoadedDocument",
    "PluginRunContext",
    "ValidationCheck",
    "ValidationFramework",
    "ValidationResult",
    "AuthorizationCheck",
    "CapabilityCheck",
    "DefinitionReferenceCheck",
    "DocumentParseCheck",
    "InstanceCardinalityCheck",
    "LeftoverAttributionCheck",
    "ReferenceResolutionCheck",
]
