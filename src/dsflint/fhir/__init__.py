"""FHIR profile and definition checks."""

from .authorization import AuthorizationRules, AuthorizationValidator, extract_authorization
from .cardinality import (
    BASE_KEY,
    UNBOUNDED,
    CardinalityValidator,
    SliceCardinality,
    extract_cardinality,
)

__all__ = [
    "AuthorizationRules",
    "AuthorizationValidator",
    "BASE_KEY",
    "CardinalityValidator",
    "SliceCardinality",
    "UNBOUNDED",
    "extract_authorization",
    "extract_cardinality",
]
