"""Validation checks run for every plugin.

Each check covers one aspect of a plugin and reports both failures and
successful verifications. Checks that work on documents handle each document
on its own: a document that cannot be processed yields a single ERROR item
and the check moves on to the next one.
"""

import logging

from ..analysis.leftovers import LeftoverResourceDetector
from ..fhir.authorization import AuthorizationValidator
from ..fhir.cardinality import CardinalityValidator
from ..models.items import ItemCategory, Severity, ValidationItem
from ..models.resource import ResolutionSource, ResourceCategory
from ..resources.documents import value_of
from .framework import PluginRunContext, ValidationCheck, ValidationResult

logger = logging.getLogger(__name__)

KIND_LABELS = {
    ResourceCategory.WORKFLOW: "BPMN",
    ResourceCategory.RESOURCE_DEFINITION: "FHIR",
}


def _document_failure(check_name: str, file: str, error: Exception) -> ValidationItem:
    logger.error(f"{check_name}: processing {file} failed: {error}")
    return ValidationItem(Severity.ERROR, ItemCategory.DOCUMENT,
                          f"Validation of {file} aborted: {error}", file=file)


class ReferenceResolutionCheck(ValidationCheck):
    """Every declared BPMN and FHIR reference must resolve below the plugin's resource root."""

    @property
    def name(self) -> str:
        return "reference_resolution"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        for reference in context.plugin.references:
            kind = KIND_LABELS[reference.category]
            resolution = context.resolver.resolve_strict(reference.raw, context.resource_root,
                                                         context.project_root)
            item_args = {"file": reference.normalized, "reference": reference.raw}

            if resolution.source == ResolutionSource.DISK_IN_ROOT:
                result.increment_counter("references_resolved")
                result.add_item(ValidationItem(Severity.SUCCESS, ItemCategory.REFERENCE,
                                               f"Referenced {kind} file found", **item_args))
            elif resolution.source == ResolutionSource.PACKAGE_DEPENDENCY:
                result.increment_counter("references_from_packages")
                result.add_item(ValidationItem(
                    Severity.INFO, ItemCategory.REFERENCE,
                    f"Referenced {kind} file resolved from dependency {resolution.location.package_name}",
                    **item_args,
                ))
            elif resolution.source == ResolutionSource.DISK_OUTSIDE_ROOT:
                result.increment_counter("references_outside_root")
                result.add_item(ValidationItem(
                    Severity.ERROR, ItemCategory.REFERENCE,
                    f"Referenced {kind} file found at {resolution.actual_location}, "
                    f"outside the expected resource root {resolution.expected_root}",
                    **item_args,
                ))
            else:
                result.increment_counter("references_missing")
                result.add_item(ValidationItem(Severity.ERROR, ItemCategory.REFERENCE,
                                               f"Referenced {kind} file not found", **item_args))


class DocumentParseCheck(ValidationCheck):
    """Resolved FHIR resources must be parseable."""

    @property
    def name(self) -> str:
        return "document_parsing"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        for document in context.documents():
            if document.error is not None:
                result.add_item(ValidationItem(Severity.ERROR, ItemCategory.DOCUMENT,
                                               f"Document could not be parsed: {document.error}",
                                               file=document.file))
            else:
                result.increment_counter("documents_parsed")


class CapabilityCheck(ValidationCheck):
    """Declared implementation classes must provide their required capability."""

    @property
    def name(self) -> str:
        return "capability"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        if context.verifier is None:
            return

        for requirement in context.plugin.capabilities:
            if context.verifier.verifies(requirement.class_name, requirement.capability):
                result.add_item(ValidationItem(
                    Severity.SUCCESS, ItemCategory.CAPABILITY,
                    f"{requirement.class_name} provides {requirement.capability}",
                    reference=requirement.class_name,
                ))
            else:
                result.add_item(ValidationItem(
                    Severity.ERROR, ItemCategory.CAPABILITY,
                    f"{requirement.class_name} does not provide required capability {requirement.capability}",
                    reference=requirement.class_name,
                ))


class DefinitionReferenceCheck(ValidationCheck):
    """A Task's instantiatesCanonical must name an ActivityDefinition of the project."""

    @property
    def name(self) -> str:
        return "definition_reference"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        for document in context.parsed_documents("Task"):
            try:
                canonical = value_of(document.root, "instantiatesCanonical")
                if not canonical or not canonical.strip():
                    result.add_item(ValidationItem(Severity.ERROR, ItemCategory.DEFINITION,
                                                   "Task has no instantiatesCanonical",
                                                   file=document.file, element_id="Task.instantiatesCanonical"))
                    continue

                location = context.resolver.find_by_canonical(context.project_root, "ActivityDefinition",
                                                              canonical, context.plugin.resource_root)
                if location is None:
                    result.add_item(ValidationItem(
                        Severity.ERROR, ItemCategory.DEFINITION,
                        f"No ActivityDefinition found for instantiatesCanonical '{canonical}'",
                        file=document.file, element_id="Task.instantiatesCanonical", reference=canonical,
                    ))
                else:
                    result.add_item(ValidationItem(
                        Severity.SUCCESS, ItemCategory.DEFINITION,
                        f"instantiatesCanonical '{canonical}' resolves to {location.display_path}",
                        file=document.file, element_id="Task.instantiatesCanonical", reference=canonical,
                    ))
            except Exception as e:
                result.add_item(_document_failure(self.name, document.file, e))


class InstanceCardinalityCheck(ValidationCheck):
    """Sliced elements must respect the cardinalities of the instance's profile."""

    @property
    def name(self) -> str:
        return "instance_cardinality"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        validator = CardinalityValidator(context.resolver, context.config)
        rules = context.config.validation.cardinality_rules

        for document in context.parsed_documents():
            applicable = [rule for rule in rules if rule.resource_type == document.resource_type]
            if not applicable:
                continue
            try:
                for rule in applicable:
                    result.extend(validator.validate_document(document.root, document.file, context.project_root,
                                                              rule, context.plugin.resource_root))
                result.increment_counter("instances_checked")
            except Exception as e:
                result.add_item(_document_failure(self.name, document.file, e))


class AuthorizationCheck(ValidationCheck):
    """Task requester and recipient must be authorised by the linked ActivityDefinition."""

    @property
    def name(self) -> str:
        return "authorization"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        validator = AuthorizationValidator(context.resolver, context.config)

        for document in context.parsed_documents("Task"):
            try:
                result.extend(validator.validate(document.root, document.file, context.project_root,
                                                 context.plugin.resource_root))
            except Exception as e:
                result.add_item(_document_failure(self.name, document.file, e))


class LeftoverAttributionCheck(ValidationCheck):
    """Reports the project's unreferenced files attributed to this plugin."""

    @property
    def name(self) -> str:
        return "leftovers"

    def validate(self, context: PluginRunContext, result: ValidationResult) -> None:
        if context.leftovers is None:
            return

        detector = context.detector or LeftoverResourceDetector(context.config)
        items = detector.get_items_for_plugin(
            context.leftovers,
            context.plugin.name,
            context.plugin,
            context.is_last_plugin,
            context.is_single_plugin_project,
        )
        result.increment_counter("leftovers", sum(1 for item in items if item.severity == Severity.WARN))
        result.extend(items)
