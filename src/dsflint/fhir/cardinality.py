"""Profile-driven cardinality validation of sliced FHIR elements.

The profile (a StructureDefinition) is found through the instance's
``meta.profile`` canonical URL. Its element definitions give a min/max for the
repeating element as a whole (``Task.input``) and for each named slice
(``Task.input:message-name``). Instance elements are assigned to slices by a
discriminator value, by default ``type.coding.code``.
"""

import logging
import math
import xml.etree.ElementTree as ET
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..config import CardinalityRule, DsflintConfig
from ..models.items import ItemCategory, Severity, ValidationItem
from ..resources.documents import (
    UnparsableDocumentError,
    children,
    find_all,
    iter_descendants,
    parse_document,
    resource_type,
    value_of,
    values_of,
)
from ..resources.resolver import ResourceResolver

logger = logging.getLogger(__name__)

UNBOUNDED = math.inf
BASE_KEY = "__base__"
DEFAULT_ELEMENT_PATH = "Task.input"
DEFAULT_DISCRIMINATOR = "type.coding.code"

BPMN_MESSAGE_SYSTEM = "http://dsf.dev/fhir/CodeSystem/bpmn-message"
MESSAGE_NAME = "message-name"
CORRELATION_KEY = "correlation-key"


@dataclass(frozen=True)
class SliceCardinality:
    """Declared ``min..max`` of a slice or of the whole repeating element."""
    min: int = 0
    max: int | float = UNBOUNDED

    @property
    def unbounded(self) -> bool:
        return self.max == UNBOUNDED

    @property
    def display_max(self) -> str:
        return "*" if self.unbounded else str(int(self.max))

    @property
    def display(self) -> str:
        return f"{self.min}..{self.display_max}"


CardinalityMap = dict[str, SliceCardinality]


def parse_max(value: str | None) -> int | float:
    """Parse an ElementDefinition ``max``; ``*`` and absent mean unbounded."""
    if value is None or value.strip() in ("", "*"):
        return UNBOUNDED
    return int(value.strip())


def parse_min(value: str | None) -> int:
    if value is None or not value.strip():
        return 0
    return int(value.strip())


def extract_cardinality(structure_definition: ET.Element,
                        element_path: str = DEFAULT_ELEMENT_PATH) -> CardinalityMap:
    """Read the base and direct-slice cardinalities of ``element_path``.

    Snapshot and differential are both read; for each element id a value
    declared in the differential overrides the snapshot.

    Returns:
        Mapping of slice name to cardinality, with the base under ``BASE_KEY``
    """
    declared: dict[str, dict[str, str]] = {}
    for section in ("snapshot", "differential"):
        for container in children(structure_definition, section):
            for element in iter_descendants(container, "element"):
                element_id = element.get("id")
                if not element_id:
                    continue
                entry = declared.setdefault(element_id, {})
                for field_name in ("min", "max"):
                    value = value_of(element, field_name)
                    if value is not None:
                        entry[field_name] = value

    base = declared.get(element_path, {})
    result: CardinalityMap = {
        BASE_KEY: SliceCardinality(parse_min(base.get("min")), parse_max(base.get("max")))
    }

    prefix = f"{element_path}:"
    for element_id, entry in declared.items():
        if not element_id.startswith(prefix):
            continue
        slice_name = element_id[len(prefix):]
        # Only direct slices; Task.input:foo.value[x] or re-slices are not counted
        if not slice_name or "." in slice_name or ":" in slice_name:
            continue
        result[slice_name] = SliceCardinality(parse_min(entry.get("min")), parse_max(entry.get("max")))

    return result


class CardinalityValidator:
    """Checks instance elements against the cardinalities of their profile."""

    def __init__(self, resolver: ResourceResolver, config: DsflintConfig | None = None):
        self.resolver = resolver
        self.config = config or resolver.config

    def load_cardinality(self, project_root: Path, profile_ref: str, element_path: str = DEFAULT_ELEMENT_PATH,
                         resource_root: Path | None = None) -> CardinalityMap | None:
        """Locate a profile by canonical URL and extract its cardinalities.

        Returns:
            The cardinality map, or None when the profile cannot be found or parsed
        """
        location = self.resolver.find_by_canonical(project_root, "StructureDefinition", profile_ref, resource_root)
        if location is None:
            logger.debug(f"Profile '{profile_ref}' not found")
            return None

        try:
            structure_definition = parse_document(location.path)
        except UnparsableDocumentError as e:
            logger.warning(f"Profile '{profile_ref}' could not be parsed: {e}")
            return None

        try:
            return extract_cardinality(structure_definition, element_path)
        except ValueError as e:
            logger.warning(f"Profile '{profile_ref}' declares an invalid cardinality: {e}")
            return None

    def validate_instance(self, instance_elements: Sequence[ET.Element], cardinality_map: CardinalityMap,
                          discriminator: str = DEFAULT_DISCRIMINATOR, file: str | None = None,
                          element_path: str = DEFAULT_ELEMENT_PATH) -> list[ValidationItem]:
        """Count instance elements in total and per slice and compare with the profile.

        An element counts once towards every distinct discriminator value it
        carries. Slices the profile does not declare are unconstrained.
        """
        total = len(instance_elements)
        per_slice: Counter[str] = Counter()
        for element in instance_elements:
            for value in set(values_of(element, discriminator)):
                per_slice[value] += 1

        items: list[ValidationItem] = []
        base = cardinality_map.get(BASE_KEY, SliceCardinality())
        items.append(self._compare(f"{element_path} count {total}", total, base, "",
                                   file, element_path))

        for slice_name in sorted(name for name in cardinality_map if name != BASE_KEY):
            declared = cardinality_map[slice_name]
            count = per_slice.get(slice_name, 0)
            items.append(self._compare(f"slice '{slice_name}' count {count}", count, declared, "slice ",
                                       file, f"{element_path}:{slice_name}"))
        return items

    @staticmethod
    def _compare(subject: str, count: int, declared: SliceCardinality, kind: str,
                 file: str | None, element_id: str) -> ValidationItem:
        if count < declared.min:
            return ValidationItem(Severity.ERROR, ItemCategory.CARDINALITY,
                                  f"{subject} is below {kind}minimum {declared.min}",
                                  file=file, element_id=element_id)
        if count > declared.max:
            return ValidationItem(Severity.ERROR, ItemCategory.CARDINALITY,
                                  f"{subject} exceeds {kind}maximum {declared.display_max}",
                                  file=file, element_id=element_id)
        return ValidationItem(Severity.SUCCESS, ItemCategory.CARDINALITY,
                              f"{subject} OK ({declared.display})",
                              file=file, element_id=element_id)

    def validate_document(self, root: ET.Element, file: str, project_root: Path,
                          rule: CardinalityRule | None = None,
                          resource_root: Path | None = None) -> list[ValidationItem]:
        """Run the cardinality checks of ``rule`` for every profile the instance claims."""
        rule = rule or CardinalityRule()
        if resource_type(root) != rule.resource_type:
            return []

        items: list[ValidationItem] = []
        for profile in values_of(root, "meta.profile"):
            cardinality_map = self.load_cardinality(project_root, profile, rule.element_path, resource_root)
            if cardinality_map is None:
                logger.warning(f"Cardinality check of {file} skipped: profile '{profile}' unavailable")
                items.append(ValidationItem(
                    Severity.WARN,
                    ItemCategory.PROFILE,
                    f"StructureDefinition for profile '{profile}' not found; "
                    f"instance-level cardinality check skipped.",
                    file=file,
                    reference=profile,
                ))
                continue

            elements = children(root, rule.element)
            items.extend(self.validate_instance(elements, cardinality_map, rule.discriminator,
                                                file, rule.element_path))
            if self.config.validation.check_duplicate_slices:
                items.extend(self.check_duplicate_slices(elements, file, rule.element_path))
            if self.config.validation.check_profile_consistency:
                items.extend(self.check_profile_consistency(cardinality_map, profile, rule.element_path))
            if self.config.validation.check_message_inputs and rule.element_path == DEFAULT_ELEMENT_PATH:
                items.extend(self.check_message_inputs(elements, cardinality_map, file, rule.element_path))
        return items

    def check_duplicate_slices(self, instance_elements: Sequence[ET.Element], file: str | None = None,
                               element_path: str = DEFAULT_ELEMENT_PATH) -> list[ValidationItem]:
        """Report ``system#code`` pairs that occur on more than one element."""
        occurrences: Counter[str] = Counter()
        for element in instance_elements:
            keys = set()
            for coding in find_all(element, "type.coding"):
                code = value_of(coding, "code")
                if code:
                    keys.add(f"{value_of(coding, 'system') or ''}#{code}")
            occurrences.update(keys)

        duplicates = sorted(key for key, count in occurrences.items() if count > 1)
        if not duplicates:
            return [ValidationItem(Severity.SUCCESS, ItemCategory.CARDINALITY,
                                   f"No duplicate {element_path} slices", file=file, element_id=element_path)]
        return [
            ValidationItem(Severity.WARN, ItemCategory.CARDINALITY,
                           f"Duplicate {element_path} slice '{key}' occurs {occurrences[key]} times",
                           file=file, element_id=element_path)
            for key in duplicates
        ]

    def check_profile_consistency(self, cardinality_map: CardinalityMap, profile: str,
                                  element_path: str = DEFAULT_ELEMENT_PATH) -> list[ValidationItem]:
        """Check that the declared slices can be satisfied within the base cardinality."""
        base = cardinality_map.get(BASE_KEY, SliceCardinality())
        slices = {name: card for name, card in cardinality_map.items() if name != BASE_KEY}
        items: list[ValidationItem] = []

        for name, card in sorted(slices.items()):
            element_id = f"{element_path}:{name}"
            if card.min > card.max:
                items.append(ValidationItem(Severity.ERROR, ItemCategory.PROFILE,
                                            f"slice '{name}' min {card.min} exceeds its max {card.display_max}",
                                            file=profile, element_id=element_id))
            if card.max > base.max:
                items.append(ValidationItem(Severity.ERROR, ItemCategory.PROFILE,
                                            f"slice '{name}' max {card.display_max} exceeds base max {base.display_max}",
                                            file=profile, element_id=element_id))

        min_sum = sum(card.min for card in slices.values())
        if min_sum > base.max:
            items.append(ValidationItem(Severity.ERROR, ItemCategory.PROFILE,
                                        f"sum of slice minimums ({min_sum}) exceeds base max {base.display_max}",
                                        file=profile, element_id=element_path))

        if not items:
            items.append(ValidationItem(Severity.SUCCESS, ItemCategory.PROFILE,
                                        f"{element_path} slice cardinalities are consistent with base {base.display}",
                                        file=profile, element_id=element_path))
        return items

    def check_message_inputs(self, instance_elements: Sequence[ET.Element], cardinality_map: CardinalityMap,
                             file: str | None = None,
                             element_path: str = DEFAULT_ELEMENT_PATH) -> list[ValidationItem]:
        """Check the BPMN message inputs of a Task.

        ``message-name`` is always mandatory. A ``correlation-key`` input is
        only permitted when the profile declares that slice with a max other
        than 0, and it is required when the slice minimum is above 0.
        """
        codes = set()
        for element in instance_elements:
            for coding in find_all(element, "type.coding"):
                code = value_of(coding, "code")
                if code and value_of(coding, "system") == BPMN_MESSAGE_SYSTEM:
                    codes.add(code)

        name_id = f"{element_path}:{MESSAGE_NAME}"
        if MESSAGE_NAME in codes:
            items = [ValidationItem(Severity.SUCCESS, ItemCategory.CARDINALITY,
                                    f"mandatory slice '{MESSAGE_NAME}' present", file=file, element_id=name_id)]
        else:
            items = [ValidationItem(Severity.ERROR, ItemCategory.CARDINALITY,
                                    f"mandatory slice '{MESSAGE_NAME}' missing", file=file, element_id=name_id)]

        correlation = cardinality_map.get(CORRELATION_KEY)
        correlation_id = f"{element_path}:{CORRELATION_KEY}"
        if CORRELATION_KEY in codes:
            if correlation is not None and correlation.max != 0:
                items.append(ValidationItem(Severity.SUCCESS, ItemCategory.CARDINALITY,
                                            f"{CORRELATION_KEY} input present and permitted by profile",
                                            file=file, element_id=correlation_id))
            else:
                items.append(ValidationItem(Severity.ERROR, ItemCategory.CARDINALITY,
                                            f"{CORRELATION_KEY} input is not allowed by profile",
                                            file=file, element_id=correlation_id))
        elif correlation is not None and correlation.min > 0:
            items.append(ValidationItem(Severity.ERROR, ItemCategory.CARDINALITY,
                                        f"{CORRELATION_KEY} input missing but slice minimum is {correlation.min}",
                                        file=file, element_id=correlation_id))
        else:
            items.append(ValidationItem(Severity.SUCCESS, ItemCategory.CARDINALITY,
                                        f"{CORRELATION_KEY} input absent as expected",
                                        file=file, element_id=correlation_id))
        return items
