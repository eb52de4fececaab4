"""Cross-resource authorization check between a Task and its ActivityDefinition.

A Task names the process it starts through ``instantiatesCanonical``. The
ActivityDefinition of that process lists, in process-authorization extensions,
which organizations may send (requester) and receive (recipient) the Task.
"""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ..config import DsflintConfig
from ..models.items import ItemCategory, Severity, ValidationItem
from ..resources.documents import (
    UnparsableDocumentError,
    child,
    children,
    find_all,
    iter_descendants,
    parse_document,
    value_of,
    values_of,
)
from ..resources.resolver import ResourceResolver
from ..utils.paths import remove_version_suffix

logger = logging.getLogger(__name__)

PROCESS_AUTHORIZATION_URL = "http://dsf.dev/fhir/StructureDefinition/extension-process-authorization"

# Codes of http://dsf.dev/fhir/CodeSystem/process-authorization that accept any
# organization of the deployment
WILDCARD_CODES = frozenset({
    "LOCAL_ALL",
    "LOCAL_ALL_PRACTITIONER",
    "REMOTE_ALL",
})

REQUESTER = "requester"
RECIPIENT = "recipient"


@dataclass(frozen=True)
class AuthorizationRules:
    """Organizations permitted as requester and recipient of a process."""
    requesters: frozenset[str] = frozenset()
    recipients: frozenset[str] = frozenset()
    requester_wildcard: bool = False
    recipient_wildcard: bool = False
    declared: bool = False

    def permits(self, side: str, identifier: str) -> bool:
        if side == REQUESTER:
            return self.requester_wildcard or identifier in self.requesters
        return self.recipient_wildcard or identifier in self.recipients


def _is_wildcard(code: str) -> bool:
    # Role-based codes depend on organization membership, which is only known at runtime
    return code in WILDCARD_CODES or code.endswith("_ROLE") or code.endswith("_ROLE_PRACTITIONER")


def _authorization_extensions(definition: ET.Element) -> list[ET.Element]:
    return [ext for ext in children(definition, "extension") if ext.get("url") == PROCESS_AUTHORIZATION_URL]


def extract_authorization(definition: ET.Element, task_profiles: Iterable[str] = ()) -> AuthorizationRules:
    """Collect the permitted requesters and recipients of an ActivityDefinition.

    When ``task_profiles`` is given and some authorization extensions name one
    of those profiles as their ``task-profile``, only those extensions count.
    Otherwise all authorization extensions of the definition are combined.
    """
    extensions = _authorization_extensions(definition)
    profiles = {remove_version_suffix(p) for p in task_profiles if p}
    if profiles:
        matching = [
            ext for ext in extensions
            if any(remove_version_suffix(v) in profiles for sub in children(ext, "extension")
                   if sub.get("url") == "task-profile" for v in values_of(sub, "valueCanonical"))
        ]
        extensions = matching or extensions

    permitted = {REQUESTER: set(), RECIPIENT: set()}
    wildcard = {REQUESTER: False, RECIPIENT: False}
    for ext in extensions:
        for sub in children(ext, "extension"):
            side = sub.get("url")
            if side not in permitted:
                continue
            for coding in children(sub, "valueCoding"):
                code = value_of(coding, "code") or ""
                if _is_wildcard(code):
                    wildcard[side] = True
                    continue
                for identifier in iter_descendants(coding, "valueIdentifier"):
                    value = value_of(identifier, "value")
                    if value:
                        permitted[side].add(value.strip())

    return AuthorizationRules(
        requesters=frozenset(permitted[REQUESTER]),
        recipients=frozenset(permitted[RECIPIENT]),
        requester_wildcard=wildcard[REQUESTER],
        recipient_wildcard=wildcard[RECIPIENT],
        declared=bool(extensions),
    )


class AuthorizationValidator:
    """Checks a Task's requester and recipient against its ActivityDefinition."""

    def __init__(self, resolver: ResourceResolver, config: DsflintConfig | None = None):
        self.resolver = resolver
        self.config = config or resolver.config

    def validate(self, task: ET.Element, file: str, project_root: Path,
                 resource_root: Path | None = None) -> list[ValidationItem]:
        canonical = value_of(task, "instantiatesCanonical")
        if not canonical or not canonical.strip():
            return []

        location = self.resolver.find_by_canonical(project_root, "ActivityDefinition", canonical,
                                                   resource_root)
        if location is None:
            # Reported once by the definition reference check
            logger.debug(f"ActivityDefinition '{canonical}' not found, skipping authorization of {file}")
            return []

        try:
            definition = parse_document(location.path)
        except UnparsableDocumentError as e:
            logger.debug(f"ActivityDefinition for '{canonical}' unparsable, skipping authorization: {e}")
            return []

        definition_name = location.display_path.rsplit("/", 1)[-1]
        rules = extract_authorization(definition, values_of(task, "meta.profile"))
        if not rules.declared:
            return [ValidationItem(
                Severity.WARN,
                ItemCategory.AUTHORIZATION,
                f"ActivityDefinition {definition_name} declares no process authorization",
                file=file,
                reference=canonical,
            )]

        return [
            self._check(REQUESTER, value_of(task, "requester.identifier.value"), rules,
                        file, "Task.requester", definition_name),
            self._check(RECIPIENT, _recipient_identifier(task), rules,
                        file, "Task.restriction.recipient", definition_name),
        ]

    def is_placeholder(self, identifier: str) -> bool:
        return any(token in identifier for token in self.config.validation.placeholder_tokens)

    def _check(self, side: str, identifier: str | None, rules: AuthorizationRules, file: str,
               element_id: str, definition_name: str) -> ValidationItem:
        identifier = (identifier or "").strip()
        if identifier and self.is_placeholder(identifier):
            return ValidationItem(Severity.SUCCESS, ItemCategory.AUTHORIZATION,
                                  f"{side} placeholder '{identifier}'; authorization check skipped",
                                  file=file, element_id=element_id)
        if not identifier:
            return ValidationItem(Severity.ERROR, ItemCategory.AUTHORIZATION,
                                  f"Task declares no {side} organization identifier",
                                  file=file, element_id=element_id)
        if rules.permits(side, identifier):
            return ValidationItem(Severity.SUCCESS, ItemCategory.AUTHORIZATION,
                                  f"Organisation '{identifier}' is authorised as {side} "
                                  f"according to ActivityDefinition {definition_name}",
                                  file=file, element_id=element_id)
        return ValidationItem(Severity.ERROR, ItemCategory.AUTHORIZATION,
                              f"Organisation '{identifier}' is not authorised as {side} "
                              f"according to ActivityDefinition {definition_name}",
                              file=file, element_id=element_id)


def _recipient_identifier(task: ET.Element) -> str | None:
    restriction = child(task, "restriction")
    if restriction is None:
        return None
    for recipient in find_all(restriction, "recipient"):
        value = value_of(recipient, "identifier.value")
        if value:
            return value
    return None
