"""Shared fixtures: throw-away DSF plugin projects and FHIR document builders."""

import json
import struct
import zipfile
from pathlib import Path

import pytest

from dsflint.config import DsflintConfig

FHIR_NS = "http://hl7.org/fhir"
AUTH_URL = "http://dsf.dev/fhir/StructureDefinition/extension-process-authorization"
AUTH_ORG_URL = "http://dsf.dev/fhir/StructureDefinition/extension-process-authorization-organization"
AUTH_SYSTEM = "http://dsf.dev/fhir/CodeSystem/process-authorization"
ORG_SYSTEM = "http://dsf.dev/sid/organization-identifier"

PROFILE_URL = "http://dsf.dev/fhir/StructureDefinition/task-ping"
PROCESS_URL = "http://dsf.dev/bpe/Process/ping"


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def task_xml(profile: str | None = PROFILE_URL + "|1.0", canonical: str | None = PROCESS_URL + "|1.0",
             requester: str | None = "dic.dsf.test", recipient: str | None = "dic.dsf.test",
             input_codes: tuple[str, ...] = ("message-name",)) -> str:
    parts = [f'<Task xmlns="{FHIR_NS}">']
    if profile:
        parts.append(f'<meta><profile value="{profile}"/></meta>')
    if canonical:
        parts.append(f'<instantiatesCanonical value="{canonical}"/>')
    parts.append('<status value="requested"/><intent value="order"/>')
    if requester is not None:
        parts.append(f'<requester><type value="Organization"/><identifier><system value="{ORG_SYSTEM}"/>'
                     f'<value value="{requester}"/></identifier></requester>')
    if recipient is not None:
        parts.append(f'<restriction><recipient><type value="Organization"/><identifier>'
                     f'<system value="{ORG_SYSTEM}"/><value value="{recipient}"/></identifier>'
                     f'</recipient></restriction>')
    for code in input_codes:
        parts.append(f'<input><type><coding><system value="http://dsf.dev/fhir/CodeSystem/bpmn-message"/>'
                     f'<code value="{code}"/></coding></type><valueString value="{code}-value"/></input>')
    parts.append("</Task>")
    return "".join(parts)


def structure_definition_xml(url: str = PROFILE_URL, base: tuple[str, str | None] = ("1", "*"),
                             slices: dict[str, tuple[str, str | None]] | None = None) -> str:
    def element(element_id: str, card: tuple[str, str | None]) -> str:
        min_value, max_value = card
        max_part = f'<max value="{max_value}"/>' if max_value is not None else ""
        return f'<element id="{element_id}"><path value="Task.input"/><min value="{min_value}"/>{max_part}</element>'

    elements = [element("Task.input", base)]
    for name, card in (slices or {}).items():
        elements.append(element(f"Task.input:{name}", card))
        elements.append(f'<element id="Task.input:{name}.type"><path value="Task.input.type"/>'
                        f'<min value="1"/><max value="1"/></element>')
    return (f'<StructureDefinition xmlns="{FHIR_NS}"><url value="{url}"/><version value="1.0"/>'
            f'<type value="Task"/><differential>{"".join(elements)}</differential></StructureDefinition>')


def _coding(code: str, organizations: tuple[str, ...]) -> str:
    extensions = "".join(
        f'<extension url="{AUTH_ORG_URL}"><valueIdentifier><system value="{ORG_SYSTEM}"/>'
        f'<value value="{org}"/></valueIdentifier></extension>'
        for org in organizations
    )
    return f'<valueCoding>{extensions}<system value="{AUTH_SYSTEM}"/><code value="{code}"/></valueCoding>'


def activity_definition_xml(url: str = PROCESS_URL, requesters: tuple[str, ...] = ("dic.dsf.test",),
                            recipients: tuple[str, ...] = ("dic.dsf.test",),
                            requester_code: str = "REMOTE_ORGANIZATION", recipient_code: str = "LOCAL_ORGANIZATION",
                            task_profile: str = PROFILE_URL + "|1.0", with_authorization: bool = True) -> str:
    authorization = ""
    if with_authorization:
        authorization = (
            f'<extension url="{AUTH_URL}">'
            f'<extension url="message-name"><valueString value="startPing"/></extension>'
            f'<extension url="task-profile"><valueCanonical value="{task_profile}"/></extension>'
            f'<extension url="requester">{_coding(requester_code, requesters)}</extension>'
            f'<extension url="recipient">{_coding(recipient_code, recipients)}</extension>'
            f'</extension>'
        )
    return (f'<ActivityDefinition xmlns="{FHIR_NS}">{authorization}<url value="{url}"/>'
            f'<version value="1.0"/><status value="active"/><kind value="Task"/></ActivityDefinition>')


def make_jar(path: Path, entries: dict[str, str], compression: int = zipfile.ZIP_STORED) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=compression) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


def corrupt_jar_entry(path: Path, name: str) -> Path:
    """Replace the data of a deflated entry with an invalid deflate block."""
    with zipfile.ZipFile(path) as zf:
        info = zf.getinfo(name)
    data = bytearray(path.read_bytes())
    offset = info.header_offset
    name_length, extra_length = struct.unpack("<HH", data[offset + 26:offset + 30])
    start = offset + 30 + name_length + extra_length
    data[start:start + info.compress_size] = b"\xff" * info.compress_size
    path.write_bytes(bytes(data))
    return path


def write_descriptor(project: Path, plugins: list[dict]) -> Path:
    return write(project / "dsf-plugins.json", json.dumps({"plugins": plugins}))


@pytest.fixture
def config():
    """Default configuration."""
    return DsflintConfig()


@pytest.fixture
def maven_project(tmp_path):
    """A built Maven plugin project with one BPMN, one Task, its profile and ActivityDefinition."""
    project = tmp_path / "ping-plugin"
    write(project / "pom.xml", "<project/>")
    classes = project / "target" / "classes"
    write(classes / "bpe" / "ping.bpmn", "<definitions/>")
    write(classes / "fhir" / "Task" / "task-ping.xml", task_xml())
    write(classes / "fhir" / "StructureDefinition" / "task-ping.xml",
          structure_definition_xml(slices={"message-name": ("1", "1")}))
    write(classes / "fhir" / "ActivityDefinition" / "ping.xml", activity_definition_xml())
    return project


@pytest.fixture
def ping_references():
    """References the ping plugin declares for the maven_project fixture."""
    return {
        "processModels": ["bpe/ping.bpmn"],
        "fhirResources": {
            "dsfdev_ping": [
                "fhir/Task/task-ping.xml",
                "fhir/StructureDefinition/task-ping.xml",
                "fhir/ActivityDefinition/ping.xml",
            ]
        },
    }
