"""End-to-end validation runs over complete plugin projects."""

import zipfile

import pytest
from conftest import (
    FHIR_NS,
    activity_definition_xml,
    corrupt_jar_entry,
    make_jar,
    structure_definition_xml,
    task_xml,
    write,
)

from dsflint.config import DsflintConfig, LayoutConfig
from dsflint.discovery import PluginDescriptor, build_plugin_contexts
from dsflint.models.items import ItemCategory, Severity
from dsflint.service import PluginValidationService, overall_exit_code


def _plugins(*descriptors, config=None):
    return build_plugin_contexts([PluginDescriptor(**descriptor) for descriptor in descriptors], config)


def _leftover_items(result):
    return [item for item in result.items
            if item.category in (ItemCategory.LEFTOVER, ItemCategory.LEFTOVER_WORKFLOW,
                                 ItemCategory.LEFTOVER_RESOURCE)]


class TestSinglePluginProject:
    """Test a project containing one plugin."""

    def test_clean_maven_project(self, maven_project, ping_references):
        results = PluginValidationService().validate_project(
            maven_project, _plugins({"name": "ping", **ping_references}))

        result = results["ping"]
        assert result.status == Severity.SUCCESS
        assert overall_exit_code(results) == 0
        leftovers = _leftover_items(result)
        assert [item.severity for item in leftovers] == [Severity.SUCCESS]
        assert result.counters["references_resolved"] == 4

    def test_orphan_in_custom_resource_tree(self, tmp_path):
        """Test one referenced and one orphaned file give exactly one leftover warning."""
        project = tmp_path / "plugin"
        write(project / "resource" / "Task" / "t1.xml", f'<CodeSystem xmlns="{FHIR_NS}"/>')
        write(project / "resource" / "Task" / "orphan.xml", f'<CodeSystem xmlns="{FHIR_NS}"/>')
        config = DsflintConfig(layout=LayoutConfig(resource_dir="resource"))
        plugins = _plugins({"name": "test", "fhirResources": {"x": ["resource/Task/t1.xml"]}}, config=config)

        result = PluginValidationService(config).validate_project(project, plugins)["test"]

        leftovers = _leftover_items(result)
        assert [(item.severity, item.file) for item in leftovers] == [(Severity.WARN, "resource/Task/orphan.xml")]
        assert not any(item.severity == Severity.SUCCESS for item in leftovers)
        assert result.status == Severity.WARN
        assert overall_exit_code({"test": result}) == 0

    def test_errors_collected_across_checks(self, maven_project, ping_references):
        classes = maven_project / "target" / "classes"
        write(classes / "fhir" / "Task" / "task-ping.xml", task_xml(requester="evil.org", input_codes=()))
        references = dict(ping_references, processModels=["bpe/ping.bpmn", "bpe/missing.bpmn"])

        results = PluginValidationService().validate_project(maven_project,
                                                             _plugins({"name": "ping", **references}))
        result = results["ping"]

        messages = [item.message for item in result.items if item.severity == Severity.ERROR]
        assert "Referenced BPMN file not found" in messages
        assert "slice 'message-name' count 0 is below slice minimum 1" in messages
        assert any("'evil.org' is not authorised as requester" in message for message in messages)
        assert overall_exit_code(results) == 1

    def test_package_reference_reported_as_info(self, maven_project, ping_references):
        make_jar(maven_project / "target" / "dependency" / "dsf-base.jar",
                 {"fhir/CodeSystem/dsf-read-access-tag.xml": "<CodeSystem/>"})
        references = dict(ping_references)
        references["fhirResources"] = {**ping_references["fhirResources"],
                                       "base": ["fhir/CodeSystem/dsf-read-access-tag.xml"]}

        result = PluginValidationService().validate_project(
            maven_project, _plugins({"name": "ping", **references}))["ping"]

        info = [item for item in result.items if item.severity == Severity.INFO]
        assert [item.file for item in info] == ["fhir/CodeSystem/dsf-read-access-tag.xml"]
        assert result.counters["references_from_packages"] == 1
        assert result.status == Severity.SUCCESS

    def test_corrupt_package_entry_contained(self, maven_project, ping_references):
        """Test a dependency entry that fails to decompress yields one item and no failed checks."""
        jar = make_jar(maven_project / "target" / "dependency" / "dep.jar",
                       {"fhir/CodeSystem/cs.xml": f'<CodeSystem xmlns="{FHIR_NS}"/>'},
                       compression=zipfile.ZIP_DEFLATED)
        corrupt_jar_entry(jar, "fhir/CodeSystem/cs.xml")
        references = dict(ping_references)
        references["fhirResources"] = {**ping_references["fhirResources"], "base": ["fhir/CodeSystem/cs.xml"]}

        result = PluginValidationService().validate_project(
            maven_project, _plugins({"name": "ping", **references}))["ping"]

        assert not any(item.category == ItemCategory.CHECK for item in result.items)
        corrupt = [(item.severity, item.category) for item in result.items
                   if item.file == "fhir/CodeSystem/cs.xml"]
        assert corrupt == [(Severity.ERROR, ItemCategory.REFERENCE)]
        assert result.counters["documents_parsed"] == 3
        assert result.counters["instances_checked"] == 1

    def test_missing_project(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PluginValidationService().validate_project(tmp_path / "missing", [])


class TestMultiPluginProject:
    """Test leftover attribution between several plugins of one project."""

    @pytest.fixture
    def project(self, maven_project):
        classes = maven_project / "target" / "classes"
        write(classes / "bpe" / "pong.bpmn", "<definitions/>")
        write(classes / "fhir" / "Task" / "task-pong.xml", task_xml())
        write(classes / "fhir" / "CodeSystem" / "shared.xml", f'<CodeSystem xmlns="{FHIR_NS}"/>')
        return maven_project

    def test_leftovers_attributed_by_name(self, project, ping_references):
        plugins = _plugins({"name": "ping", **ping_references}, {"name": "pong"})

        results = PluginValidationService().validate_project(project, plugins)

        ping_files = [item.file for item in _leftover_items(results["ping"])]
        pong_files = [item.file for item in _leftover_items(results["pong"])]
        assert ping_files == []
        assert sorted(pong_files) == ["bpe/pong.bpmn", "fhir/CodeSystem/shared.xml", "fhir/Task/task-pong.xml"]

    def test_single_success_for_clean_project(self, project, ping_references):
        pong = {"name": "pong", "processModels": ["bpe/pong.bpmn"],
                "fhirResources": {"pong": ["fhir/Task/task-pong.xml", "fhir/CodeSystem/shared.xml"]}}
        plugins = _plugins({"name": "ping", **ping_references}, pong)

        results = PluginValidationService().validate_project(project, plugins)

        assert _leftover_items(results["ping"]) == []
        assert [item.severity for item in _leftover_items(results["pong"])] == [Severity.SUCCESS]
        assert list(results) == ["ping", "pong"]


class TestMultiModuleProject:
    """Test a plugin whose resources live in a module below the project root."""

    @pytest.fixture
    def project(self, tmp_path):
        project = tmp_path / "parent"
        write(project / "pom.xml", "<project/>")
        classes = project / "ping-module" / "target" / "classes"
        write(classes / "bpe" / "ping.bpmn", "<definitions/>")
        write(classes / "fhir" / "Task" / "task-ping.xml", task_xml(requester="evil.org"))
        write(classes / "fhir" / "StructureDefinition" / "task-ping.xml",
              structure_definition_xml(slices={"message-name": ("1", "1")}))
        write(classes / "fhir" / "ActivityDefinition" / "ping.xml", activity_definition_xml())
        return project

    def test_documents_under_hinted_root_are_checked(self, project, ping_references):
        plugins = _plugins({"name": "ping", "originHint": "ping-module/target/classes", **ping_references})

        result = PluginValidationService().validate_project(project, plugins)["ping"]

        assert result.counters["references_resolved"] == 4
        assert result.counters["documents_parsed"] == 3
        assert result.counters["instances_checked"] == 1
        errors = [item.message for item in result.items if item.severity == Severity.ERROR]
        assert any("'evil.org' is not authorised as requester" in message for message in errors)
        assert any(item.category == ItemCategory.DEFINITION and item.severity == Severity.SUCCESS
                   for item in result.items)
        assert result.status == Severity.ERROR
