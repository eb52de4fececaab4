"""Unit tests for plugin discovery from the descriptor file."""

import json

import pytest
from conftest import write

from dsflint.config import DsflintConfig, ResolutionConfig
from dsflint.discovery import find_descriptor, load_plugin_contexts
from dsflint.models.resource import ResourceCategory


class TestLoadPluginContexts:
    """Test descriptor parsing into plugin contexts."""

    def test_references_normalized_at_discovery(self, tmp_path):
        descriptor = write(tmp_path / "dsf-plugins.json", json.dumps({"plugins": [{
            "name": "ping",
            "originHint": "target/classes",
            "processModels": ["classpath:bpe/ping.bpmn"],
            "fhirResources": {"dsfdev_ping": ["src/main/resources/fhir/Task/task-ping.xml"]},
            "implementations": [{"className": "dev.dsf.bpe.PingPlugin", "capability": "ProcessPluginDefinition"}],
        }]}))

        [plugin] = load_plugin_contexts(descriptor)

        assert plugin.name == "ping"
        assert plugin.order == 0
        assert plugin.origin_hint.as_posix() == "target/classes"
        assert plugin.workflow_paths() == ["bpe/ping.bpmn"]
        assert plugin.resource_paths() == ["fhir/Task/task-ping.xml"]
        assert plugin.references_of(ResourceCategory.WORKFLOW)[0].raw == "classpath:bpe/ping.bpmn"
        assert plugin.capabilities[0].class_name == "dev.dsf.bpe.PingPlugin"

    def test_list_form_and_duplicate_names(self, tmp_path):
        descriptor = write(tmp_path / "plugins.json", json.dumps([
            {"name": "ping"},
            {"name": "pong"},
            {"name": "ping"},
        ]))

        plugins = load_plugin_contexts(descriptor)

        assert [plugin.name for plugin in plugins] == ["ping", "pong", "ping#2"]
        assert [plugin.order for plugin in plugins] == [0, 1, 2]

    def test_duplicate_suffix_avoids_declared_names(self, tmp_path):
        descriptor = write(tmp_path / "plugins.json", json.dumps([
            {"name": "ping"},
            {"name": "ping"},
            {"name": "ping#2"},
            {"name": "ping"},
        ]))

        plugins = load_plugin_contexts(descriptor)

        assert [plugin.name for plugin in plugins] == ["ping", "ping#3", "ping#2", "ping#4"]

    def test_custom_marker_prefixes(self, tmp_path):
        config = DsflintConfig(resolution=ResolutionConfig(marker_prefixes=["resource:"]))
        descriptor = write(tmp_path / "plugins.json", json.dumps({"plugins": [
            {"name": "ping", "processModels": ["resource:bpe/ping.bpmn"]},
        ]}))

        [plugin] = load_plugin_contexts(descriptor, config)
        assert plugin.workflow_paths() == ["bpe/ping.bpmn"]

    def test_duplicate_references_collapsed(self, tmp_path):
        descriptor = write(tmp_path / "plugins.json", json.dumps({"plugins": [{
            "name": "ping",
            "fhirResources": {"a": ["fhir/x.xml"], "b": ["classpath:fhir/x.xml"]},
        }]}))

        [plugin] = load_plugin_contexts(descriptor)
        assert plugin.resource_paths() == ["fhir/x.xml"]
        assert len(plugin.references) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_plugin_contexts(tmp_path / "none.json")

    def test_invalid_json(self, tmp_path):
        descriptor = write(tmp_path / "plugins.json", "{broken")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_plugin_contexts(descriptor)

    def test_invalid_structure(self, tmp_path):
        descriptor = write(tmp_path / "plugins.json", json.dumps({"plugins": [{"processModels": []}]}))
        with pytest.raises(ValueError, match="Invalid plugin descriptor"):
            load_plugin_contexts(descriptor)


class TestFindDescriptor:
    """Test descriptor lookup in the project directory."""

    def test_found(self, tmp_path):
        write(tmp_path / "dsf-plugins.json", "{}")
        assert find_descriptor(tmp_path) == tmp_path / "dsf-plugins.json"

    def test_absent(self, tmp_path):
        assert find_descriptor(tmp_path) is None
