"""Unit tests for the dsflint CLI."""

import json

from conftest import task_xml, write, write_descriptor
from typer.testing import CliRunner

from dsflint import __version__
from dsflint.cli import app

runner = CliRunner()


class TestVersion:
    """Test the eager --version option."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"dsflint {__version__}" in result.stdout


class TestValidateCommand:
    """Test validate command behaviour and exit codes."""

    def test_clean_project_exits_zero(self, maven_project, ping_references):
        write_descriptor(maven_project, [{"name": "ping", **ping_references}])

        result = runner.invoke(app, ["validate", str(maven_project)])

        assert result.exit_code == 0
        assert "Plugin:" in result.stdout
        assert "ping" in result.stdout

    def test_json_output(self, maven_project, ping_references):
        write_descriptor(maven_project, [{"name": "ping", **ping_references}])

        result = runner.invoke(app, ["validate", str(maven_project), "--format", "json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["exit_code"] == 0
        assert [plugin["plugin"] for plugin in payload["plugins"]] == ["ping"]
        severities = {item["severity"] for item in payload["plugins"][0]["items"]}
        assert "ERROR" not in severities

    def test_errors_exit_one(self, maven_project, ping_references):
        write(maven_project / "target" / "classes" / "fhir" / "Task" / "task-ping.xml",
              task_xml(requester="evil.org"))
        write_descriptor(maven_project, [{"name": "ping", **ping_references}])

        result = runner.invoke(app, ["validate", str(maven_project), "-f", "json"])

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload["plugins"][0]["status"] == "ERROR"

    def test_descriptor_option(self, maven_project, ping_references, tmp_path):
        descriptor = write(tmp_path / "elsewhere" / "plugins.json",
                           json.dumps({"plugins": [{"name": "ping", **ping_references}]}))

        result = runner.invoke(app, ["validate", str(maven_project), "--plugins", str(descriptor)])
        assert result.exit_code == 0

    def test_missing_descriptor(self, maven_project):
        result = runner.invoke(app, ["validate", str(maven_project)])

        assert result.exit_code == 1
        assert "No plugin descriptor found" in result.stdout

    def test_invalid_descriptor(self, maven_project):
        write(maven_project / "dsf-plugins.json", "{not json")

        result = runner.invoke(app, ["validate", str(maven_project)])

        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_invalid_format(self, maven_project):
        result = runner.invoke(app, ["validate", str(maven_project), "--format", "xml"])

        assert result.exit_code == 1
        assert "Invalid format" in result.stdout

    def test_missing_project_directory(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "Project directory not found" in result.stdout

    def test_invalid_config(self, maven_project, ping_references):
        write_descriptor(maven_project, [{"name": "ping", **ping_references}])
        config = write(maven_project / ".dsflint.json", '{"unknown": true}')

        result = runner.invoke(app, ["validate", str(maven_project), "--config", str(config)])

        assert result.exit_code == 1
        assert "Failed to load config" in result.stdout
