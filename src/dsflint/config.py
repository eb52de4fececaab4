"""Configuration management for dsflint using Pydantic models."""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_FILE_NAME = ".dsflint.json"


class LogLevel(str, Enum):
    """Logging levels."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class ResolutionConfig(BaseModel):
    """Resource resolution configuration section."""
    marker_prefixes: list[str] = Field(alias="markerPrefixes", default_factory=lambda: ["classpath:"])
    source_prefixes: list[str] = Field(alias="sourcePrefixes", default_factory=lambda: [
        "src/main/resources/"
    ])
    extra_subpaths: list[str] = Field(alias="extraSubpaths", default_factory=lambda: ["bpe", "fhir"])
    dependency_dirs: list[str] = Field(alias="dependencyDirs", default_factory=lambda: [
        "target/dependency",
        "target/dependencies"
    ])
    archive_suffixes: list[str] = Field(alias="archiveSuffixes", default_factory=lambda: [".jar", ".zip"])

    @field_validator("archive_suffixes")
    @classmethod
    def validate_archive_suffixes(cls, v):
        for suffix in v:
            if not suffix.startswith("."):
                raise ValueError(f"archive suffix must start with '.', got: {suffix}")
        return [suffix.lower() for suffix in v]

    model_config = ConfigDict(populate_by_name=True)


class LayoutConfig(BaseModel):
    """Plugin resource tree layout section."""
    workflow_dir: str = Field(alias="workflowDir", default="bpe")
    resource_dir: str = Field(alias="resourceDir", default="fhir")
    workflow_suffixes: list[str] = Field(alias="workflowSuffixes", default_factory=lambda: [".bpmn"])
    resource_suffixes: list[str] = Field(alias="resourceSuffixes", default_factory=lambda: [".xml", ".json"])

    @field_validator("workflow_dir", "resource_dir")
    @classmethod
    def validate_subtree(cls, v):
        v = v.strip().strip("/")
        if not v:
            raise ValueError("layout directories must not be empty")
        return v

    model_config = ConfigDict(populate_by_name=True)


class CardinalityRule(BaseModel):
    """A repeating element whose slices are counted against its profile."""
    resource_type: str = Field(alias="resourceType", default="Task")
    element: str = "input"
    discriminator: str = "type.coding.code"

    @property
    def element_path(self) -> str:
        """Element id of the repeating collection, e.g. ``Task.input``."""
        return f"{self.resource_type}.{self.element}"

    model_config = ConfigDict(populate_by_name=True)


class ValidationConfig(BaseModel):
    """Validation configuration section."""
    placeholder_tokens: list[str] = Field(alias="placeholderTokens", default_factory=lambda: [
        "#{organization}"
    ])
    cardinality_rules: list[CardinalityRule] = Field(alias="cardinalityRules", default_factory=lambda: [
        CardinalityRule()
    ])
    check_duplicate_slices: bool = Field(alias="checkDuplicateSlices", default=True)
    check_profile_consistency: bool = Field(alias="checkProfileConsistency", default=True)
    check_message_inputs: bool = Field(alias="checkMessageInputs", default=True)

    model_config = ConfigDict(populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: LogLevel = LogLevel.WARN

    model_config = ConfigDict(use_enum_values=True)


class DsflintConfig(BaseModel):
    """Complete dsflint configuration model."""
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")


def load_config(config_path: str | Path | None = None) -> DsflintConfig:
    """Load configuration from file with fallback to defaults.

    Args:
        config_path: Optional path to configuration file. If None, searches
                    current directory and parents for .dsflint.json

    Returns:
        DsflintConfig: Loaded and validated configuration

    Raises:
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = find_config_file()
    else:
        config_path = Path(config_path)

    if config_path and config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = json.load(f)
            return DsflintConfig(**config_data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_path}: {e}")
        except Exception as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")

    return create_default_config()


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find .dsflint.json configuration file by searching up directory tree.

    Args:
        start_dir: Directory to start search from (default: current directory)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = Path(start_dir).resolve()

    while True:
        config_file = current / CONFIG_FILE_NAME
        if config_file.exists():
            return config_file

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def create_default_config() -> DsflintConfig:
    """Create the zero-config defaults for a Maven or Gradle plugin project."""
    return DsflintConfig()
