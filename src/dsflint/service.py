"""Orchestration of a validation run over all plugins of a project."""

import logging
from pathlib import Path

from .analysis.leftovers import LeftoverAnalysisResult, LeftoverResourceDetector
from .capability import CapabilityVerifier
from .config import DsflintConfig
from .models.plugin import PluginContext
from .resources.resolver import ResourceResolver
from .validation.framework import PluginRunContext, ValidationFramework, ValidationResult

logger = logging.getLogger(__name__)


class PluginValidationService:
    """Validates the plugins of a project one at a time, in discovery order.

    A fresh ``ResourceResolver`` is created for every run and released when the
    run ends, so materialized package files never outlive the run.
    """

    def __init__(self, config: DsflintConfig | None = None, verifier: CapabilityVerifier | None = None):
        self.config = config or DsflintConfig()
        self.verifier = verifier

    def create_framework(self) -> ValidationFramework:
        framework = ValidationFramework(self.config)
        framework.create_default_checks()
        return framework

    def validate_project(self, project_root: Path, plugins: list[PluginContext]) -> dict[str, ValidationResult]:
        """Run every check for every plugin.

        Args:
            project_root: Project directory containing the plugins
            plugins: Plugin contexts in discovery order

        Returns:
            Results keyed by plugin name, in discovery order

        Raises:
            FileNotFoundError: If the project root does not exist
        """
        project_root = Path(project_root).resolve()
        if not project_root.is_dir():
            raise FileNotFoundError(f"Project directory not found: {project_root}")

        plugins = sorted(plugins, key=lambda plugin: plugin.order)
        results: dict[str, ValidationResult] = {}

        with ResourceResolver(self.config) as resolver:
            for plugin in plugins:
                resolution = resolver.root_resolver.resolve(project_root, plugin.origin_hint)
                plugin.resource_root = resolution.resource_root
                logger.info(f"Plugin '{plugin.name}': resource root {resolution.resource_root} "
                            f"({resolution.strategy.value})")

            detector = LeftoverResourceDetector(self.config, [plugin.name for plugin in plugins])
            leftovers = self._analyze_leftovers(detector, resolver, project_root, plugins)

            framework = self.create_framework()
            single = len(plugins) == 1
            for index, plugin in enumerate(plugins):
                context = PluginRunContext(
                    plugin=plugin,
                    project_root=project_root,
                    resolver=resolver,
                    config=self.config,
                    leftovers=leftovers,
                    detector=detector,
                    verifier=self.verifier,
                    is_last_plugin=index == len(plugins) - 1,
                    is_single_plugin_project=single,
                )
                results[plugin.name] = framework.validate(context)

            logger.debug(f"Resolver cache at end of run: {resolver.cache_stats()}")

        return results

    def _analyze_leftovers(self, detector: LeftoverResourceDetector, resolver: ResourceResolver,
                           project_root: Path, plugins: list[PluginContext]) -> LeftoverAnalysisResult | None:
        if not plugins:
            return None

        workflows: list[str] = []
        resources: list[str] = []
        for plugin in plugins:
            workflows.extend(plugin.workflow_paths())
            resources.extend(plugin.resource_paths())

        # Plugins with differing roots share the project's resource tree
        roots = {plugin.resource_root for plugin in plugins if plugin.resource_root is not None}
        resource_root = roots.pop() if len(roots) == 1 else resolver.resource_root(project_root)
        return detector.analyze(project_root, resource_root, workflows, resources)


def overall_exit_code(results: dict[str, ValidationResult]) -> int:
    return max((result.exit_code for result in results.values()), default=0)
