"""
npm dependency extraction.

The full path installs production dependencies without lifecycle scripts
and reads licenses of the whole tree with license-checker. When that fails,
direct dependencies are read from package.json and, if enabled, their
licenses are looked up in the npm registry. Transitive dependencies are not
available on the fallback path.
"""
import os
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from repo_audit.analysis.command import run_command
from repo_audit.analysis.dependency_parser import (
    DependencyParser,
    Ecosystem,
    safe_read_file,
    strip_version_range,
)
from repo_audit.analysis.license_expressions import split_spdx_expression, unique
from repo_audit.analysis.npm_registry import RegistryLicenseResolver
from repo_audit.core.exceptions import (
    CommandError,
    CommandTimeoutError,
    OutputLimitExceededError,
)
from repo_audit.core.models import Dependency, ExtractionResult, is_non_empty_string

logger = logging.getLogger(__name__)


class LicenseCheckerOutputError(ValueError):
    """license-checker printed something other than a JSON object."""


def split_package_key(package_key: str) -> Optional[Tuple[str, str]]:
    """
    Split a license-checker key into name and version.

    Args:
        package_key: "name@version" or "@scope/name@version"

    Returns:
        (name, version), or None if the key has no version
    """
    if not is_non_empty_string(package_key):
        return None
    name, separator, version = package_key.strip().rpartition("@")
    if not separator or not is_non_empty_string(name) or name == "@" or not is_non_empty_string(version):
        return None
    return name.strip(), version.strip()


def parse_license_checker_output(
    output: str,
    policy=None,
    exclude: Optional[str] = None,
) -> List[Dependency]:
    """
    Parse license-checker ``--json`` output.

    Args:
        output: JSON object keyed by "name@version"
        policy: License policy used for normalization
        exclude: "name@version" key of the project itself

    Returns:
        Dependencies with SPDX-split licenses

    Raises:
        LicenseCheckerOutputError: If the output is not a JSON object
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise LicenseCheckerOutputError(f"license-checker output is not valid JSON: {str(e)}")
    if not isinstance(data, dict):
        raise LicenseCheckerOutputError("license-checker output is not a JSON object")

    dependencies = []
    for package_key, info in data.items():
        if exclude and package_key == exclude:
            continue
        parsed = split_package_key(package_key)
        if not parsed:
            continue
        name, version = parsed

        raw = info.get("licenses") if isinstance(info, dict) else None
        if isinstance(raw, str):
            raw = [raw]
        licenses: List[str] = []
        if isinstance(raw, list):
            for expression in raw:
                licenses.extend(split_spdx_expression(str(expression), policy))

        dependency = Dependency(name=name, version=version, licenses=tuple(unique(licenses)) or None)
        if dependency.is_valid():
            dependencies.append(dependency)
    return dependencies


def read_package_json(project_path: str, log: Optional[logging.Logger] = None) -> Optional[Dict[str, Any]]:
    log = log or logger
    content = safe_read_file(os.path.join(project_path, "package.json"), log)
    if content is None:
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        log.error(f"Failed to parse package.json: {str(e)}")
        return None
    return data if isinstance(data, dict) else None


def direct_dependency_specs(package_json: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """Production dependencies of package.json as (name, version spec) pairs."""
    if not package_json:
        return []
    section = package_json.get("dependencies")
    if not isinstance(section, dict):
        return []
    return [
        (name.strip(), str(spec).strip())
        for name, spec in section.items()
        if is_non_empty_string(name) and is_non_empty_string(str(spec))
    ]


class NpmDependencyParser(DependencyParser):
    """Parser for npm project dependencies."""

    ecosystem = Ecosystem.NPM
    source = "npm-parser"
    build_files = ["package.json"]

    def __init__(self, registry_resolver: Optional[RegistryLicenseResolver] = None, **kwargs):
        super().__init__(**kwargs)
        self._registry_resolver = registry_resolver

    @property
    def registry_resolver(self) -> RegistryLicenseResolver:
        if self._registry_resolver is None:
            self._registry_resolver = RegistryLicenseResolver(settings=self.settings, logger=self.logger)
        return self._registry_resolver

    async def extract(self, project_path: str) -> ExtractionResult:
        result = ExtractionResult()
        validated_path = self._validated_path(project_path, result)
        if not validated_path:
            return result

        package_json = read_package_json(validated_path, self.logger)

        try:
            result.dependencies = await self._extract_with_license_checker(validated_path, package_json)
            self.logger.info(f"Extracted {len(result.dependencies)} npm dependencies with license-checker")
            return result
        except (CommandError, LicenseCheckerOutputError) as e:
            cause = e
            failure = e.message if isinstance(e, CommandError) else str(e)
            self.logger.error(f"Failed to extract npm dependencies via license-checker: {failure}")
            if isinstance(e, (CommandTimeoutError, OutputLimitExceededError)):
                result.errors.append(self.error(self.describe_command_error("npm", e), e))
            result.warnings.append(self.error(
                f"License-checker approach failed, attempting fallback to package.json: {failure}", e
            ))

        dependencies = await self._extract_from_package_json(package_json)
        if not dependencies:
            result.errors.append(self.error(f"Failed to extract npm dependencies: {failure}", cause))
            return result

        self.logger.info(f"Extracted {len(dependencies)} direct dependencies from package.json")
        result.dependencies = dependencies
        result.warnings.append(self.error(
            f"Using fallback: extracted {len(dependencies)} direct dependencies from package.json, "
            "transitive dependencies unavailable. License compliance will require manual review.",
            RuntimeError("Partial extraction - transitive dependencies unavailable"),
        ))
        return result

    def ensure_npmrc(self, project_path: str) -> None:
        """Point configured npm scopes at their registries unless the project has its own .npmrc."""
        npmrc_path = os.path.join(project_path, ".npmrc")
        if os.path.exists(npmrc_path) or not self.settings.NPM_SCOPED_REGISTRY:
            return

        lines = [f"{scope}:registry={url}" for scope, url in self.settings.NPM_SCOPED_REGISTRY.items()]
        try:
            with open(npmrc_path, "w", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
            self.logger.info(f"Created {npmrc_path} with scoped registry configuration")
        except OSError as e:
            self.logger.warning(f"Could not write {npmrc_path}: {str(e)}")

    async def _extract_with_license_checker(
        self,
        project_path: str,
        package_json: Optional[Dict[str, Any]],
    ) -> List[Dependency]:
        self.ensure_npmrc(project_path)

        self.logger.info(f"Running {' '.join(self.settings.NPM_INSTALL_COMMAND)}")
        await run_command(
            list(self.settings.NPM_INSTALL_COMMAND),
            cwd=project_path,
            timeout=self.settings.NPM_INSTALL_TIMEOUT,
            max_output_bytes=self.settings.MAX_OUTPUT_BYTES,
            log=self.logger,
        )

        self.logger.info(f"Running {' '.join(self.settings.NPM_LICENSE_CHECK_COMMAND)}")
        output = await run_command(
            list(self.settings.NPM_LICENSE_CHECK_COMMAND),
            cwd=project_path,
            timeout=self.settings.NPM_LICENSE_CHECK_TIMEOUT,
            max_output_bytes=self.settings.MAX_OUTPUT_BYTES,
            log=self.logger,
        )

        project_key = None
        if package_json and is_non_empty_string(package_json.get("name")) and is_non_empty_string(package_json.get("version")):
            project_key = f"{package_json['name']}@{package_json['version']}"

        return parse_license_checker_output(output.stdout, self.policy, exclude=project_key)

    async def _extract_from_package_json(self, package_json: Optional[Dict[str, Any]]) -> List[Dependency]:
        specs = direct_dependency_specs(package_json)
        if not specs:
            return []

        expressions: List[Optional[str]] = [None] * len(specs)
        if self.settings.NPM_REGISTRY_LOOKUP:
            self.logger.info(f"Looking up licenses of {len(specs)} packages in {self.settings.NPM_REGISTRY_URL}")
            expressions = await self.registry_resolver.resolve_many(specs)

        dependencies = []
        for (name, spec), expression in zip(specs, expressions):
            licenses = unique(split_spdx_expression(expression, self.policy)) if expression else []
            dependency = Dependency(
                name=name,
                version=strip_version_range(spec) or spec,
                licenses=tuple(licenses) or None,
            )
            if dependency.is_valid():
                dependencies.append(dependency)
        return dependencies
