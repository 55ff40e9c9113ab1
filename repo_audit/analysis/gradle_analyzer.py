"""
Gradle dependency extraction.

Prefers the JSON report of the Gradle License Report plugin
(``generateLicenseReport``). Projects without the plugin fall back to the
``runtimeClasspath`` dependency tree, which has no license information.
"""
import os
import re
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from repo_audit.analysis.command import run_command
from repo_audit.analysis.dependency_parser import DependencyParser, Ecosystem, safe_read_file
from repo_audit.analysis.license_expressions import split_spdx_expression, unique
from repo_audit.core.exceptions import CommandError, CommandFailedError
from repo_audit.core.models import Dependency, ExtractionResult, is_non_empty_string

logger = logging.getLogger(__name__)

LICENSE_REPORT_PATH = os.path.join("build", "reports", "dependency-license", "index.json")

# +--- org.apache.commons:commons-lang3:3.12.0
# |    \--- com.google.guava:guava:30.0-jre -> 31.1-jre (*)
# +--- org.slf4j:slf4j-api -> 1.7.36
TREE_LINE_PATTERN = re.compile(
    r"^[\s|]*[+\\]---\s+([^\s:]+):([^\s:]+)(?::([^\s:]+))?(?:\s+->\s+(\S+))?"
)

LICENSE_NAME_KEYS = ("name", "license", "moduleLicense")


def _license_names(entries: Any) -> List[str]:
    if not isinstance(entries, list):
        return []
    names = []
    for entry in entries:
        if isinstance(entry, str):
            names.append(entry)
        elif isinstance(entry, dict):
            for key in LICENSE_NAME_KEYS:
                if is_non_empty_string(entry.get(key)):
                    names.append(entry[key])
                    break
    return names


def parse_report_entry(entry: Any, policy=None) -> Optional[Dependency]:
    """
    Parse one dependency of the license report.

    Args:
        entry: Report entry (``moduleName`` or ``group``/``name``, ``version``
            or ``moduleVersion``, ``licenses`` or ``moduleLicenses``)
        policy: License policy used for normalization

    Returns:
        Dependency, or None if the entry lacks a name or version
    """
    if not isinstance(entry, dict):
        return None

    name = entry.get("moduleName")
    if not is_non_empty_string(name):
        group, artifact = entry.get("group"), entry.get("name")
        name = f"{group}:{artifact}" if is_non_empty_string(group) and is_non_empty_string(artifact) else None

    version = entry.get("version") or entry.get("moduleVersion")
    if not is_non_empty_string(name) or not is_non_empty_string(version):
        return None

    raw_licenses = _license_names(entry.get("licenses")) or _license_names(entry.get("moduleLicenses"))
    licenses: List[str] = []
    for raw in raw_licenses:
        licenses.extend(split_spdx_expression(raw, policy))

    return Dependency(name=name.strip(), version=version.strip(), licenses=tuple(unique(licenses)) or None)


def parse_license_report(content: str, policy=None, log: Optional[logging.Logger] = None) -> List[Dependency]:
    log = log or logger
    if not is_non_empty_string(content):
        return []

    try:
        report = json.loads(content)
    except json.JSONDecodeError as e:
        log.warning(f"Failed to parse Gradle license report: {str(e)}")
        return []

    entries = report.get("dependencies") if isinstance(report, dict) else None
    if not isinstance(entries, list):
        return []

    dependencies = []
    for entry in entries:
        dependency = parse_report_entry(entry, policy)
        if dependency and dependency.is_valid():
            dependencies.append(dependency)
    return dependencies


def parse_dependency_tree(output: str) -> List[Dependency]:
    """
    Parse ``gradle dependencies`` tree output.

    Conflict-resolved versions (``1.0 -> 1.1``) win over requested ones.
    Repeated subtrees are reported once.

    Args:
        output: Command output

    Returns:
        Dependencies without license information
    """
    if not is_non_empty_string(output):
        return []

    found: Dict[Tuple[str, str], Dependency] = {}
    for line in output.splitlines():
        if line.rstrip().endswith("(n)"):
            # Not resolved
            continue
        match = TREE_LINE_PATTERN.match(line)
        if not match:
            continue
        group, artifact, requested, resolved = match.groups()
        version = resolved or requested
        if not version:
            continue
        dependency = Dependency(name=f"{group}:{artifact}", version=version)
        if dependency.is_valid():
            found.setdefault(dependency.key, dependency)
    return list(found.values())


class GradleDependencyParser(DependencyParser):
    """Parser for Gradle project dependencies."""

    ecosystem = Ecosystem.GRADLE
    source = "gradle-parser"
    build_files = ["build.gradle", "build.gradle.kts"]

    def gradle_executable(self, project_path: str) -> str:
        wrapper = os.path.join(project_path, "gradlew")
        if os.path.isfile(wrapper):
            return wrapper
        return "gradle"

    async def extract(self, project_path: str) -> ExtractionResult:
        result = ExtractionResult()
        validated_path = self._validated_path(project_path, result)
        if not validated_path:
            return result

        try:
            await self._run(validated_path, ["generateLicenseReport"])
        except CommandFailedError as e:
            # Usually the license report plugin is not applied
            self.logger.warning(f"Gradle generateLicenseReport failed: {e.message}")
        except CommandError as e:
            message = self.describe_command_error("Gradle", e)
            self.logger.error(message)
            result.errors.append(self.error(message, e))
            return result

        content = safe_read_file(os.path.join(validated_path, LICENSE_REPORT_PATH), self.logger)
        if content:
            result.dependencies = parse_license_report(content, self.policy, self.logger)
            self.logger.info(f"Parsed {len(result.dependencies)} Gradle dependencies from {LICENSE_REPORT_PATH}")
            return result

        result.warnings.append(self.error(
            "Gradle license plugin did not generate license report, falling back to dependencies task. "
            "Dependencies are listed without license information."
        ))

        try:
            output = await self._run(validated_path, ["dependencies", "--configuration", "runtimeClasspath"])
        except CommandError as e:
            message = self.describe_command_error("Gradle", e)
            self.logger.error(message)
            result.errors.append(self.error(message, e))
            return result

        result.dependencies = parse_dependency_tree(output.stdout)
        self.logger.info(f"Parsed {len(result.dependencies)} Gradle dependencies from the dependency tree")
        return result

    async def _run(self, project_path: str, arguments: List[str]):
        return await run_command(
            [self.gradle_executable(project_path)] + arguments,
            cwd=project_path,
            timeout=self.settings.GRADLE_COMMAND_TIMEOUT,
            max_output_bytes=self.settings.MAX_OUTPUT_BYTES,
            log=self.logger,
        )
