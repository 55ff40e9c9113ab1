"""
Maven dependency extraction.

Runs the license-maven-plugin to produce ``target/licenses/THIRD-PARTY.txt``
and parses it. Dual licenses come out of the plugin pipe-separated
(``Apache-2.0|MIT``) and artifacts with several licenses carry several
leading parenthesized groups; both are flattened into one license list.

Building an untrusted repository executes its plugins with the permissions
of this process. Run the tool in an isolated environment.
"""
import os
import re
import logging
import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

from repo_audit.analysis.command import run_command
from repo_audit.analysis.dependency_parser import DependencyParser, Ecosystem, safe_read_file
from repo_audit.analysis.license_expressions import split_pipe_licenses, unique
from repo_audit.core.exceptions import CommandError, CommandTimeoutError, OutputLimitExceededError
from repo_audit.core.models import Dependency, ExtractionResult, is_non_empty_string
from repo_audit.services.license_policy import get_license_policy

logger = logging.getLogger(__name__)

THIRD_PARTY_PATH = os.path.join("target", "licenses", "THIRD-PARTY.txt")

LICENSE_PLUGIN_OPTIONS = [
    "-Dlicense.outputDirectory=target/licenses",
    "-Dlicense.includeTransitiveDependencies=true",
]

# [INFO]    org.apache.commons:commons-lang3:jar:3.12.0:compile
DEPENDENCY_LIST_PATTERN = re.compile(r"\[INFO\]\s+(.+?):(.+?):(.+?):(.+?):(.+)")

# (groupId:artifactId:version - URL) at the end of a THIRD-PARTY.txt line
COORDINATES_PATTERN = re.compile(r"\(([^()]+)\)\s*$")

# Abbreviation inside a license name, e.g. the "(CDDL)" in
# "Common Development and Distribution License (CDDL) v1.1"
ABBREVIATION_PATTERN = re.compile(r"\s*\([^()]*\)")

VALID_PACKAGING_TYPES = {"pom", "jar", "war", "ear", "maven-plugin", "ejb", "rar", "bundle"}
DEFAULT_PACKAGING = "jar"


def get_maven_packaging(project_path: str, log: Optional[logging.Logger] = None) -> str:
    """
    Determine the packaging type declared in pom.xml.

    Args:
        project_path: Path to the Maven project

    Returns:
        Packaging type, or "jar" when absent, unknown or unparseable
    """
    log = log or logger
    pom_path = os.path.join(project_path, "pom.xml")
    if not os.path.isfile(pom_path):
        log.warning("pom.xml not found, defaulting to jar packaging")
        return DEFAULT_PACKAGING

    try:
        root = ET.parse(pom_path).getroot()
    except (ET.ParseError, OSError) as e:
        log.warning(f"Failed to parse pom.xml packaging, defaulting to jar: {str(e)}")
        return DEFAULT_PACKAGING

    # Tags carry the POM namespace, e.g. {http://maven.apache.org/POM/4.0.0}packaging
    namespace = ""
    if root.tag.startswith("{"):
        namespace = root.tag[: root.tag.index("}") + 1]

    element = root.find(f"{namespace}packaging")
    packaging = element.text.strip() if element is not None and element.text else ""

    if not packaging:
        log.info("No packaging specified in pom.xml, defaulting to jar")
        return DEFAULT_PACKAGING
    if packaging not in VALID_PACKAGING_TYPES:
        log.warning(f"Unknown Maven packaging type: {packaging}, defaulting to jar")
        return DEFAULT_PACKAGING

    log.info(f"Detected Maven packaging type: {packaging}")
    return packaging


def license_goal_for(packaging: str) -> str:
    """Parent POMs aggregate their modules' third-party reports."""
    if packaging == "pom":
        return "license:aggregate-add-third-party"
    return "license:add-third-party"


def parse_coordinates(coordinates: str) -> Optional[Tuple[str, str, str]]:
    """
    Parse Maven coordinates (groupId:artifactId:version).

    Returns:
        (groupId, artifactId, version), or None if invalid
    """
    if not is_non_empty_string(coordinates):
        return None
    parts = [p.strip() for p in coordinates.strip().split(":")]
    if len(parts) < 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[-1]


def normalize_report_license(license_name: str, policy=None) -> str:
    """
    Normalize a license name taken from THIRD-PARTY.txt.

    Names the policy does not know are retried without their inner
    abbreviations, so "GNU General Public License (GPL), version 2" is looked
    up as "GNU General Public License, version 2".
    """
    policy = policy or get_license_policy()
    canonical = policy.normalize(license_name)
    if "(" not in canonical:
        return canonical

    cleaned = " ".join(ABBREVIATION_PATTERN.sub("", canonical).split())
    return policy.normalize(cleaned) if cleaned else canonical


def _leading_groups(text: str) -> List[str]:
    """Contents of the parenthesized groups at the start of ``text``, nesting aware."""
    groups = []
    pos = 0
    length = len(text)
    while True:
        while pos < length and text[pos].isspace():
            pos += 1
        if pos >= length or text[pos] != "(":
            return groups

        depth = 0
        start = pos + 1
        while pos < length:
            if text[pos] == "(":
                depth += 1
            elif text[pos] == ")":
                depth -= 1
                if depth == 0:
                    break
            pos += 1
        if depth != 0:
            # Unbalanced group
            return groups
        groups.append(text[start:pos])
        pos += 1


def parse_third_party_line(line: str, policy=None) -> Optional[Dependency]:
    """
    Parse a single THIRD-PARTY.txt line.

    Format: ``(License A) (License B) Artifact Name (groupId:artifactId:version - URL)``

    Args:
        line: Line to parse
        policy: License policy used for normalization

    Returns:
        Dependency, or None for headers and unparseable lines
    """
    stripped = line.strip()
    if not stripped.startswith("("):
        return None

    match = COORDINATES_PATTERN.search(stripped)
    if not match:
        return None

    coordinates = parse_coordinates(match.group(1).split(" - ")[0])
    if not coordinates:
        return None
    group_id, artifact_id, version = coordinates

    licenses: List[str] = []
    for group in _leading_groups(stripped[: match.start()]):
        licenses.extend(
            normalize_report_license(name, policy) for name in split_pipe_licenses(group, policy)
        )

    if not licenses:
        return None

    return Dependency(name=f"{group_id}:{artifact_id}", version=version, licenses=tuple(unique(licenses)))


def parse_third_party_file(content: str, policy=None) -> List[Dependency]:
    if not is_non_empty_string(content):
        return []

    dependencies = []
    for line in content.splitlines():
        dependency = parse_third_party_line(line, policy)
        if dependency and dependency.is_valid():
            dependencies.append(dependency)
    return dependencies


def parse_dependency_list(output: str) -> List[Dependency]:
    """
    Parse ``mvn dependency:list`` output.

    Args:
        output: Command output

    Returns:
        Dependencies without license information
    """
    if not is_non_empty_string(output):
        return []

    dependencies = []
    for line in output.splitlines():
        match = DEPENDENCY_LIST_PATTERN.search(line)
        if not match:
            continue
        group_id, artifact_id, _type, version = (g.strip() for g in match.groups()[:4])
        if not group_id or not artifact_id or not version or " " in group_id:
            continue
        dependency = Dependency(name=f"{group_id}:{artifact_id}", version=version)
        if dependency.is_valid():
            dependencies.append(dependency)
    return dependencies


class MavenDependencyParser(DependencyParser):
    """Parser for Maven project dependencies."""

    ecosystem = Ecosystem.MAVEN
    source = "maven-parser"
    build_files = ["pom.xml"]

    async def extract(self, project_path: str) -> ExtractionResult:
        result = ExtractionResult()
        validated_path = self._validated_path(project_path, result)
        if not validated_path:
            return result

        packaging = get_maven_packaging(validated_path, self.logger)
        goal = license_goal_for(packaging)
        self.logger.info(f"Using Maven goal: {goal} (packaging: {packaging})")

        try:
            output = await self._run(validated_path, [goal] + LICENSE_PLUGIN_OPTIONS)
        except CommandError as e:
            message = self.describe_command_error("Maven", e)
            self.logger.error(message)
            result.errors.append(self.error(message, e))
            return result

        self.logger.debug(f"Maven license plugin output: {output.stdout}")

        report_path = os.path.join(validated_path, THIRD_PARTY_PATH)
        content = safe_read_file(report_path, self.logger)
        if content:
            result.dependencies = parse_third_party_file(content, self.policy)
            self.logger.info(f"Parsed {len(result.dependencies)} Maven dependencies from {THIRD_PARTY_PATH}")
            return result

        self.logger.warning(f"Maven license plugin did not generate {report_path}")
        await self._fallback_to_dependency_list(validated_path, result)
        return result

    async def _fallback_to_dependency_list(self, project_path: str, result: ExtractionResult) -> None:
        failure = ""
        try:
            output = await self._run(project_path, ["dependency:list"])
            dependencies = parse_dependency_list(output.stdout)
        except (CommandTimeoutError, OutputLimitExceededError) as e:
            # The dependency set is unknown, so an empty project must not be assumed
            message = self.describe_command_error("Maven", e)
            self.logger.error(message)
            result.errors.append(self.error(message, e))
            return
        except CommandError as e:
            self.logger.warning(f"mvn dependency:list fallback failed: {e.message}")
            dependencies = []
            failure = f" The dependency:list fallback also failed: {e.message}"

        if dependencies:
            result.dependencies = dependencies
            result.warnings.append(self.error(
                f"Using fallback: THIRD-PARTY.txt was not generated, so {len(dependencies)} dependencies "
                f"were listed with mvn dependency:list and carry no license information."
            ))
            return

        result.warnings.append(self.error(
            "Maven license plugin did not generate THIRD-PARTY.txt file. "
            "This typically means the project has no third-party dependencies. "
            f"Expected location: {THIRD_PARTY_PATH}.{failure}"
        ))

    async def _run(self, project_path: str, arguments: List[str]):
        return await run_command(
            ["mvn"] + arguments,
            cwd=project_path,
            timeout=self.settings.MAVEN_COMMAND_TIMEOUT,
            max_output_bytes=self.settings.MAX_OUTPUT_BYTES,
            log=self.logger,
        )
