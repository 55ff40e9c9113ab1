import os
import re
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Type

from repo_audit.core.config import Settings, get_settings
from repo_audit.core.exceptions import (
    CommandError,
    CommandFailedError,
    CommandTimeoutError,
    OutputLimitExceededError,
)
from repo_audit.core.models import (
    Dependency,
    ExtractionError,
    ExtractionResult,
    is_non_empty_string,
)
from repo_audit.services.license_policy import LicensePolicy, get_license_policy

logger = logging.getLogger(__name__)

VERSION_RANGE_PREFIX = re.compile(r"^(?:\^|~|>=|<=|>|<|==|=|v(?=\d))+")

# Characters of command output quoted back in error messages
OUTPUT_EXCERPT_LENGTH = 200


class Ecosystem(str, Enum):
    MAVEN = "maven"
    GRADLE = "gradle"
    NPM = "npm"


def validate_repo_path(repo_path: str, log: Optional[logging.Logger] = None) -> Optional[str]:
    """
    Validate a repository path before running build commands in it.

    Resolves the path to an absolute, symlink-free form and checks that it is
    an existing directory.

    Args:
        repo_path: Path to validate
        log: Logger to report problems to

    Returns:
        Validated absolute path, or None if invalid
    """
    log = log or logger
    if not is_non_empty_string(repo_path):
        log.warning("Repository path is empty or invalid")
        return None

    try:
        absolute_path = os.path.realpath(os.path.abspath(repo_path))
        if not os.path.exists(absolute_path):
            log.warning(f"Repository path does not exist: {absolute_path}")
            return None
        if not os.path.isdir(absolute_path):
            log.warning(f"Repository path is not a directory: {absolute_path}")
            return None
        return absolute_path
    except (OSError, ValueError) as e:
        log.warning(f"Failed to validate repository path {repo_path}: {str(e)}")
        return None


def safe_read_file(file_path: str, log: Optional[logging.Logger] = None) -> Optional[str]:
    """Read a text file, returning None if it is absent or unreadable."""
    log = log or logger
    try:
        if not os.path.isfile(file_path):
            return None
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        log.warning(f"Failed to read file {file_path}: {str(e)}")
        return None


def strip_version_range(version_spec: str) -> str:
    """
    Strip range operators from a version specifier.

    Args:
        version_spec: Version string (e.g., "^1.2.3", "~2.0.0", ">=3.0.0")

    Returns:
        Bare version string
    """
    if not isinstance(version_spec, str):
        return ""
    return VERSION_RANGE_PREFIX.sub("", version_spec.strip()).strip()


class DependencyParser(ABC):
    """
    Base class for build ecosystem dependency parsers.

    Parsers return licenses already split into atomic, normalized names.
    They never raise: failures are reported as errors (the ecosystem's
    contribution is lost) or warnings (a degraded fallback was used).
    """

    ecosystem: Ecosystem
    source: str = "generic-parser"
    build_files: List[str] = []

    def __init__(
        self,
        settings: Optional[Settings] = None,
        policy: Optional[LicensePolicy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or get_settings()
        self.policy = policy or get_license_policy()
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    def detect(self, project_path: str) -> bool:
        """
        Check for the ecosystem's marker files.

        Args:
            project_path: Path to the project root

        Returns:
            True if any build file of this ecosystem exists
        """
        if not is_non_empty_string(project_path):
            return False
        return any(os.path.exists(os.path.join(project_path, f)) for f in self.build_files)

    @abstractmethod
    async def extract(self, project_path: str) -> ExtractionResult:
        """
        Extract dependencies with license information from a project.

        Args:
            project_path: Path to the project root

        Returns:
            Extraction result with dependencies, errors and warnings
        """
        pass

    def _validated_path(self, project_path: str, result: ExtractionResult) -> Optional[str]:
        validated = validate_repo_path(project_path, self.logger)
        if not validated:
            result.errors.append(self.error(
                f"Invalid repository path: {project_path}",
                ValueError("Path validation failed"),
            ))
        return validated

    def error(self, message: str, error: Optional[BaseException] = None) -> ExtractionError:
        return ExtractionError(source=self.source, message=message, error=error)

    def valid_dependencies(self, dependencies: List[Dependency]) -> List[Dependency]:
        return [d for d in dependencies if d.is_valid()]

    def describe_command_error(self, tool: str, error: CommandError) -> str:
        """
        Build the error message for a failed build tool command.

        Timeouts and buffer overflows get their own explanations; other
        failures quote the beginning of the tool's stderr (or stdout).
        """
        if isinstance(error, OutputLimitExceededError):
            size_mb = error.limit / (1024 * 1024)
            return (
                f"{tool} build output exceeded buffer size ({size_mb:g}MB). This indicates a very "
                f"large dependency tree or highly verbose build output. The build may have completed, "
                f"but its output could not be captured."
            )

        if isinstance(error, CommandTimeoutError):
            minutes = error.timeout / 60
            return (
                f"{tool} build timed out after {minutes:g} minutes. This usually indicates a large "
                f"project, slow dependency downloads or repository connectivity issues."
            )

        message = f"Failed to extract {tool} dependencies: {error.message}"
        if isinstance(error, CommandFailedError):
            if error.stderr:
                message += f"\n{tool} stderr: {error.stderr[:OUTPUT_EXCERPT_LENGTH]}"
            elif error.stdout:
                message += f"\n{tool} output: {error.stdout[:OUTPUT_EXCERPT_LENGTH]}"
        return message


class DependencyParserFactory:
    """Factory for creating dependency parsers based on ecosystem."""

    @staticmethod
    def parser_classes() -> Dict[Ecosystem, Type[DependencyParser]]:
        from repo_audit.analysis.maven_analyzer import MavenDependencyParser
        from repo_audit.analysis.gradle_analyzer import GradleDependencyParser
        from repo_audit.analysis.nodejs_analyzer import NpmDependencyParser

        return {
            Ecosystem.MAVEN: MavenDependencyParser,
            Ecosystem.GRADLE: GradleDependencyParser,
            Ecosystem.NPM: NpmDependencyParser,
        }

    @staticmethod
    def create_parser(ecosystem: str, **kwargs) -> DependencyParser:
        """
        Create a dependency parser for the specified ecosystem.

        Args:
            ecosystem: Ecosystem identifier (e.g., "maven", "npm")

        Returns:
            Dependency parser instance

        Raises:
            ValueError: If the ecosystem is not supported
        """
        try:
            key = Ecosystem(ecosystem.lower())
        except ValueError:
            raise ValueError(f"Unsupported ecosystem: {ecosystem}")
        return DependencyParserFactory.parser_classes()[key](**kwargs)

    @staticmethod
    def create_all(**kwargs) -> List[DependencyParser]:
        return [cls(**kwargs) for cls in DependencyParserFactory.parser_classes().values()]
