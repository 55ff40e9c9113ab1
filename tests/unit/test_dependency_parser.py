import os
import pytest

from repo_audit.analysis.dependency_parser import (
    DependencyParserFactory,
    safe_read_file,
    strip_version_range,
    validate_repo_path,
)
from repo_audit.analysis.gradle_analyzer import GradleDependencyParser
from repo_audit.analysis.maven_analyzer import MavenDependencyParser
from repo_audit.analysis.nodejs_analyzer import NpmDependencyParser
from repo_audit.core.exceptions import (
    CommandFailedError,
    CommandTimeoutError,
    OutputLimitExceededError,
)

from tests.conftest import write_file


def test_validate_repo_path(repo_dir, quiet_logger):
    """Test path validation before running build tools."""
    assert validate_repo_path(repo_dir, quiet_logger) == os.path.realpath(repo_dir)
    assert validate_repo_path("", quiet_logger) is None
    assert validate_repo_path(None, quiet_logger) is None
    assert validate_repo_path("/nonexistent/repository", quiet_logger) is None

    file_path = write_file(repo_dir, "pom.xml", "<project/>")
    assert validate_repo_path(file_path, quiet_logger) is None


def test_safe_read_file(repo_dir, quiet_logger):
    """Test reading optional report files."""
    path = write_file(repo_dir, "report.txt", "content")

    assert safe_read_file(path, quiet_logger) == "content"
    assert safe_read_file(os.path.join(repo_dir, "missing.txt"), quiet_logger) is None
    assert safe_read_file(repo_dir, quiet_logger) is None


def test_strip_version_range():
    """Test stripping npm range operators."""
    assert strip_version_range("^1.2.3") == "1.2.3"
    assert strip_version_range("~2.0.0") == "2.0.0"
    assert strip_version_range(">=3.0.0") == "3.0.0"
    assert strip_version_range("v4.1.0") == "4.1.0"
    assert strip_version_range("1.0.0") == "1.0.0"
    assert strip_version_range("latest") == "latest"
    assert strip_version_range(None) == ""


def test_describe_command_error(test_settings, policy, quiet_logger):
    """Test the messages for the different command failures."""
    parser = MavenDependencyParser(settings=test_settings, policy=policy, logger=quiet_logger)

    timeout = parser.describe_command_error("Maven", CommandTimeoutError(["mvn"], 90))
    assert timeout.startswith("Maven build timed out after 1.5 minutes.")

    overflow = parser.describe_command_error("npm", OutputLimitExceededError(["yarn"], 10 * 1024 * 1024))
    assert overflow.startswith("npm build output exceeded buffer size (10MB).")

    failed = parser.describe_command_error(
        "Gradle", CommandFailedError(["gradle"], 1, stdout="x" * 500)
    )
    assert failed == (
        "Failed to extract Gradle dependencies: Command 'gradle' exited with status 1\n"
        f"Gradle output: {'x' * 200}"
    )


def test_dependency_parser_factory(test_settings, policy, quiet_logger):
    """Test DependencyParserFactory creates correct parsers."""
    kwargs = {"settings": test_settings, "policy": policy, "logger": quiet_logger}

    assert isinstance(DependencyParserFactory.create_parser("maven", **kwargs), MavenDependencyParser)
    assert isinstance(DependencyParserFactory.create_parser("Gradle", **kwargs), GradleDependencyParser)
    assert isinstance(DependencyParserFactory.create_parser("npm", **kwargs), NpmDependencyParser)
    assert [p.source for p in DependencyParserFactory.create_all(**kwargs)] == [
        "maven-parser", "gradle-parser", "npm-parser",
    ]

    with pytest.raises(ValueError, match="Unsupported ecosystem: cargo"):
        DependencyParserFactory.create_parser("cargo", **kwargs)
