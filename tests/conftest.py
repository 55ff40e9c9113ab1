import os
import sys
import logging
import tempfile
import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from repo_audit.core.config import Settings
from repo_audit.services.license_policy import LicensePolicy


@pytest.fixture(scope="session")
def policy():
    """Bundled license policy"""
    return LicensePolicy.from_directory()


@pytest.fixture
def test_settings():
    """Settings with short limits and registry lookups disabled"""
    return Settings(
        MAVEN_COMMAND_TIMEOUT=5,
        GRADLE_COMMAND_TIMEOUT=5,
        NPM_INSTALL_TIMEOUT=5,
        NPM_LICENSE_CHECK_TIMEOUT=5,
        NPM_REGISTRY_URL="https://registry.test",
        NPM_REGISTRY_LOOKUP=False,
        NPM_REGISTRY_CONCURRENCY=2,
    )


@pytest.fixture
def quiet_logger():
    """Logger that swallows output"""
    logger = logging.getLogger("repo-audit-tests")
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


@pytest.fixture
def repo_dir():
    """Empty temporary repository"""
    with tempfile.TemporaryDirectory() as tempdir:
        yield tempdir


def write_file(root: str, relative_path: str, content: str) -> str:
    """Create a file (and its parent directories) inside a test repository."""
    path = os.path.join(root, relative_path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path
