from typing import Dict, List, Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application settings
    APP_NAME: str = "Repository Audit"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # License policy data files (defaults to the bundled policy)
    POLICY_DIR: Optional[str] = None

    # Build tool execution limits
    MAVEN_COMMAND_TIMEOUT: int = 300  # seconds
    GRADLE_COMMAND_TIMEOUT: int = 60  # seconds
    NPM_INSTALL_TIMEOUT: int = 120  # seconds
    NPM_LICENSE_CHECK_TIMEOUT: int = 60  # seconds
    MAX_OUTPUT_BYTES: int = 50 * 1024 * 1024  # 50MB of stdout/stderr per command

    # npm extraction
    NPM_INSTALL_COMMAND: List[str] = ["yarn", "install", "--production", "--ignore-scripts"]
    NPM_LICENSE_CHECK_COMMAND: List[str] = ["license-checker-rseidelsohn", "--json", "--production"]
    NPM_SCOPED_REGISTRY: Dict[str, str] = {
        "@folio": "https://repository.folio.org/repository/npm-folio"
    }

    # npm registry license lookups
    NPM_REGISTRY_URL: str = "https://registry.npmjs.org"
    NPM_REGISTRY_LOOKUP: bool = True
    NPM_REGISTRY_CONCURRENCY: int = 10
    NPM_REGISTRY_TIMEOUT: int = 15  # seconds

    # Documentation files searched for conditional license mentions
    DOCUMENTATION_FILES: List[str] = ["README.md", "README.txt", "README", "readme.md", "readme.txt"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
