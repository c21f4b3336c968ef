"""Configuration management for Studio Publisher."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".studio-publisher"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
VERCEL_TOKEN_ENV = "VERCEL_TOKEN"


class GitHubConfig(BaseModel):
    """Configuration for the source-control host.

    The token is never stored here; it is read from the GITHUB_TOKEN
    environment variable.
    """

    api_url: str = Field(
        default="https://api.github.com", description="GitHub REST API root"
    )
    owner: Optional[str] = Field(
        default=None, description="Default repository owner (user or organization)"
    )
    default_branch: Optional[str] = Field(
        default=None,
        description="Branch to publish to; None uses the repository default branch",
    )
    private: bool = Field(default=True, description="Create new repositories as private")
    include_readme: bool = Field(
        default=True, description="Add a generated README.md to initial pushes"
    )
    repository_description: str = Field(
        default="Synchronized via Studio Publisher",
        description="Description used when creating repositories",
    )


class DeploymentConfig(BaseModel):
    """Configuration for the deployment provider.

    The token is read from the VERCEL_TOKEN environment variable.
    """

    api_url: str = Field(
        default="https://api.vercel.com", description="Deployment API root"
    )
    framework: str = Field(
        default="nextjs", description="Framework preset sent with each deployment"
    )
    poll_interval: float = Field(
        default=2.0, description="Seconds between deployment status checks"
    )
    wait_timeout: float = Field(
        default=300.0, description="Maximum seconds to wait for a deployment"
    )


class TimeoutsConfig(BaseModel):
    """Per-phase HTTP timeouts in seconds."""

    connect: float = Field(default=10.0, description="Connect timeout")
    read: float = Field(default=30.0, description="Read timeout")
    write: float = Field(default=10.0, description="Write timeout")
    pool: float = Field(default=5.0, description="Connection pool timeout")


class RetrySettings(BaseModel):
    """Backoff for transient provider failures (5xx, 429, timeouts)."""

    max_retries: int = Field(default=3, description="Retries after the first attempt")
    initial_delay: float = Field(default=1.0, description="First backoff delay")
    max_delay: float = Field(default=30.0, description="Backoff ceiling")
    backoff_multiplier: float = Field(default=2.0, description="Exponential factor")
    jitter_enabled: bool = Field(default=True, description="Add up to 10% jitter")

    @field_validator("max_retries")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class PublishConfig(BaseModel):
    """Configuration for atomic publishing."""

    max_concurrent_blobs: int = Field(
        default=8, description="Blob uploads allowed in flight at once"
    )
    verify_tip_before_advance: bool = Field(
        default=True,
        description="Re-read the branch tip before moving it and fail on a change",
    )
    commit_message: str = Field(
        default="Publish generated project",
        description="Commit message used when none is given",
    )

    @field_validator("max_concurrent_blobs")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_blobs must be >= 1")
        return v


class Config(BaseModel):
    """Main configuration for Studio Publisher."""

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    exclude_dirs: List[str] = Field(
        default=[
            "node_modules",
            ".git",
            ".next",
            ".vercel",
            "__pycache__",
            "dist",
            "build",
            CONFIG_DIR_NAME,
        ],
        description="Directories skipped when collecting files from disk",
    )


def _require_env(name: str, purpose: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(
            f"{name} environment variable is required for {purpose}. "
            f"Set it with: export {name}=your_token_here"
        )
    return value


def get_github_token() -> str:
    """Read the GitHub token from the environment."""
    return _require_env(GITHUB_TOKEN_ENV, "GitHub publishing")


def get_vercel_token() -> str:
    """Read the deployment provider token from the environment."""
    return _require_env(VERCEL_TOKEN_ENV, "deployments")


class ConfigManager:
    """Manages configuration loading, saving, and validation."""

    DEFAULT_CONFIG_PATH = Path(CONFIG_DIR_NAME) / "config.json"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                self._config = Config(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
        else:
            logger.debug(f"No config at {self.config_path}, using defaults")
            self._config = Config()

        return self._config

    def save(self, config: Optional[Config] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            json.dump(config.model_dump(), f, indent=2)
        self._config = config

    def get_config(self) -> Config:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    def update_config(self, **kwargs: Any) -> Config:
        """Update top-level sections and persist the result."""
        config_dict = self.get_config().model_dump()
        config_dict.update(kwargs)

        new_config = Config(**config_dict)
        self.save(new_config)
        return new_config

    @staticmethod
    def find_config_path(start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find .studio-publisher/config.json by walking up the directory tree.

        Args:
            start_dir: Directory to start searching from (default: current directory)

        Returns:
            Path to config.json if found, None otherwise
        """
        current = start_dir or Path.cwd()
        for path in [current] + list(current.parents):
            config_path = path / CONFIG_DIR_NAME / "config.json"
            if config_path.exists():
                return config_path
        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """Create ConfigManager from the nearest config, or the default location."""
        config_path = cls.find_config_path(start_dir)
        if config_path is None:
            config_path = (start_dir or Path.cwd()) / CONFIG_DIR_NAME / "config.json"
        return cls(config_path)
