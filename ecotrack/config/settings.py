"""Centralized configuration for the ecosystem tracker.

Configuration is loaded from a YAML file and validated at startup. Secrets
(the GitHub token) are injected by the caller, never read by the pollers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from ecotrack.utils.result import ConfigError, Err, Ok, Result


@dataclass
class RetryConfig:
    """Retry and backoff settings for remote calls."""

    max_attempts: int = 4
    base_delay: float = 2.0
    backoff_factor: float = 2.0
    max_backoff: float = 60.0


@dataclass
class GitHubConfig:
    """GitHub API access and discovery queries."""

    api_url: str = "https://api.github.com"
    token: Optional[str] = None
    source_query: str = "extension:veryl"
    project_query: str = "filename:Veryl.toml"
    max_search_pages: int = 10
    request_timeout: float = 30.0
    exclude_repositories: list[str] = field(
        default_factory=lambda: ["https://github.com/veryl-lang/veryl"]
    )


@dataclass
class ReleaseTrackConfig:
    """A distribution track whose release downloads are recorded."""

    name: str
    repository: str


def default_release_tracks() -> list[ReleaseTrackConfig]:
    return [
        ReleaseTrackConfig(name="veryl", repository="veryl-lang/veryl"),
        ReleaseTrackConfig(name="verylup", repository="veryl-lang/verylup"),
    ]


@dataclass
class CompilerConfig:
    """How the tracked compiler is invoked."""

    binary: str = "veryl"
    manifest_name: str = "Veryl.toml"
    timeout: Optional[int] = None


@dataclass
class MigrationConfig:
    """Migration probe limits."""

    max_steps: int = 64


@dataclass
class StorageConfig:
    """Document, chart and scratch locations."""

    db_path: Path = Path("db/db.json")
    chart_path: Path = Path("db/plot.svg")
    build_dir: Path = Path("build")
    strict_assets: bool = True


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "text"


@dataclass
class TrackerConfig:
    """
    Complete tracker configuration.

    This is the single source of truth for all configuration values.
    """

    retry: RetryConfig = field(default_factory=RetryConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    compiler: CompilerConfig = field(default_factory=CompilerConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    release_tracks: list[ReleaseTrackConfig] = field(default_factory=default_release_tracks)

    @classmethod
    def from_yaml(cls, path: Path) -> Result["TrackerConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top-level document must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["TrackerConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        defaults = cls()
        try:
            retry_data = data.get("retry", {})
            retry = RetryConfig(
                max_attempts=int(retry_data.get("max_attempts", defaults.retry.max_attempts)),
                base_delay=float(retry_data.get("base_delay", defaults.retry.base_delay)),
                backoff_factor=float(retry_data.get("backoff_factor", defaults.retry.backoff_factor)),
                max_backoff=float(retry_data.get("max_backoff", defaults.retry.max_backoff)),
            )

            github_data = data.get("github", {})
            github = GitHubConfig(
                api_url=github_data.get("api_url", defaults.github.api_url),
                source_query=github_data.get("source_query", defaults.github.source_query),
                project_query=github_data.get("project_query", defaults.github.project_query),
                max_search_pages=int(github_data.get("max_search_pages", defaults.github.max_search_pages)),
                request_timeout=float(github_data.get("request_timeout", defaults.github.request_timeout)),
                exclude_repositories=list(
                    github_data.get("exclude_repositories", defaults.github.exclude_repositories)
                ),
            )

            compiler_data = data.get("compiler", {})
            timeout = compiler_data.get("timeout", defaults.compiler.timeout)
            compiler = CompilerConfig(
                binary=compiler_data.get("binary", defaults.compiler.binary),
                manifest_name=compiler_data.get("manifest_name", defaults.compiler.manifest_name),
                timeout=int(timeout) if timeout is not None else None,
            )

            migration_data = data.get("migration", {})
            migration = MigrationConfig(
                max_steps=int(migration_data.get("max_steps", defaults.migration.max_steps)),
            )

            storage_data = data.get("storage", {})
            storage = StorageConfig(
                db_path=Path(storage_data.get("db_path", defaults.storage.db_path)),
                chart_path=Path(storage_data.get("chart_path", defaults.storage.chart_path)),
                build_dir=Path(storage_data.get("build_dir", defaults.storage.build_dir)),
                strict_assets=bool(storage_data.get("strict_assets", defaults.storage.strict_assets)),
            )

            logging_data = data.get("logging", {})
            logging_config = LoggingConfig(
                level=logging_data.get("level", defaults.logging.level),
                format=logging_data.get("format", defaults.logging.format),
            )

            if "release_tracks" in data:
                release_tracks = [
                    ReleaseTrackConfig(name=t["name"], repository=t["repository"])
                    for t in data["release_tracks"]
                ]
            else:
                release_tracks = default_release_tracks()

        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

        return Ok(cls(
            retry=retry,
            github=github,
            compiler=compiler,
            migration=migration,
            storage=storage,
            logging=logging_config,
            release_tracks=release_tracks,
        ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if self.retry.max_attempts < 1:
            return Err(ConfigError(
                field="retry.max_attempts",
                message=f"Must be at least 1, got {self.retry.max_attempts}",
            ))
        if self.retry.backoff_factor < 1.0:
            return Err(ConfigError(
                field="retry.backoff_factor",
                message=f"Must be at least 1.0, got {self.retry.backoff_factor}",
            ))
        if self.retry.base_delay < 0:
            return Err(ConfigError(
                field="retry.base_delay",
                message=f"Must not be negative, got {self.retry.base_delay}",
            ))

        if self.github.max_search_pages < 1:
            return Err(ConfigError(
                field="github.max_search_pages",
                message=f"Must be at least 1, got {self.github.max_search_pages}",
            ))

        if self.migration.max_steps < 1:
            return Err(ConfigError(
                field="migration.max_steps",
                message=f"Must be at least 1, got {self.migration.max_steps}",
            ))

        if self.compiler.timeout is not None and self.compiler.timeout < 1:
            return Err(ConfigError(
                field="compiler.timeout",
                message=f"Must be positive, got {self.compiler.timeout}",
            ))

        # The build directory is wiped at the start of every run
        build_dir = self.storage.build_dir.resolve()
        cwd = Path.cwd().resolve()
        if build_dir == cwd or build_dir in cwd.parents:
            return Err(ConfigError(
                field="storage.build_dir",
                message=f"Must not be the working directory or one of its parents, got {self.storage.build_dir}",
            ))
        for name, kept in (("db_path", self.storage.db_path), ("chart_path", self.storage.chart_path)):
            if build_dir in kept.resolve().parents:
                return Err(ConfigError(
                    field="storage.build_dir",
                    message=f"Must not contain storage.{name} ({kept}), got {self.storage.build_dir}",
                ))

        if not self.release_tracks:
            return Err(ConfigError(
                field="release_tracks",
                message="At least one release track is required",
            ))
        names = [track.name for track in self.release_tracks]
        if len(set(names)) != len(names):
            return Err(ConfigError(
                field="release_tracks",
                message=f"Track names must be unique, got {names}",
            ))

        return Ok(None)

    def with_token(self, token: Optional[str]) -> "TrackerConfig":
        """Return a copy of this config carrying the given GitHub token."""
        return replace(self, github=replace(self.github, token=token))

    def with_compiler_binary(self, binary: Optional[Path]) -> "TrackerConfig":
        """Return a copy of this config using another compiler binary."""
        if binary is None:
            return self
        return replace(self, compiler=replace(self.compiler, binary=str(binary)))


def load_config(config_dir: Path = None) -> Result[TrackerConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Loads ``<config_dir>/defaults.yaml`` when present, otherwise the built-in
    defaults, and validates the result.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    if config_dir is None:
        config_dir = Path("./config")

    defaults_path = Path(config_dir) / "defaults.yaml"
    if defaults_path.exists():
        result = TrackerConfig.from_yaml(defaults_path)
        if result.is_err():
            return result
        config = result.unwrap()
    else:
        config = TrackerConfig()

    validation_result = config.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(config)


def get_env_github_token() -> Optional[str]:
    """Get the GitHub token from environment."""
    return os.environ.get("GITHUB_TOKEN")
