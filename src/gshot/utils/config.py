"""
Configuration loader for gshot.

This module provides configuration management with:
- Multiple configuration sources (files, env vars, CLI)
- Schema validation
- Configuration merging by priority
"""

import os
import json
import yaml
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import toml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("gshot.config")

ENV_PREFIX = "GSHOT_"


class NoveltyPolicy(str, Enum):
    """Rule deciding which scanned records enter the next commit."""
    GLOBAL = "global"
    PER_PATH = "per_path"


class RestoreMode(str, Enum):
    """How a commit is materialized into the working tree."""
    COMMIT = "commit"
    REPLAY = "replay"


class UnreadablePolicy(str, Enum):
    """What a snapshot does with a file that cannot be read after scanning."""
    FAIL = "fail"
    SKIP = "skip"


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class RepositoryConfig(BaseModel):
    """Repository layout configuration."""
    metadata_dir: str = ".gshot"
    ignore_file: str = ".gshotignore"
    default_branch: str = "master"

    @field_validator('metadata_dir', 'ignore_file')
    @classmethod
    def validate_name(cls, v):
        """Layout names are single path components."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"must be a plain file or directory name, got {v!r}")
        return v

    @field_validator('default_branch')
    @classmethod
    def validate_branch(cls, v):
        if not v.strip():
            raise ValueError("branch name cannot be empty")
        return v.strip()


class SnapshotConfig(BaseModel):
    """Snapshot (commit) configuration."""
    chunk_size: int = 64 * 1024
    max_parallel: int = 8
    novelty: NoveltyPolicy = NoveltyPolicy.GLOBAL
    on_unreadable: UnreadablePolicy = UnreadablePolicy.FAIL

    @field_validator('chunk_size', 'max_parallel')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class RestoreConfig(BaseModel):
    """Restore configuration."""
    mode: RestoreMode = RestoreMode.COMMIT
    fsync: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "WARNING"
    directory: Optional[Path] = None
    json_format: bool = Field(default=False, alias="json")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class GshotConfig(BaseModel):
    """Main gshot configuration."""
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    restore: RestoreConfig = Field(default_factory=RestoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(validate_assignment=True)


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._sources: List[ConfigSource] = []
        self._config: Optional[GshotConfig] = None
        self._environ = os.environ if environ is None else environ

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        self._sources.sort(key=lambda s: s.priority)

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> GshotConfig:
        """
        Load configuration from all sources.

        Sources are merged lowest priority first, environment variables
        are applied on top of file sources and below CLI overrides
        (dict sources with priority >= 100).
        """
        merged_data: Dict[str, Any] = {}
        env_applied = False

        for source in self._sources:
            if source.priority >= 100 and not env_applied:
                merged_data = self._deep_merge(merged_data, self._load_env_vars())
                env_applied = True
            merged_data = self._deep_merge(merged_data, self._load_source(source))

        if not env_applied:
            merged_data = self._deep_merge(merged_data, self._load_env_vars())

        try:
            self._config = GshotConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")

            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.debug("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.debug("config_file_not_found", path=str(source.path))
            return {}

        try:
            content = source.path.read_text(encoding="utf-8")
            if source.source_type == "json":
                data = json.loads(content) if content.strip() else {}
            elif source.source_type == "yaml":
                data = yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                data = toml.loads(content)
            else:
                raise ConfigurationError(f"Unknown source type: {source.source_type}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            # json and toml decode errors are ValueError subclasses
            raise ConfigurationError(f"Cannot read config file {source.path}: {e}", cause=e) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {source.path} must contain a mapping")
        return data

    def _load_env_vars(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        GSHOT_SNAPSHOT__MAX_PARALLEL=4 sets snapshot.max_parallel.
        """
        result: Dict[str, Any] = {}

        for key, value in self._environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            parts = key[len(ENV_PREFIX):].lower().split("__")
            if len(parts) < 2 or not all(parts):
                continue

            current = result
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        if value.startswith("~"):
            return Path(value).expanduser()

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> GshotConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def default_config_paths(root: Path) -> List[Path]:
    """Standard configuration locations, lowest priority first."""
    return [
        Path.home() / ".gshot" / "config.yaml",
        root / "gshot.toml",
        root / ".gshot" / "config.yaml",
    ]


def load_config(
    root: Union[str, Path] = ".",
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> GshotConfig:
    """
    Load configuration from standard locations.

    Args:
        root: Project root used for the per-repository config files
        config_paths: Additional configuration paths (must exist)
        extra_config: Overrides from the command line
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader(environ=environ)
    root = Path(root)

    for priority, path in enumerate(default_config_paths(root), start=10):
        if path.exists():
            loader.add_source(path, priority=priority)

    if config_paths:
        for i, path in enumerate(config_paths):
            path = Path(path)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


__all__ = [
    'GshotConfig',
    'RepositoryConfig',
    'SnapshotConfig',
    'RestoreConfig',
    'LoggingConfig',
    'NoveltyPolicy',
    'RestoreMode',
    'UnreadablePolicy',
    'ConfigLoader',
    'default_config_paths',
    'load_config',
]
