"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores user preferences like the catalog location, the default tenant and
environment, and the output format.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
- Input sanitization
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for newer Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AZCOMPOSE_CONFIG"
CATALOG_ENV_VAR = "AZCOMPOSE_CATALOG"
OUTPUT_FORMATS = ("table", "json")

_BOOL_VALUES = {
    "true": True,
    "yes": True,
    "on": True,
    "1": True,
    "false": False,
    "no": False,
    "off": False,
    "0": False,
}


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class AzComposeConfig:
    """azcompose configuration data."""

    catalog_path: str | None = None
    default_tenant: str | None = None
    default_environment: str | None = None
    output_format: str = "table"
    strict: bool = False
    allow_unknown_parameters: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # Filter out None values as TOML doesn't support them
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AzComposeConfig":
        """Create from dictionary.

        Raises:
            ConfigError: If a value has the wrong type
        """
        config = cls(
            catalog_path=data.get("catalog_path"),
            default_tenant=data.get("default_tenant"),
            default_environment=data.get("default_environment"),
            output_format=data.get("output_format", "table"),
            strict=data.get("strict", False),
            allow_unknown_parameters=data.get("allow_unknown_parameters", False),
        )
        if config.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"Invalid output_format '{config.output_format}' (expected one of: {', '.join(OUTPUT_FORMATS)})"
            )
        for name in ("strict", "allow_unknown_parameters"):
            if not isinstance(getattr(config, name), bool):
                raise ConfigError(f"Config key '{name}' must be true or false")
        return config


class ConfigManager:
    """Manage azcompose configuration file.

    Configuration is stored at ~/.azcompose/config.toml with secure permissions.
    The AZCOMPOSE_CONFIG environment variable points at an alternative file.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".azcompose"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Validate configuration file path for security.

        Ensures the path is within allowed directories to prevent path traversal attacks.

        Args:
            path: Path to validate

        Returns:
            Validated, resolved path

        Raises:
            ConfigError: If path is outside allowed directories
        """
        # Ensure path is resolved (symlinks resolved, relative paths absolute)
        resolved_path = path.resolve()

        # Allowed directories:
        # 1. ~/.azcompose/ (primary config directory)
        # 2. Current working directory (project-local config)
        # 3. System temporary directory (for testing)
        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}\n"
            "This restriction prevents path traversal attacks."
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Precedence: explicit path, then AZCOMPOSE_CONFIG, then the default file.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            Path to config file

        Raises:
            ConfigError: If path is outside allowed directories
        """
        custom_path = custom_path or os.environ.get(CONFIG_ENV_VAR)
        if custom_path:
            return cls._validate_config_path(Path(custom_path).expanduser())
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> AzComposeConfig:
        """Load configuration from file.

        A missing file yields the default configuration.

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return AzComposeConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:  # Check if group/other have any permissions
                logger.warning(f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600...")
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from: {config_path}")
        return AzComposeConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: AzComposeConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file.

        Existing comments and formatting are preserved. The file is written to
        a temporary sibling with 0600 permissions and renamed into place.

        Returns:
            Path the configuration was written to

        Raises:
            ConfigError: If saving fails or path is outside allowed directories
        """
        config_path = cls.get_config_path(custom_path)
        temp_path = config_path.with_suffix(".tmp")
        try:
            if config_path == cls.DEFAULT_CONFIG_FILE:
                cls.ensure_config_dir()
            else:
                config_path.parent.mkdir(parents=True, exist_ok=True)

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            values = config.to_dict()
            for key in [k for k in doc if k not in values]:
                del doc[key]
            for key, value in values.items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            # Set secure permissions before moving
            os.chmod(temp_path, 0o600)

            # Atomic rename
            temp_path.replace(config_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

        logger.debug(f"Saved config to: {config_path}")
        return config_path

    @classmethod
    def parse_value(cls, key: str, raw: str) -> Any:
        """Convert a command-line string into a typed config value.

        Raises:
            ConfigError: If the key is unknown or the value is invalid
        """
        types = {f.name: f.type for f in fields(AzComposeConfig)}
        if key not in types:
            raise ConfigError(f"Unknown config key: {key} (known keys: {', '.join(types)})")

        if key in ("strict", "allow_unknown_parameters"):
            normalized = raw.strip().lower()
            if normalized not in _BOOL_VALUES:
                raise ConfigError(f"Config key '{key}' must be true or false, got '{raw}'")
            return _BOOL_VALUES[normalized]

        if key == "output_format" and raw not in OUTPUT_FORMATS:
            raise ConfigError(f"Invalid output_format '{raw}' (expected one of: {', '.join(OUTPUT_FORMATS)})")

        return raw

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> AzComposeConfig:
        """Update configuration values.

        Args:
            custom_path: Custom config file path (optional)
            **updates: Configuration values to update

        Returns:
            Updated AzComposeConfig

        Raises:
            ConfigError: If a key is unknown or saving fails
        """
        config = cls.load_config(custom_path)

        for key, value in updates.items():
            if not hasattr(config, key):
                raise ConfigError(f"Unknown config key: {key}")
            setattr(config, key, value)

        cls.save_config(config, custom_path)
        return config

    @classmethod
    def get_catalog_path(cls, cli_value: str | None = None, custom_path: str | None = None) -> Path:
        """Get catalog directory with CLI and environment overrides.

        Precedence: CLI argument, AZCOMPOSE_CATALOG, config file, current directory.
        """
        if cli_value:
            return Path(cli_value).expanduser()

        env_value = os.environ.get(CATALOG_ENV_VAR)
        if env_value:
            return Path(env_value).expanduser()

        config = cls.load_config(custom_path)
        if config.catalog_path:
            return Path(config.catalog_path).expanduser()
        return Path.cwd()


__all__ = ["AzComposeConfig", "ConfigError", "ConfigManager"]
