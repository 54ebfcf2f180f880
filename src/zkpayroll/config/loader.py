"""Configuration loading and validation."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from zkpayroll.config.schema import PayrollConfig

DEFAULT_CONFIG_PATH = Path.home() / ".zkpayroll" / "zkpayroll.yaml"

# Path settings that are resolved against the config file's directory when
# written as relative paths
_RELATIVE_PATH_FIELDS = {
    "circuit": ("wasm_path", "zkey_path", "verification_key_path"),
    "secrets": ("file_path",),
    "records": ("db_path",),
}


class ConfigError(Exception):
    """Configuration loading or validation error."""


def _resolve_relative_paths(config: PayrollConfig, base_dir: Path) -> PayrollConfig:
    """Anchor relative paths set in a config file at *base_dir*.

    Only paths the file sets explicitly are rewritten. Defaults, ``~`` paths
    and SQLite's ``:memory:`` are left alone.
    """
    for section_name, field_names in _RELATIVE_PATH_FIELDS.items():
        section = getattr(config, section_name)
        for name in field_names:
            value = getattr(section, name)
            if name not in section.model_fields_set or value.startswith(("~", ":")):
                continue
            if not Path(value).is_absolute():
                setattr(section, name, str(base_dir / value))
    return config


def load_config(path: str | Path | None = None) -> PayrollConfig:
    """Load and validate zkpayroll configuration from a YAML file.

    Relative artifact, secrets and database paths set in the file are taken
    relative to the directory holding the file.

    Args:
        path: Path to config file. If None, tries the default location.
              If the file doesn't exist, returns the default config.

    Returns:
        Validated configuration object

    Raises:
        ConfigError: If the config file exists but is invalid
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)

    # Zero-config mode: if file doesn't exist, use all defaults
    if not path.exists():
        return PayrollConfig()

    try:
        with open(path) as f:
            config_data = yaml.safe_load(f)

        # Handle empty file
        if config_data is None:
            return PayrollConfig()
        if not isinstance(config_data, dict):
            raise ConfigError(f"Top level of {path} must be a mapping")

        config = PayrollConfig(**config_data)

    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    return _resolve_relative_paths(config, path.parent.resolve())


def save_config(config: PayrollConfig, path: str | Path | None = None) -> None:
    """Save configuration to a YAML file.

    Only settings that differ from the defaults are written.

    Args:
        config: Configuration object to save
        path: Destination path. If None, uses the default location.
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.safe_dump(
            config.model_dump(exclude_defaults=True),
            f,
            default_flow_style=False,
            sort_keys=False,
        )
