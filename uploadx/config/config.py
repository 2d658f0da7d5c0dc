"""Resolve client configuration from defaults, file, environment, and overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from uploadx.config.helpers import parse_bytes
from uploadx.config.upload_config import UploadConfig
from uploadx.exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "UPLOADX_CONFIG"

_ENV_MAP: dict[str, str] = {
    "chunk_size": "UPLOADX_CHUNK_SIZE",
    "timeout": "UPLOADX_TIMEOUT",
    "retries": "UPLOADX_RETRIES",
    "max_stalled_chunks": "UPLOADX_MAX_STALLED_CHUNKS",
}


def load_config_file(path: str | os.PathLike) -> dict[str, Any]:
    """Load configuration fields from a YAML file.

    ``chunk_size`` may be given with a unit suffix, e.g. ``8MiB``.

    Args:
        path: Path to the YAML file.

    Returns:
        The configuration fields found in the file.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or not a mapping.
    """
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            file_data = yaml.safe_load(config_file) or {}
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Config file {str(config_path)!r} not found.") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigLoadError(
            f"Could not read config file {str(config_path)!r}: {exc}"
        ) from exc

    if not isinstance(file_data, dict):
        raise ConfigLoadError(
            f"Config file {str(config_path)!r} must contain a mapping."
        )

    raw_chunk_size = file_data.get("chunk_size")
    if raw_chunk_size is not None:
        try:
            file_data["chunk_size"] = parse_bytes(raw_chunk_size)
        except ValueError as exc:
            raise ConfigLoadError(
                f"Invalid chunk_size in {str(config_path)!r}: {exc}"
            ) from exc
    return file_data


def _read_env_overrides() -> dict[str, Any]:
    """Read configuration overrides from environment variables.

    Values that cannot be parsed are skipped with a warning.

    Returns:
        A dictionary of configuration field names to override values.
    """
    overrides: dict[str, Any] = {}

    for field_name, env_var_name in _ENV_MAP.items():
        env_value = os.getenv(env_var_name)
        if env_value is None:
            continue

        try:
            if field_name == "chunk_size":
                overrides[field_name] = parse_bytes(env_value)
            elif field_name == "timeout":
                overrides[field_name] = float(env_value)
            elif field_name == "retries":
                overrides["retry"] = {"retries": int(env_value)}
            else:
                overrides[field_name] = int(env_value)
        except ValueError:
            logger.warning(
                "Ignoring invalid value %r for %s", env_value, env_var_name
            )

    return overrides


def _merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge, except that the nested ``retry`` mapping is merged too."""
    merged = dict(base)
    for field_name, value in updates.items():
        if field_name == "retry" and isinstance(value, dict):
            merged["retry"] = {**merged.get("retry", {}), **value}
        else:
            merged[field_name] = value
    return merged


def resolve_config(
    overrides: UploadConfig | dict[str, Any] | None = None,
    config_file: str | os.PathLike | None = None,
) -> UploadConfig:
    """Resolve the effective client configuration.

    Precedence, lowest first: model defaults, the YAML config file (from
    ``config_file`` or ``UPLOADX_CONFIG``), environment variables, then the
    explicit ``overrides``. A full ``UploadConfig`` is returned unchanged.

    Args:
        overrides: Optional configuration or partial field mapping.
        config_file: Optional path to a YAML configuration file.

    Returns:
        The resolved ``UploadConfig``.

    Raises:
        ConfigLoadError: If the config file cannot be loaded.
    """
    if isinstance(overrides, UploadConfig):
        return overrides

    merged: dict[str, Any] = {}
    config_path = config_file or os.getenv(CONFIG_FILE_ENV)
    if config_path:
        merged = load_config_file(config_path)
        logger.debug("Loaded upload config from %s", config_path)

    merged = _merge(merged, _read_env_overrides())
    merged = _merge(merged, overrides or {})
    return UploadConfig.model_validate(merged)
