"""Configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from mdchunk.config.schema import Config


def get_config_path() -> Path:
    """Default configuration file location."""
    return Path.home() / ".mdchunk" / "config.json"


def load_config(path: Path | str | None = None) -> Config:
    """Load configuration from *path*, falling back to defaults.

    A missing file is not an error. Malformed JSON or a schema violation is
    logged and the defaults are used so delivery keeps working.
    """
    config_path = Path(path) if path is not None else get_config_path()
    if not config_path.exists():
        return Config()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Failed to read config from {config_path}: {exc}")
        logger.warning("Using default configuration.")
        return Config()

    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Invalid config in {config_path}: {exc}")
        logger.warning("Using default configuration.")
        return Config()


def save_config(config: Config, path: Path | str | None = None) -> None:
    """Write *config* as camelCase JSON."""
    config_path = Path(path) if path is not None else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(by_alias=True, exclude_none=True)
    tmp = config_path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(config_path)
