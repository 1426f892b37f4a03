"""Reading and writing the camelCase JSON config file."""

import json
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from wagateway.config.schema import Config
from wagateway.utils.helpers import get_data_path, write_json_atomic

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """Build the gateway config from ``config_path`` (default ``~/.wagateway/config.json``).

    A missing file means defaults. An unreadable or invalid file is logged
    and also yields defaults, so a typo never keeps the gateway down.
    ``WAGATEWAY_SECTION__KEY`` environment variables win over the file.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text())
        if not isinstance(raw, dict):
            raise ValueError("top-level value must be an object")
        return Config(**convert_keys(raw))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(f"Ignoring config at {path}: {e}")
        logger.warning("Using default configuration.")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Persist ``config`` with camelCase keys, readable by the owner only."""
    path = config_path or get_config_path()
    write_json_atomic(path, convert_to_camel(config.model_dump()), indent=2)


def _rekey(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(key): _rekey(value, rename) for key, value in data.items()}
    if isinstance(data, list):
        return [_rekey(item, rename) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase keys (file) -> snake_case keys (models)."""
    return _rekey(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """snake_case keys (models) -> camelCase keys (file)."""
    return _rekey(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
