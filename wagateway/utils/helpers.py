"""Utility functions for wagateway."""

import contextlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the wagateway data directory.

    Respects WAGATEWAY_HOME environment variable; falls back to ~/.wagateway.
    """
    home = os.environ.get("WAGATEWAY_HOME", "").strip()
    if home:
        return ensure_dir(Path(home).expanduser())
    return ensure_dir(Path.home() / ".wagateway")


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat()


def format_seconds(seconds: float) -> str:
    """Render a duration the way status payloads show it, e.g. ``15s``."""
    return f"{seconds:g}s"


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None, mode: int = 0o600) -> None:
    """Write ``data`` as JSON via a temp file and rename, leaving ``path`` at ``mode``."""
    ensure_dir(path.parent)
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    tmp_path.write_text(json.dumps(data, indent=indent))
    with contextlib.suppress(OSError):
        tmp_path.chmod(mode)
    os.replace(tmp_path, path)
