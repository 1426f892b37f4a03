"""On-disk store for the session credentials blob."""

from __future__ import annotations

import contextlib
import json
import shutil
from pathlib import Path
from typing import Any

from loguru import logger

from wagateway.utils.helpers import write_json_atomic

CREDENTIALS_FILENAME = "creds.json"


class CredentialStore:
    """Persists the credentials the bridge hands back after pairing.

    The blob is opaque to the gateway: it is loaded once per connect attempt
    and replaced wholesale on every credential update.
    """

    def __init__(self, auth_dir: Path):
        self.auth_dir = Path(auth_dir).expanduser()

    @property
    def path(self) -> Path:
        return self.auth_dir / CREDENTIALS_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> dict[str, Any] | None:
        path = self.path
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable credentials at {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed credentials at {path}")
            return None
        return data

    def save(self, credentials: dict[str, Any]) -> None:
        self.auth_dir.mkdir(parents=True, exist_ok=True)
        with contextlib.suppress(OSError):
            self.auth_dir.chmod(0o700)
        write_json_atomic(self.path, credentials)
        logger.debug(f"Session credentials saved to {self.path}")

    def clear(self) -> bool:
        """Remove stored credentials. Returns True when something was deleted."""
        if not self.auth_dir.exists():
            return False
        shutil.rmtree(self.auth_dir)
        logger.info(f"Session credentials removed from {self.auth_dir}")
        return True
