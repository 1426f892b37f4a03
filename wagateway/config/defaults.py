"""Centralized defaults for generated config files and settings models."""

from __future__ import annotations

DEFAULT_PORT = 4050
DEFAULT_HOST = "0.0.0.0"

DEFAULT_BRIDGE_URL = "ws://127.0.0.1:3001"
DEFAULT_AUTH_DIR = "~/.wagateway/auth_info"
DEFAULT_BROWSER = ["Ubuntu", "Chrome", "120.0.0.0"]

DEFAULT_RETRY_DELAY_MS = 5000
DEFAULT_MAX_RETRIES = 10
DEFAULT_CONNECT_TIMEOUT_MS = 60000
DEFAULT_KEEP_ALIVE_INTERVAL_MS = 20000

DEFAULT_DUPLICATE_WINDOW_MS = 15000
DEFAULT_CLEANUP_INTERVAL_MS = 30000

DEFAULT_RECIPIENT_DOMAIN = "s.whatsapp.net"
DEFAULT_SEND_MAX_ATTEMPTS = 3
DEFAULT_COMMAND_TIMEOUT_MS = 20000
