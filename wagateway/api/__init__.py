"""HTTP facade for the gateway."""

from wagateway.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
