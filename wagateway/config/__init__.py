"""Configuration module for wagateway."""

from wagateway.config.loader import get_config_path, load_config, save_config
from wagateway.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
