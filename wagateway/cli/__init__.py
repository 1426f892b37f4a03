"""CLI module for wagateway."""
