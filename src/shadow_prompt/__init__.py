"""Shadow Prompt package."""

from .config import AppConfig, load_config

__all__ = ["AppConfig", "load_config"]
