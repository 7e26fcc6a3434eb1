"""Configuration package."""

from .config_manager import AppConfig

__all__ = ["AppConfig"]
