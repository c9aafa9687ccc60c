"""Utilities module."""

from simple_signal.utils.config import Config, Settings, load_config, save_config, settings
from simple_signal.utils.logger import get_logger, setup_logging

__all__ = [
    "Config",
    "Settings",
    "load_config",
    "save_config",
    "settings",
    "get_logger",
    "setup_logging",
]
