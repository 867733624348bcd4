"""
Embyvault Utilities

Logging helpers shared by the service modules.
"""

from .logger import logger, setup_logger

__all__ = [
    "logger",
    "setup_logger",
]
