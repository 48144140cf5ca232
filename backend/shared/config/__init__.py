"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, DATABASE_URL, REDIS_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    OrderStatus,
    ScreenStatus,
    DistributionStrategy,
    OrderAction,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "DATABASE_URL",
    "REDIS_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "OrderStatus",
    "ScreenStatus",
    "DistributionStrategy",
    "OrderAction",
    "Limits",
]
