"""Core package"""
from validai.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
