"""
Configuration loading for Market Brief.
"""

from .loader import AppConfig, load_config

__all__ = ["AppConfig", "load_config"]
