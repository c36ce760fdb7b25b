"""
Utility modules for the link crawler.
"""

from .config import Config, ConfigManager, load_config
from .logger import setup_logging, get_crawler_logger

__all__ = ['Config', 'ConfigManager', 'load_config', 'setup_logging', 'get_crawler_logger']
