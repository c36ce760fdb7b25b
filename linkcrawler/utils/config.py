"""
Configuration management for the link crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)


@dataclass
class CrawlerConfig:
    """Configuration for fetching and retry behavior."""
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8'
    accept_language: str = 'en-US,en;q=0.5'
    request_timeout: float = 30.0
    max_redirects: int = 5
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_jitter: float = 1.0
    probe_attempts: int = 3


@dataclass
class DomainCheckerConfig:
    """Configuration for background domain expiry lookups."""
    enabled: bool = True
    timeout: float = 20.0
    max_concurrent: int = 5
    drain_timeout: float = 60.0


@dataclass
class StorageConfig:
    """Configuration for the job store."""
    type: str = 'memory'


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = 'linkcrawler:'


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    domain_checker: DomainCheckerConfig = field(default_factory=DomainCheckerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> 'Config':
        return cls()


def _build_section(section_cls, data: Optional[Dict[str, Any]]):
    """Build a config section, rejecting keys the section does not define."""
    data = data or {}
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {section_cls.__name__} keys: {', '.join(sorted(unknown))}")
    return section_cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = self.from_dict(config_data)
        self._validate_config()
        return self._config

    @staticmethod
    def from_dict(config_data: Dict[str, Any]) -> Config:
        """Build a Config from a parsed mapping; missing sections use defaults."""
        return Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler')),
            domain_checker=_build_section(DomainCheckerConfig, config_data.get('domain_checker')),
            storage=_build_section(StorageConfig, config_data.get('storage')),
            redis=_build_section(RedisConfig, config_data.get('redis')),
            logging=_build_section(LoggingConfig, config_data.get('logging'))
        )

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ValueError("Configuration not loaded")
        validate_config(self._config)
        logging.info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_config(config: Config):
    """Raise ValueError for out-of-range values."""
    crawler = config.crawler
    if crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if crawler.max_redirects < 0:
        raise ValueError("max_redirects must be non-negative")

    if crawler.retry_attempts < 1 or crawler.probe_attempts < 1:
        raise ValueError("retry_attempts and probe_attempts must be at least 1")

    if crawler.retry_base_delay < 0 or crawler.retry_max_jitter < 0:
        raise ValueError("retry delays must be non-negative")

    if config.domain_checker.max_concurrent < 1:
        raise ValueError("domain_checker.max_concurrent must be at least 1")

    if config.storage.type not in ['memory', 'redis']:
        raise ValueError("Storage type must be 'memory' or 'redis'")


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
