"""
Configuration management for the market data backfill package.

This module provides configuration settings and environment
variable handling for the application. Precedence is
environment variables > config/app_config.yaml > defaults.
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
import logging

import yaml


def default_max_concurrent_requests() -> int:
    """Four outbound requests per available CPU."""
    return (os.cpu_count() or 1) * 4


def _optional_int(value: Optional[Any]) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    path: str = "market_data.db"
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables."""
        return cls(
            path=os.getenv("MARKET_BACKFILL_DB_PATH", "market_data.db"),
            echo=os.getenv("MARKET_BACKFILL_DB_ECHO", "false").lower() == "true"
        )


@dataclass
class FetchConfig:
    """Outbound request settings shared by every source adapter."""
    max_concurrent_requests: Optional[int] = None
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    pool_maxsize: int = 10

    @classmethod
    def from_env(cls) -> "FetchConfig":
        """Create config from environment variables."""
        return cls(
            max_concurrent_requests=_optional_int(os.getenv("MARKET_BACKFILL_MAX_CONCURRENT_REQUESTS")),
            connect_timeout=float(os.getenv("MARKET_BACKFILL_CONNECT_TIMEOUT", "10.0")),
            read_timeout=float(os.getenv("MARKET_BACKFILL_READ_TIMEOUT", "60.0")),
            pool_maxsize=int(os.getenv("MARKET_BACKFILL_POOL_MAXSIZE", "10"))
        )

    @property
    def effective_max_concurrent_requests(self) -> int:
        if self.max_concurrent_requests is None:
            return default_max_concurrent_requests()
        return self.max_concurrent_requests


@dataclass
class SentinelConfig:
    """Redis settings for the backfill sentinel cache."""
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = ""
    socket_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "SentinelConfig":
        """Create config from environment variables."""
        return cls(
            redis_url=os.getenv("MARKET_BACKFILL_REDIS_URL", cls.redis_url),
            key_prefix=os.getenv("MARKET_BACKFILL_SENTINEL_PREFIX", cls.key_prefix),
            socket_timeout=float(os.getenv("MARKET_BACKFILL_REDIS_TIMEOUT", str(cls.socket_timeout)))
        )


@dataclass
class SchedulerConfig:
    """Scheduler settings. Cron triggers are evaluated in ``timezone``."""
    timezone: str = "UTC"
    max_instances: int = 1
    max_workers: int = 10

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        """Create config from environment variables."""
        return cls(
            timezone=os.getenv("MARKET_BACKFILL_TIMEZONE", "UTC"),
            max_instances=int(os.getenv("MARKET_BACKFILL_MAX_INSTANCES", "1")),
            max_workers=int(os.getenv("MARKET_BACKFILL_SCHEDULER_WORKERS", "10"))
        )


@dataclass
class Config:
    """Main configuration class."""
    database: DatabaseConfig
    fetch: FetchConfig
    sentinel: SentinelConfig
    scheduler: SchedulerConfig
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            fetch=FetchConfig.from_env(),
            sentinel=SentinelConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            log_level=os.getenv("MARKET_BACKFILL_LOG_LEVEL", "INFO"),
            log_file=os.getenv("MARKET_BACKFILL_LOG_FILE")
        )

    @classmethod
    def default(cls) -> "Config":
        """Create default configuration."""
        return cls(
            database=DatabaseConfig(),
            fetch=FetchConfig(),
            sentinel=SentinelConfig(),
            scheduler=SchedulerConfig()
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML when present, otherwise from the environment.

        Environment variables always override individual YAML settings.

        Args:
            config_path: Explicit YAML file; the standard locations are searched when omitted

        Raises:
            yaml.YAMLError: If the YAML file exists but cannot be parsed
        """
        try:
            yaml_config = cls._try_load_yaml_config(config_path)
        except yaml.YAMLError as e:
            logger = logging.getLogger(__name__)
            logger.error(f"Failed to parse YAML configuration: {e}")
            raise

        if yaml_config:
            return yaml_config
        return cls.from_env()

    @classmethod
    def _try_load_yaml_config(cls, config_path: Optional[Path] = None) -> Optional["Config"]:
        """Try to load configuration from YAML files."""
        config_paths = [config_path] if config_path else [
            Path("config/app_config.yaml"),
            Path("config/app_config.yml"),
            Path("app_config.yaml"),
            Path("app_config.yml")
        ]

        app_config_path = None
        for path in config_paths:
            if path.exists():
                app_config_path = path
                break

        if not app_config_path:
            return None

        with open(app_config_path, 'r') as f:
            app_config: Dict[str, Any] = yaml.safe_load(f) or {}

        database = app_config.get('database', {})
        fetch = app_config.get('fetch', {})
        sentinel = app_config.get('sentinel', {})
        scheduler = app_config.get('scheduler', {})
        logging_section = app_config.get('logging', {})

        database_config = DatabaseConfig(
            path=os.getenv("MARKET_BACKFILL_DB_PATH", database.get('path', 'market_data.db')),
            echo=os.getenv("MARKET_BACKFILL_DB_ECHO", str(database.get('echo', False))).lower() == 'true'
        )

        fetch_config = FetchConfig(
            max_concurrent_requests=_optional_int(
                os.getenv("MARKET_BACKFILL_MAX_CONCURRENT_REQUESTS", fetch.get('max_concurrent_requests'))
            ),
            connect_timeout=float(os.getenv("MARKET_BACKFILL_CONNECT_TIMEOUT", fetch.get('connect_timeout', 10.0))),
            read_timeout=float(os.getenv("MARKET_BACKFILL_READ_TIMEOUT", fetch.get('read_timeout', 60.0))),
            pool_maxsize=int(os.getenv("MARKET_BACKFILL_POOL_MAXSIZE", fetch.get('pool_maxsize', 10)))
        )

        sentinel_config = SentinelConfig(
            redis_url=os.getenv("MARKET_BACKFILL_REDIS_URL", sentinel.get('redis_url', SentinelConfig.redis_url)),
            key_prefix=os.getenv("MARKET_BACKFILL_SENTINEL_PREFIX", sentinel.get('key_prefix', '')),
            socket_timeout=float(os.getenv("MARKET_BACKFILL_REDIS_TIMEOUT", sentinel.get('socket_timeout', 5.0)))
        )

        scheduler_config = SchedulerConfig(
            timezone=os.getenv("MARKET_BACKFILL_TIMEZONE", scheduler.get('timezone', 'UTC')),
            max_instances=int(os.getenv("MARKET_BACKFILL_MAX_INSTANCES", scheduler.get('max_instances', 1))),
            max_workers=int(os.getenv("MARKET_BACKFILL_SCHEDULER_WORKERS", scheduler.get('max_workers', 10)))
        )

        return cls(
            database=database_config,
            fetch=fetch_config,
            sentinel=sentinel_config,
            scheduler=scheduler_config,
            log_level=os.getenv("MARKET_BACKFILL_LOG_LEVEL", logging_section.get('level', 'INFO')),
            log_file=os.getenv("MARKET_BACKFILL_LOG_FILE", logging_section.get('file'))
        )


# Global configuration instance
config = Config.load()
