"""Configuration handling for the Reddit bot detection pipeline."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv


@dataclass
class RateLimitConfig:
    """Rate limiting configuration for upstream requests."""

    min_request_interval_ms: int = 100
    min_remaining_calls: int = 5
    sleep_buffer_sec: int = 2
    max_concurrent_fetches: int = 1
    max_rate_limit_waits: int = 3


@dataclass
class RetryConfig:
    """Backoff settings for per-author profile fetches."""

    profile_max_retries: int = 2
    initial_backoff: float = 1.0
    max_backoff: float = 16.0
    backoff_factor: float = 2.0


@dataclass
class DetectionConfig:
    """Bot scoring configuration."""

    bot_threshold: float = 0.5
    # 0.0 keeps the rule table as the sole signal
    anomaly_weight: float = 0.0
    max_workers: int = 1


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class DatabaseConfig:
    """Database connection configuration."""

    url: str = "sqlite:///data/bot_detection.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    pool_recycle: int = 1800


def _merge_section(section: Any, values: Dict[str, Any]) -> Any:
    """Overwrite dataclass attributes of ``section`` with matching keys from ``values``."""
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key in known:
            setattr(section, key, value)
    return section


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    # Reddit API credentials from environment
    client_id: str = ""
    client_secret: str = ""
    user_agent: str = "BotDetectionApp/1.0"

    # Upstream endpoints
    auth_url: str = "https://www.reddit.com/api/v1/access_token"
    api_base_url: str = "https://oauth.reddit.com"
    request_timeout_sec: float = 30.0

    # Extraction defaults
    activity_limit: int = 100
    include_comments: bool = False

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    _SECTIONS = ("rate_limit", "retry", "detection", "monitoring", "database")

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                for key, value in yaml_config.items():
                    if key in cls._SECTIONS:
                        if isinstance(value, dict):
                            _merge_section(getattr(config, key), value)
                    elif hasattr(config, key):
                        setattr(config, key, value)

        # Secrets and deployment overrides always come from the environment
        config.client_id = os.getenv("REDDIT_CLIENT_ID", config.client_id)
        config.client_secret = os.getenv("REDDIT_CLIENT_SECRET", config.client_secret)
        config.user_agent = os.getenv("REDDIT_USER_AGENT", config.user_agent)
        config.database.url = os.getenv("DATABASE_URL", config.database.url)

        return config

    def credential_errors(self) -> List[str]:
        """Return the missing upstream credentials, if any."""
        errors = []
        if not self.client_id:
            errors.append("Missing REDDIT_CLIENT_ID in environment")
        if not self.client_secret:
            errors.append("Missing REDDIT_CLIENT_SECRET in environment")
        return errors

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = self.credential_errors()

        if self.activity_limit <= 0:
            errors.append("activity_limit must be greater than 0")
        if self.request_timeout_sec <= 0:
            errors.append("request_timeout_sec must be greater than 0")

        if self.rate_limit.min_request_interval_ms < 0:
            errors.append("rate_limit.min_request_interval_ms must not be negative")
        if self.rate_limit.max_concurrent_fetches <= 0:
            errors.append("rate_limit.max_concurrent_fetches must be greater than 0")

        if self.retry.profile_max_retries < 0:
            errors.append("retry.profile_max_retries must not be negative")

        if not 0.0 <= self.detection.anomaly_weight <= 1.0:
            errors.append("detection.anomaly_weight must be between 0 and 1")
        if not 0.0 <= self.detection.bot_threshold <= 1.0:
            errors.append("detection.bot_threshold must be between 0 and 1")
        if self.detection.max_workers <= 0:
            errors.append("detection.max_workers must be greater than 0")

        if not self.database.url:
            errors.append("database.url (or DATABASE_URL) must be specified")

        return errors
