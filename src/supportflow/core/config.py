"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class RedisConfig(BaseSettings):
    """Redis job broker connection."""

    model_config = {"env_prefix": "SUPPORTFLOW_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "supportflow"
    connect_timeout: float = 5.0
    reconnect_attempts: int = 5
    reconnect_backoff_cap: float = 3.0  # seconds


class QueueConfig(BaseSettings):
    """Per-job retry and retention policy shared by every stage queue."""

    model_config = {"env_prefix": "SUPPORTFLOW_QUEUE_"}

    attempts: int = 3
    backoff_delay: float = 2.0  # doubles on every retry
    completed_ttl: int = 3600  # 1 hour
    failed_ttl: int = 86400  # 24 hours
    stalled_timeout: float = 300.0  # unacknowledged active jobs are requeued after this
    poll_interval: float = 1.0


class DynamoDBConfig(BaseSettings):
    """DynamoDB record/directory store configuration."""

    model_config = {"env_prefix": "SUPPORTFLOW_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class EscalationConfig(BaseSettings):
    """Escalation sweep cadence and per-priority thresholds (hours)."""

    model_config = {"env_prefix": "SUPPORTFLOW_ESCALATION_"}

    interval_seconds: float = 300.0
    thresholds: dict[str, float] = Field(
        default_factory=lambda: {"urgent": 1, "high": 4, "medium": 12, "low": 24}
    )
    default_threshold: float = 24


class NotificationConfig(BaseSettings):
    """Notification content settings. Transport credentials live with the transports."""

    model_config = {"env_prefix": "SUPPORTFLOW_NOTIFY_"}

    slack_enabled: bool = False
    slack_channel: str = "#queries"
    frontend_url: str = "http://localhost:3000"


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "SUPPORTFLOW_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False
    log_dir: str | None = None
    store: Literal["memory", "dynamodb"] = "memory"
    auto_assign: bool = True
    sentiment_scorer: Literal["vader", "lexicon"] = "vader"

    redis: RedisConfig = Field(default_factory=RedisConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    dynamodb: DynamoDBConfig = Field(default_factory=DynamoDBConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
