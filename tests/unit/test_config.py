"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from supportflow.core.config import AppSettings, EscalationConfig, QueueConfig, RedisConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.store == "memory"
    assert settings.auto_assign is True


def test_queue_config_defaults():
    config = QueueConfig()
    assert config.attempts == 3
    assert config.backoff_delay == 2.0
    assert config.completed_ttl == 3600
    assert config.failed_ttl == 86400


def test_escalation_thresholds_default():
    config = EscalationConfig()
    assert config.thresholds == {"urgent": 1, "high": 4, "medium": 12, "low": 24}
    assert config.default_threshold == 24


def test_redis_env_override(monkeypatch):
    monkeypatch.setenv("SUPPORTFLOW_REDIS_HOST", "redis.internal")
    monkeypatch.setenv("SUPPORTFLOW_REDIS_PORT", "6380")
    config = RedisConfig()
    assert config.host == "redis.internal"
    assert config.port == 6380


def test_root_env_override(monkeypatch):
    monkeypatch.setenv("SUPPORTFLOW_STORE", "dynamodb")
    monkeypatch.setenv("SUPPORTFLOW_AUTO_ASSIGN", "false")
    settings = AppSettings()
    assert settings.store == "dynamodb"
    assert settings.auto_assign is False
