"""Shared fixtures: fakeredis-backed broker, memory stores and a wired pipeline."""

from __future__ import annotations

from unittest.mock import patch

import fakeredis
import pytest

from supportflow.broker.redis_broker import RedisJobBroker
from supportflow.core.config import AppSettings
from supportflow.models.directory import Team, User, UserRole
from supportflow.models.job import NotificationType
from supportflow.orchestrator.pipeline import Pipeline
from tests.fakes import Clock, MemoryDirectory, MemoryRecordStore, RecordingTransport


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def broker(fake_server, clock):
    with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=fake_server, decode_responses=True)):
        return RedisJobBroker(clock=clock.epoch, sleep=lambda _: None)


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def directory():
    return MemoryDirectory()


@pytest.fixture
def seeded_directory(directory):
    """Three teams and a handful of agents."""
    directory.save_team(Team(
        id="customer-support", name="Customer Support",
        handles_tags=["question", "request", "feedback"],
        handles_channels=["email", "chat", "phone"],
        handles_priorities=["low", "medium", "high"],
    ))
    directory.save_team(Team(
        id="technical-support", name="Technical Support",
        handles_tags=["technical_issue", "complaint"],
        handles_channels=["email", "chat", "community"],
        handles_priorities=["medium", "high", "urgent"],
    ))
    directory.save_team(Team(
        id="billing-payments", name="Billing & Payments",
        handles_tags=["billing", "request", "complaint"],
        handles_channels=["email", "phone"],
        handles_priorities=["medium", "high", "urgent"],
    ))
    directory.save_user(User(id="alice", name="Alice Johnson", email="alice@company.com",
                             team="customer-support"))
    directory.save_user(User(id="charlie", name="Charlie Brown", email="charlie@company.com",
                             role=UserRole.SPECIALIST, team="technical-support"))
    directory.save_user(User(id="eve", name="Eve Wilson", email="eve@company.com",
                             team="billing-payments"))
    return directory


@pytest.fixture
def transports():
    return {str(kind): RecordingTransport() for kind in NotificationType}


@pytest.fixture
def settings():
    return AppSettings()


@pytest.fixture
def pipeline(settings, broker, records, seeded_directory, transports, clock):
    return Pipeline(
        settings=settings,
        broker=broker,
        records=records,
        directory=seeded_directory,
        transports=transports,
        clock=clock,
    )
