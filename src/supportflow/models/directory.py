"""Team and user (agent) reference data read by the routing engine."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    SPECIALIST = "specialist"
    LEAD = "lead"


class TeamStats(BaseModel):
    total_queries: int = 0
    average_response_time: float = 0.0  # minutes


class UserStats(BaseModel):
    total_assigned: int = 0
    total_resolved: int = 0
    average_response_time: float = 0.0  # minutes


class Team(BaseModel):
    """Capability descriptor: which tags, channels and priorities a team handles."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    description: str = ""
    handles_tags: list[str] = Field(default_factory=list)
    handles_channels: list[str] = Field(default_factory=list)
    handles_priorities: list[str] = Field(default_factory=list)
    is_active: bool = True
    stats: TeamStats = Field(default_factory=TeamStats)


class User(BaseModel):
    """A support agent. Belongs to at most one team."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    email: str
    role: UserRole = UserRole.AGENT
    team: Optional[str] = None
    is_active: bool = True
    slack_id: Optional[str] = None
    stats: UserStats = Field(default_factory=UserStats)
