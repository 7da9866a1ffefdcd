from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from echoes.core.events import CommandKind
from echoes.roles import Role


class ZoneStatus(StrEnum):
    locked = "locked"
    active = "active"
    completed = "completed"


class LogKind(StrEnum):
    narrative = "narrative"
    action = "action"
    system = "system"


class ZonePosition(BaseModel):
    # Percent coordinates on the map; cosmetic only.
    x: int
    y: int


class Zone(BaseModel):
    id: str
    name: str
    status: ZoneStatus = ZoneStatus.locked
    position: ZonePosition

    # Neighbouring zone ids. Storage may be one-sided; callers treat adjacency as undirected.
    connections: list[str] = Field(default_factory=list)

    description: str | None = None


class GameMetrics(BaseModel):
    stability: int = Field(75, ge=0, le=100)
    mystery_progress: int = Field(10, ge=0, le=100)
    chat_influence: int = Field(50, ge=0, le=100)


class LogEntry(BaseModel):
    id: int
    # Wall-clock display time (HH:MM, 24h).
    time: str
    text: str
    kind: LogKind


class WorldSnapshot(BaseModel):
    zones: list[Zone]
    active_zone_id: str
    metrics: GameMetrics
    logs: list[LogEntry]


class TallyView(BaseModel):
    command: CommandKind
    votes: int
    voter_count: int


class TallyBoard(BaseModel):
    voting_active: bool
    # Seconds left in the current window (0 when idle).
    voting_ends_in: float
    tallies: list[TallyView]


class CommandRequest(BaseModel):
    command: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=64)
    roles: list[Role] = Field(default_factory=list)


class CommandResponse(BaseModel):
    counted: bool


class ChatLine(BaseModel):
    username: str
    text: str
    badges: list[Role] = Field(default_factory=list)
    ts: datetime


class ChatPostRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    text: str = Field(..., min_length=1, max_length=500)
    roles: list[Role] = Field(default_factory=list)


class ChatPostResponse(BaseModel):
    # None for plain chat.
    command: CommandKind | None = None
    counted: bool = False
