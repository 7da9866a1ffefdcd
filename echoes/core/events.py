from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

from echoes.roles import Role


class CommandKind(StrEnum):
    """Chat commands the audience can vote for.

    Declaration order is the tie-break order when ranking a window's tallies.
    """

    explore = "explore"
    hack = "hack"
    investigate = "investigate"
    defend = "defend"


COMMAND_ORDER: tuple[CommandKind, ...] = tuple(CommandKind)


@dataclass(frozen=True, slots=True)
class CommandEvent:
    """One recognized `!<command>` issued by one chat participant."""

    command: str
    identity: str
    roles: frozenset[Role] = frozenset()
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def of(*, command: str, identity: str, roles: tuple[Role | str, ...] | list[Role | str] = ()) -> "CommandEvent":
        return CommandEvent(command=command, identity=identity, roles=frozenset(Role(r) for r in roles))
