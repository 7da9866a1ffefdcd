from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, fields, replace
from enum import Enum


class Role(str, Enum):
    regular = "regular"
    subscriber = "subscriber"
    vip = "vip"
    moderator = "moderator"


# Highest priority first. A voter holding several roles is weighted by the first match.
ROLE_PRIORITY: tuple[Role, ...] = (
    Role.moderator,
    Role.vip,
    Role.subscriber,
    Role.regular,
)


@dataclass(frozen=True, slots=True)
class RoleWeights:
    regular: int = 1
    subscriber: int = 2
    vip: int = 3
    moderator: int = 5

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"Weight for role '{f.name}' must be a positive integer (got {value!r})")

    def for_role(self, role: Role | str) -> int:
        return getattr(self, Role(role).value)

    def merged(self, **changes: int) -> "RoleWeights":
        """Return a copy with some weights overridden.

        Unknown role names are rejected so that typos fail at configuration time.
        """

        unknown = set(changes) - {r.value for r in Role}
        if unknown:
            raise ValueError(f"Unknown role(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)


def resolve_role(roles: Iterable[Role | str]) -> Role:
    """Pick the single role class that applies to a voter.

    Total over any input: unrecognized role strings are ignored and an empty set
    resolves to `Role.regular`.
    """

    held: set[Role] = set()
    for r in roles:
        try:
            held.add(Role(r))
        except ValueError:
            continue

    for role in ROLE_PRIORITY:
        if role in held:
            return role
    return Role.regular


def weight_for(roles: Iterable[Role | str], weights: RoleWeights) -> int:
    return weights.for_role(resolve_role(roles))
