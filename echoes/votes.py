from __future__ import annotations

import asyncio
import math
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from echoes.core.events import COMMAND_ORDER, CommandEvent, CommandKind
from echoes.roles import RoleWeights, weight_for

logger = logging.getLogger(__name__)

DEFAULT_VOTING_PERIOD_S = 60.0


@dataclass(frozen=True, slots=True)
class TallyResult:
    """Read-only snapshot of one command's tally."""

    command: CommandKind
    votes: int
    voters: frozenset[str] = frozenset()

    @property
    def voter_count(self) -> int:
        return len(self.voters)

    def summary(self) -> TallySummary:
        return TallySummary(command=self.command, votes=self.votes, voter_count=self.voter_count)


@dataclass(frozen=True, slots=True)
class TallySummary:
    """A tally without voter identities, safe to keep after its window closes."""

    command: CommandKind
    votes: int
    voter_count: int


@dataclass(slots=True)
class _CommandTally:
    command: CommandKind
    votes: int = 0
    voters: set[str] = field(default_factory=set)

    def snapshot(self) -> TallyResult:
        return TallyResult(command=self.command, votes=self.votes, voters=frozenset(self.voters))


VotingCallback = Callable[[list[TallyResult]], None]


def _validate_period(seconds: float) -> float:
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"Voting period must be a positive number of seconds (got {seconds!r})")
    return float(seconds)


def rank_tallies(tallies: list[TallyResult]) -> list[TallyResult]:
    """Sort descending by votes; ties keep the declared command order."""

    order = {cmd: i for i, cmd in enumerate(COMMAND_ORDER)}
    return sorted(tallies, key=lambda t: (-t.votes, order[t.command]))


class VoteCoordinator:
    """Runs fixed-length voting windows and tallies weighted chat votes.

    Contract:
      - at most one window is active; `start_voting` force-closes a live window
        (firing its callback) before opening the next one.
      - one vote per identity per window, whatever command it was for. Repeats are ignored.
      - the window timer is an `asyncio.TimerHandle` owned by this instance, so
        `start_voting` must be called with an event loop running.

    All methods are synchronous and run on the event loop thread, which makes each
    call atomic with respect to the others.
    """

    def __init__(self, *, voting_period_s: float = DEFAULT_VOTING_PERIOD_S, weights: RoleWeights | None = None) -> None:
        self._voting_period_s = _validate_period(voting_period_s)
        self._weights = weights or RoleWeights()
        self._tallies: dict[CommandKind, _CommandTally] = {cmd: _CommandTally(cmd) for cmd in COMMAND_ORDER}
        self._voted: set[str] = set()
        self._active = False
        self._timer: asyncio.TimerHandle | None = None
        self._deadline: float | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_complete: VotingCallback | None = None

    # --- window lifecycle ---

    def start_voting(self, on_complete: VotingCallback) -> None:
        loop = asyncio.get_running_loop()

        if self._active:
            logger.info("Force-closing active voting window before starting a new one")
            self.end_voting()

        # The closed window's callback may have opened a window of its own; this call replaces it.
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._reset_tallies()
        self._on_complete = on_complete
        self._active = True
        self._loop = loop
        self._deadline = loop.time() + self._voting_period_s
        self._timer = loop.call_later(self._voting_period_s, self.end_voting)
        logger.info("Voting window opened (%.1fs)", self._voting_period_s)

    def end_voting(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._deadline = None
        self._active = False

        # Cleared before invoking so the callback can open the next window re-entrantly.
        callback, self._on_complete = self._on_complete, None
        if callback is None:
            return

        results = rank_tallies(self.get_current_tallies())
        logger.info(
            "Voting window closed: %s",
            ", ".join(f"{t.command.value}={t.votes}" for t in results),
        )
        callback(results)

    def _reset_tallies(self) -> None:
        for tally in self._tallies.values():
            tally.votes = 0
            tally.voters.clear()
        self._voted.clear()

    # --- votes ---

    def register_vote(self, event: CommandEvent) -> bool:
        """Count a vote if a window is open and the voter hasn't voted yet.

        Returns True when the vote counted. Late, duplicate and unknown-command votes
        are dropped rather than raised.
        """

        if not self._active:
            logger.debug("Dropping vote from %s: no active window", event.identity)
            return False

        try:
            command = CommandKind(event.command)
        except ValueError:
            logger.debug("Ignoring vote for unknown command %r", event.command)
            return False
        tally = self._tallies[command]

        if event.identity in self._voted:
            logger.debug("Ignoring repeat vote from %s", event.identity)
            return False

        weight = weight_for(event.roles, self._weights)
        tally.votes += weight
        tally.voters.add(event.identity)
        self._voted.add(event.identity)
        logger.debug("Vote %s from %s (weight=%d)", tally.command.value, event.identity, weight)
        return True

    def get_current_tallies(self) -> list[TallyResult]:
        return [self._tallies[cmd].snapshot() for cmd in COMMAND_ORDER]

    # --- config / introspection ---

    def is_voting_active(self) -> bool:
        return self._active

    def remaining_seconds(self) -> float:
        if not self._active or self._deadline is None or self._loop is None:
            return 0.0
        return max(0.0, self._deadline - self._loop.time())

    @property
    def weights(self) -> RoleWeights:
        return self._weights

    def set_weights(self, **weights: int) -> None:
        self._weights = self._weights.merged(**weights)

    @property
    def voting_period_s(self) -> float:
        return self._voting_period_s

    def set_voting_period(self, seconds: float) -> None:
        """Takes effect for windows started after this call."""

        self._voting_period_s = _validate_period(seconds)
