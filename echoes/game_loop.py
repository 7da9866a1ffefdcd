from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from echoes.core.events import CommandEvent
from echoes.game_state import GameStateMachine
from echoes.votes import TallyResult, TallySummary, VoteCoordinator

logger = logging.getLogger(__name__)

TalliesListener = Callable[[list[TallyResult]], None]


@dataclass(slots=True)
class WindowOutcome:
    window_id: int
    winner: TallySummary
    ranked: list[TallySummary] = field(default_factory=list)


class GameLoop:
    """Chains voting windows: each window's winner is applied, then the next window opens.

    `stop()` closes the open window through the coordinator's normal `end_voting` path;
    a completion that arrives after stopping is discarded and does not reopen voting.
    """

    def __init__(
        self,
        *,
        votes: VoteCoordinator,
        world: GameStateMachine,
        on_tallies: TalliesListener | None = None,
    ) -> None:
        self.votes = votes
        self.world = world
        self.on_tallies = on_tallies
        self.window_id = 0
        self.last_outcome: WindowOutcome | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._open_window()

    def stop(self) -> None:
        self._running = False
        if self.votes.is_voting_active():
            self.votes.end_voting()

    def submit_command(self, event: CommandEvent) -> bool:
        counted = self.votes.register_vote(event)
        if counted:
            self._publish_tallies()
        return counted

    def _open_window(self) -> None:
        self.window_id += 1
        self.votes.start_voting(self._on_voting_complete)
        self._publish_tallies()

    def _on_voting_complete(self, results: list[TallyResult]) -> None:
        if not self._running:
            logger.info("Game loop stopped; discarding window %d results", self.window_id)
            return
        if not results:
            return

        winner = results[0]
        logger.info("Window %d winner: %s (%d votes)", self.window_id, winner.command.value, winner.votes)
        self.last_outcome = WindowOutcome(
            window_id=self.window_id,
            winner=winner.summary(),
            ranked=[t.summary() for t in results],
        )
        self.world.process_command(winner)
        self._open_window()

    def _publish_tallies(self) -> None:
        if self.on_tallies is not None:
            self.on_tallies(self.votes.get_current_tallies())
