from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

from echoes.api.models import ChatLine, TallyBoard, TallyView
from echoes.chat import ChatFeed, ChatMessage, MockChat
from echoes.config import Settings
from echoes.game_loop import GameLoop
from echoes.game_state import GameStateMachine
from echoes.votes import TallyResult, VoteCoordinator
from echoes.websocket_hub import GameWebSocketHub, hub

logger = logging.getLogger(__name__)


def tally_views(tallies: list[TallyResult]) -> list[TallyView]:
    return [TallyView(command=t.command, votes=t.votes, voter_count=t.voter_count) for t in tallies]


def chat_line(message: ChatMessage) -> ChatLine:
    return ChatLine(
        username=message.username,
        text=message.text,
        badges=sorted(message.badges, key=lambda r: r.value),
        ts=message.ts,
    )


@dataclass(slots=True)
class GameSession:
    """Everything one running game needs, wired together.

    State-change notifications arrive many times per command; they are coalesced into a
    single `state_changed` broadcast per event-loop iteration. Chat lines are pushed one
    `chat_message` at a time.
    """

    settings: Settings
    world: GameStateMachine
    votes: VoteCoordinator
    game: GameLoop
    chat_feed: ChatFeed = field(default_factory=ChatFeed)
    mock_chat: MockChat | None = None
    hub: GameWebSocketHub = hub
    _flush_scheduled: bool = field(default=False, init=False)

    def start(self) -> None:
        self.world.set_state_change_callback(self._on_state_changed)
        self.game.on_tallies = self._on_tallies
        self.chat_feed.on_message = self._on_chat_message
        self.game.start()
        if self.mock_chat is not None:
            self.mock_chat.start()
        logger.info("Game session started")

    async def stop(self) -> None:
        if self.mock_chat is not None:
            await self.mock_chat.stop()
        self.game.stop()
        self.world.set_state_change_callback(None)
        self.game.on_tallies = None
        self.chat_feed.on_message = None
        logger.info("Game session stopped")

    def tally_board(self) -> TallyBoard:
        return TallyBoard(
            voting_active=self.votes.is_voting_active(),
            voting_ends_in=round(self.votes.remaining_seconds(), 3),
            tallies=tally_views(self.votes.get_current_tallies()),
        )

    def chat_lines(self) -> list[ChatLine]:
        return [chat_line(m) for m in self.chat_feed.recent()]

    def _on_state_changed(self) -> None:
        if self._flush_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_scheduled = True
        loop.call_soon(self._flush_state_changed)

    def _flush_state_changed(self) -> None:
        self._flush_scheduled = False
        self.hub.broadcast_soon({"type": "state_changed"})

    def _on_tallies(self, tallies: list[TallyResult]) -> None:
        self.hub.broadcast_soon(
            {
                "type": "tallies_updated",
                "tallies": [v.model_dump(mode="json") for v in tally_views(tallies)],
            }
        )

    def _on_chat_message(self, message: ChatMessage) -> None:
        self.hub.broadcast_soon({"type": "chat_message", "message": chat_line(message).model_dump(mode="json")})


def build_session(settings: Settings) -> GameSession:
    rng = random.Random(settings.seed)
    world = GameStateMachine(rng=rng)
    votes = VoteCoordinator(voting_period_s=settings.voting_period_s, weights=settings.weights)
    game = GameLoop(votes=votes, world=world)
    feed = ChatFeed()
    mock_chat = (
        MockChat(game=game, rng=rng, interval_s=settings.mock_chat_interval_s, feed=feed)
        if settings.use_mock_chat
        else None
    )
    return GameSession(settings=settings, world=world, votes=votes, game=game, chat_feed=feed, mock_chat=mock_chat)


_SESSION: GameSession | None = None


def init_session(settings: Settings) -> GameSession:
    """Build the app-wide session once.

    Safe to call multiple times; subsequent calls return the already built instance.
    """

    global _SESSION
    if _SESSION is None:
        _SESSION = build_session(settings)
    return _SESSION


def reset_session_for_tests() -> None:
    global _SESSION
    _SESSION = None


def get_session() -> GameSession:
    if _SESSION is None:
        raise RuntimeError("Game session not initialized. Call init_session() at startup.")
    return _SESSION
