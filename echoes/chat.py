"""Chat-side glue: turn raw chat lines into `CommandEvent`s and run a mock chat feed.

Only recognized command kinds ever leave `parse_command`; everything else is plain chat.
Every line, command or not, lands in the rolling `ChatFeed` shown next to the game.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from echoes.api.models import LogKind
from echoes.core.events import CommandEvent, CommandKind
from echoes.game_loop import GameLoop
from echoes.roles import Role

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "!"
MAX_CHAT_MESSAGES = 100


@dataclass(frozen=True, slots=True)
class ChatMessage:
    username: str
    text: str
    badges: frozenset[Role] = frozenset()
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def parse_command(message: ChatMessage, *, prefix: str = COMMAND_PREFIX) -> CommandEvent | None:
    """Return a CommandEvent for `!<command>` messages naming a known command.

    The first word is matched case-insensitively; anything after it is ignored.
    """

    text = message.text.strip()
    if not text.startswith(prefix):
        return None

    words = text[len(prefix):].split()
    if not words:
        return None

    name = words[0].casefold()
    if name not in {c.value for c in CommandKind}:
        return None

    return CommandEvent(command=CommandKind(name), identity=message.username, roles=message.badges)


ChatListener = Callable[[ChatMessage], None]


class ChatFeed:
    """Rolling buffer of the most recent chat lines; the oldest drop off first."""

    def __init__(self, maxlen: int = MAX_CHAT_MESSAGES) -> None:
        if maxlen <= 0:
            raise ValueError("Chat feed size must be positive")
        self._messages: deque[ChatMessage] = deque(maxlen=maxlen)
        self.on_message: ChatListener | None = None

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, message: ChatMessage) -> None:
        self._messages.append(message)
        if self.on_message is not None:
            self.on_message(message)

    def recent(self) -> list[ChatMessage]:
        return list(self._messages)


def relay_message(message: ChatMessage, *, game: GameLoop, feed: ChatFeed | None = None) -> bool | None:
    """Record a chat line and, when it is a command, vote with it.

    Returns None for plain chat, otherwise whether the vote counted.
    """

    if feed is not None:
        feed.add(message)
    event = parse_command(message)
    if event is None:
        return None
    return game.submit_command(event)


MOCK_USERNAMES: tuple[str, ...] = (
    "CyberPioneer",
    "DataRunner",
    "NeonMod",
    "GlitchSeeker",
    "SilentObserver",
    "VoidWalker",
)

MOCK_MESSAGES: tuple[str, ...] = tuple(f"{COMMAND_PREFIX}{c.value}" for c in CommandKind)

MOCK_BADGES: tuple[frozenset[Role], ...] = (
    frozenset(),
    frozenset({Role.subscriber}),
    frozenset({Role.moderator}),
    frozenset({Role.vip}),
    frozenset({Role.subscriber, Role.vip}),
)


class MockChat:
    """Development chat feed: one random viewer command every `interval_s` seconds."""

    def __init__(
        self,
        *,
        game: GameLoop,
        rng: random.Random | None = None,
        interval_s: float = 3.0,
        usernames: Iterable[str] = MOCK_USERNAMES,
        feed: ChatFeed | None = None,
    ) -> None:
        if not math.isfinite(interval_s) or interval_s <= 0:
            raise ValueError(f"Mock chat interval must be a positive number of seconds (got {interval_s!r})")
        self.game = game
        self.rng = rng or random.Random()
        self.interval_s = interval_s
        self.usernames = tuple(usernames)
        self.feed = feed
        self._task: asyncio.Task[None] | None = None

    def next_message(self) -> ChatMessage:
        return ChatMessage(
            username=self.rng.choice(self.usernames),
            text=self.rng.choice(MOCK_MESSAGES),
            badges=self.rng.choice(MOCK_BADGES),
        )

    def emit_one(self) -> ChatMessage:
        message = self.next_message()
        relay_message(message, game=self.game, feed=self.feed)
        return message

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self.game.world.add_log(
            "Running in development mode with mock data. Connect to real chat to play with viewers.",
            LogKind.system,
        )
        self._task = asyncio.create_task(self._run())
        logger.info("Mock chat started (every %.1fs)", self.interval_s)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            message = self.emit_one()
            logger.debug("Mock chat: %s: %s", message.username, message.text)
