from __future__ import annotations

import asyncio
import random
from collections.abc import Sequence
from typing import TypeVar

import pytest

from echoes.chat import (
    MAX_CHAT_MESSAGES,
    MOCK_USERNAMES,
    ChatFeed,
    ChatMessage,
    MockChat,
    parse_command,
    relay_message,
)
from echoes.core.events import CommandKind
from echoes.game_loop import GameLoop
from echoes.game_state import GameStateMachine
from echoes.roles import Role
from echoes.votes import VoteCoordinator

T = TypeVar("T")


class _FirstChoice:
    def choice(self, seq: Sequence[T]) -> T:
        return seq[0]


def _game() -> GameLoop:
    return GameLoop(votes=VoteCoordinator(voting_period_s=600.0), world=GameStateMachine(rng=random.Random(1)))


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("!explore", CommandKind.explore),
        ("!HACK the mainframe", CommandKind.hack),
        ("  !Investigate  ", CommandKind.investigate),
        ("!defend!", None),
        ("defend", None),
        ("!", None),
        ("!dance", None),
        ("hello chat", None),
    ],
)
def test_parse_command(text: str, expected: CommandKind | None) -> None:
    event = parse_command(ChatMessage(username="viewer", text=text))
    if expected is None:
        assert event is None
    else:
        assert event is not None
        assert event.command == expected
        assert event.identity == "viewer"


def test_parse_command_carries_badges() -> None:
    event = parse_command(ChatMessage(username="mod", text="!defend", badges=frozenset({Role.moderator})))
    assert event is not None
    assert event.roles == frozenset({Role.moderator})


def test_custom_prefix() -> None:
    assert parse_command(ChatMessage(username="u", text="?hack"), prefix="?") is not None
    assert parse_command(ChatMessage(username="u", text="!hack"), prefix="?") is None


@pytest.mark.parametrize("bad", [0, -1.0, float("nan"), float("inf")])
def test_mock_chat_rejects_invalid_interval(bad: float) -> None:
    with pytest.raises(ValueError):
        MockChat(game=_game(), interval_s=bad)


@pytest.mark.asyncio
async def test_emit_one_submits_a_vote() -> None:
    game = _game()
    game.start()
    chat = MockChat(game=game, rng=_FirstChoice())  # type: ignore[arg-type]

    message = chat.emit_one()

    assert message.username == MOCK_USERNAMES[0]
    assert message.text == "!explore"
    tallies = game.votes.get_current_tallies()
    assert tallies[0].votes == 1
    assert tallies[0].voters == frozenset({MOCK_USERNAMES[0]})
    game.stop()


@pytest.mark.asyncio
async def test_mock_chat_feed_runs_until_stopped() -> None:
    game = _game()
    game.start()
    chat = MockChat(game=game, rng=random.Random(3), interval_s=0.01)

    chat.start()
    await asyncio.sleep(0.1)
    await chat.stop()

    texts = [e.text for e in game.world.get_logs()]
    assert any(t.startswith("Running in development mode with mock data") for t in texts)
    assert sum(t.votes for t in game.votes.get_current_tallies()) > 0

    total = sum(t.votes for t in game.votes.get_current_tallies())
    await asyncio.sleep(0.05)
    assert sum(t.votes for t in game.votes.get_current_tallies()) == total
    game.stop()


def test_chat_feed_keeps_only_the_latest_lines() -> None:
    feed = ChatFeed()
    for i in range(MAX_CHAT_MESSAGES + 50):
        feed.add(ChatMessage(username=f"viewer{i}", text=f"hello {i}"))

    lines = feed.recent()
    assert len(feed) == len(lines) == MAX_CHAT_MESSAGES
    assert lines[0].text == "hello 50"
    assert lines[-1].text == f"hello {MAX_CHAT_MESSAGES + 49}"


def test_chat_feed_notifies_listener() -> None:
    feed = ChatFeed(maxlen=3)
    seen: list[str] = []
    feed.on_message = lambda m: seen.append(m.text)

    feed.add(ChatMessage(username="a", text="hi"))

    assert seen == ["hi"]


@pytest.mark.asyncio
async def test_relay_keeps_plain_chat_and_votes_with_commands() -> None:
    game = _game()
    game.start()
    feed = ChatFeed()

    assert relay_message(ChatMessage(username="ana", text="what is this place?"), game=game, feed=feed) is None
    assert relay_message(ChatMessage(username="ana", text="!hack"), game=game, feed=feed) is True
    assert relay_message(ChatMessage(username="ana", text="!defend"), game=game, feed=feed) is False

    assert [m.text for m in feed.recent()] == ["what is this place?", "!hack", "!defend"]
    assert game.votes.get_current_tallies()[1].votes == 1
    game.stop()


@pytest.mark.asyncio
async def test_emit_one_records_the_line_in_the_feed() -> None:
    game = _game()
    game.start()
    feed = ChatFeed()
    chat = MockChat(game=game, rng=_FirstChoice(), feed=feed)  # type: ignore[arg-type]

    message = chat.emit_one()

    assert feed.recent() == [message]
    game.stop()
