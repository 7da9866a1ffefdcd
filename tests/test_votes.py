from __future__ import annotations

import asyncio
import random

import pytest

from echoes.core.events import COMMAND_ORDER, CommandEvent, CommandKind
from echoes.roles import Role, RoleWeights, resolve_role
from echoes.votes import TallyResult, VoteCoordinator, rank_tallies

WEIGHTS = RoleWeights(regular=1, subscriber=2, vip=3, moderator=5)


def _vote(command: str, identity: str, *roles: Role) -> CommandEvent:
    return CommandEvent.of(command=command, identity=identity, roles=list(roles))


@pytest.mark.asyncio
async def test_window_scenario_dedups_and_ranks_with_declared_tie_break() -> None:
    coord = VoteCoordinator(voting_period_s=1.0, weights=WEIGHTS)
    results: list[list[TallyResult]] = []
    coord.start_voting(results.append)

    assert coord.register_vote(_vote("explore", "alice", Role.subscriber)) is True
    assert coord.register_vote(_vote("explore", "bob")) is True
    # alice already voted this window, for a different command.
    assert coord.register_vote(_vote("hack", "alice", Role.subscriber)) is False
    assert coord.register_vote(_vote("hack", "carol")) is True

    coord.end_voting()

    assert len(results) == 1
    ranked = results[0]
    assert [t.command for t in ranked] == [
        CommandKind.explore,
        CommandKind.hack,
        CommandKind.investigate,
        CommandKind.defend,
    ]
    assert [t.votes for t in ranked] == [3, 1, 0, 0]
    assert ranked[0].voters == frozenset({"alice", "bob"})
    assert ranked[1].voter_count == 1
    assert coord.is_voting_active() is False


@pytest.mark.asyncio
async def test_weight_sum_matches_first_votes_of_distinct_identities() -> None:
    rng = random.Random(1234)
    coord = VoteCoordinator(voting_period_s=5.0, weights=WEIGHTS)
    coord.start_voting(lambda _results: None)

    expected_total = 0
    seen: set[str] = set()
    for _ in range(300):
        identity = f"user{rng.randrange(40)}"
        roles = [r for r in Role if rng.random() < 0.3]
        command = rng.choice([c.value for c in CommandKind])
        counted = coord.register_vote(_vote(command, identity, *roles))
        assert counted == (identity not in seen)
        if identity not in seen:
            seen.add(identity)
            expected_total += WEIGHTS.for_role(resolve_role(roles))

    tallies = coord.get_current_tallies()
    assert sum(t.votes for t in tallies) == expected_total

    all_voters = [v for t in tallies for v in t.voters]
    assert len(all_voters) == len(set(all_voters)) == len(seen)
    coord.end_voting()


@pytest.mark.asyncio
async def test_votes_outside_a_window_are_dropped() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    assert coord.register_vote(_vote("explore", "early")) is False

    coord.start_voting(lambda _results: None)
    coord.end_voting()
    assert coord.register_vote(_vote("explore", "late")) is False
    assert all(t.votes == 0 for t in coord.get_current_tallies())


@pytest.mark.asyncio
async def test_unknown_command_is_ignored_without_consuming_the_vote() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    coord.start_voting(lambda _results: None)

    assert coord.register_vote(_vote("dance", "dave")) is False
    assert coord.register_vote(_vote("defend", "dave")) is True
    assert coord.get_current_tallies()[-1].votes == 1
    coord.end_voting()


@pytest.mark.asyncio
async def test_current_tallies_are_in_declaration_order_mid_window() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    coord.start_voting(lambda _results: None)
    coord.register_vote(_vote("defend", "a", Role.moderator))

    tallies = coord.get_current_tallies()
    assert [t.command for t in tallies] == list(COMMAND_ORDER)
    assert tallies[3].votes == 5
    coord.end_voting()


@pytest.mark.asyncio
async def test_start_voting_force_closes_the_previous_window() -> None:
    coord = VoteCoordinator(voting_period_s=10.0)
    first: list[list[TallyResult]] = []
    second: list[list[TallyResult]] = []

    coord.start_voting(first.append)
    coord.register_vote(_vote("investigate", "erin", Role.vip))

    coord.start_voting(second.append)

    assert len(first) == 1
    assert first[0][0].command == CommandKind.investigate
    assert first[0][0].votes == 3

    # New window starts clean, and erin may vote again.
    assert coord.is_voting_active() is True
    assert all(t.votes == 0 for t in coord.get_current_tallies())
    assert coord.register_vote(_vote("hack", "erin")) is True

    coord.end_voting()
    assert len(first) == 1
    assert len(second) == 1


@pytest.mark.asyncio
async def test_timer_expiry_closes_the_window_once() -> None:
    coord = VoteCoordinator(voting_period_s=0.02)
    results: list[list[TallyResult]] = []
    coord.start_voting(results.append)
    coord.register_vote(_vote("hack", "frank"))

    await asyncio.sleep(0.1)

    assert coord.is_voting_active() is False
    assert len(results) == 1
    assert results[0][0].command == CommandKind.hack

    # A stray explicit close afterwards does not fire the callback again.
    coord.end_voting()
    assert len(results) == 1


def test_end_voting_without_a_window_is_a_no_op() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    coord.end_voting()
    assert coord.is_voting_active() is False


@pytest.mark.parametrize("bad", [0, -5, float("nan"), float("inf")])
def test_invalid_period_is_rejected_at_configuration_time(bad: float) -> None:
    with pytest.raises(ValueError):
        VoteCoordinator(voting_period_s=bad)

    coord = VoteCoordinator(voting_period_s=1.0)
    with pytest.raises(ValueError):
        coord.set_voting_period(bad)
    assert coord.voting_period_s == 1.0


@pytest.mark.asyncio
async def test_set_voting_period_only_affects_later_windows() -> None:
    coord = VoteCoordinator(voting_period_s=30.0)
    coord.start_voting(lambda _results: None)
    coord.set_voting_period(1.0)

    assert coord.remaining_seconds() > 20.0

    coord.start_voting(lambda _results: None)
    assert 0.0 < coord.remaining_seconds() <= 1.0
    coord.end_voting()
    assert coord.remaining_seconds() == 0.0


@pytest.mark.asyncio
async def test_set_weights_applies_immediately() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    coord.set_weights(subscriber=7)
    coord.start_voting(lambda _results: None)
    coord.register_vote(_vote("explore", "gina", Role.subscriber))

    assert coord.get_current_tallies()[0].votes == 7
    coord.end_voting()


def test_rank_tallies_is_deterministic_on_ties() -> None:
    tallies = [
        TallyResult(CommandKind.defend, 4),
        TallyResult(CommandKind.hack, 4),
        TallyResult(CommandKind.investigate, 9),
        TallyResult(CommandKind.explore, 0),
    ]
    for _ in range(5):
        ranked = rank_tallies(tallies)
        assert [t.command for t in ranked] == [
            CommandKind.investigate,
            CommandKind.hack,
            CommandKind.defend,
            CommandKind.explore,
        ]


def test_start_voting_requires_a_running_loop() -> None:
    coord = VoteCoordinator(voting_period_s=1.0)
    with pytest.raises(RuntimeError):
        coord.start_voting(lambda _results: None)
    assert coord.is_voting_active() is False
