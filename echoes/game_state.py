"""World state for the chat-driven narrative: zones, metrics and the narrative log.

Every mutation funnels through three choke points:
- `add_log` is the only way entries reach the log (capped at `MAX_LOG_ENTRIES`).
- `update_metrics` is the only way metrics change, and it clamps to [0, 100].
- zone status changes go through `ZoneFSM`.

Each mutating call fires the state-change notification before returning.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime

from statemachine.exceptions import TransitionNotAllowed

from echoes.api.models import GameMetrics, LogEntry, LogKind, WorldSnapshot, Zone, ZonePosition, ZoneStatus
from echoes.core.events import CommandKind
from echoes.fsm import ZoneFSM
from echoes.notify import StateChangeListener, StateChangeNotifier
from echoes.votes import TallyResult

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 100
METRIC_MIN = 0
METRIC_MAX = 100

START_ZONE_ID = "central-hub"
DATA_CENTER_ZONE_ID = "data-center"

EXPLORE_UNLOCK_CHANCE = 0.3


class ZoneNotFoundError(LookupError):
    """Raised for a zone id outside the fixed world graph (a caller bug)."""


def _now() -> datetime:
    return datetime.now()


def _initial_zones() -> list[Zone]:
    return [
        Zone(
            id="central-hub",
            name="Central Hub",
            status=ZoneStatus.active,
            position=ZonePosition(x=50, y=50),
            connections=["data-center", "residential", "power-plant"],
            description=(
                "The remnants of what was once a thriving city center. Crumbling buildings frame "
                "abandoned streets, but faint signs of life persist."
            ),
        ),
        Zone(
            id="data-center",
            name="Abandoned Data Center",
            status=ZoneStatus.active,
            position=ZonePosition(x=25, y=25),
            connections=["central-hub", "power-plant"],
            description=(
                "A maze of silent servers and tangled cables. Ancient data flows through these "
                "machines, holding secrets from before the collapse."
            ),
        ),
        Zone(
            id="residential",
            name="Residential Ruins",
            status=ZoneStatus.locked,
            position=ZonePosition(x=75, y=25),
            connections=["central-hub"],
            description=(
                "Once home to thousands, now a silent graveyard of personal belongings and memories. "
                "Strange signals emanate from deep within."
            ),
        ),
        Zone(
            id="power-plant",
            name="Power Plant",
            status=ZoneStatus.locked,
            position=ZonePosition(x=75, y=75),
            connections=["central-hub", "data-center"],
            description=(
                "The city's former energy heart, now dormant. Restoring power here could bring "
                "long-dead systems back online."
            ),
        ),
    ]


# Sparse: zones without an entry only get the generic investigation narrative.
INVESTIGATE_LORE: dict[str, str] = {
    "central-hub": 'Faded markings on the walls hint at an organization called "The Collective" that once operated here.',
    "data-center": (
        "Among the tangle of cables, a peculiar pattern emerges - someone deliberately rerouted "
        "core systems before the collapse."
    ),
}

HACK_DATA_CENTER_LORE = 'The ancient servers yield fragments of data, hinting at something called "Protocol Silence"...'


def _clamp_metric(value: int) -> int:
    return min(METRIC_MAX, max(METRIC_MIN, int(value)))


def chat_influence_gain(turnout: int) -> int:
    """Influence earned by a window: one point per five voters, between 1 and 10."""

    return min(10, max(1, turnout // 5))


class GameStateMachine:
    """Owns the zone graph, the metrics and the log, and applies winning commands.

    `rng` drives the explore unlock roll and neighbour pick; `clock` drives log display times.
    Both are injectable so tests can be deterministic.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _now,
        zones: list[Zone] | None = None,
        start_zone_id: str = START_ZONE_ID,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self._notifier = StateChangeNotifier()

        self._zones: dict[str, Zone] = {z.id: z.model_copy(deep=True) for z in (zones or _initial_zones())}
        if self._require_zone(start_zone_id).status != ZoneStatus.active:
            raise ValueError(f"Start zone '{start_zone_id}' must be active")
        self._active_zone_id = start_zone_id

        self._logs: list[LogEntry] = []
        self._next_log_id = 1
        self._metrics = GameMetrics()

        self._handlers: dict[CommandKind, Callable[[int], None]] = {
            CommandKind.explore: self._handle_explore,
            CommandKind.hack: self._handle_hack,
            CommandKind.investigate: self._handle_investigate,
            CommandKind.defend: self._handle_defend,
        }

        self.add_log(
            "Welcome to Echoes of the Silenced. The fate of this world rests in the hands of the chat.",
            LogKind.system,
        )
        self.add_log(
            "The rain begins to fall over the broken towers, each drop carrying whispers of the past...",
            LogKind.narrative,
        )

    # --- notification channel ---

    def set_state_change_callback(self, listener: StateChangeListener | None) -> None:
        """Register the single state-change listener, replacing any previous one."""

        self._notifier.set_listener(listener)

    def _notify(self) -> None:
        self._notifier.notify()

    # --- commands ---

    def process_command(self, tally: TallyResult) -> None:
        """Apply the winning tally of a finished voting window.

        Runs even when nobody voted: there is no abstention path.
        """

        command = CommandKind(tally.command)
        turnout = tally.voter_count
        zone = self._require_zone(self._active_zone_id)

        logger.info("Processing %s in %s (votes=%d, turnout=%d)", command.value, zone.id, tally.votes, turnout)
        self.add_log(f"Chat voted to {command.value.upper()} {zone.name}", LogKind.action)

        self._handlers[command](turnout)

        self.update_metrics(chat_influence=self._metrics.chat_influence + chat_influence_gain(turnout))
        self._notify()

    def _handle_explore(self, turnout: int) -> None:
        zone = self._require_zone(self._active_zone_id)
        self.add_log(
            f"The collective consciousness guides your exploration of {zone.name}. "
            "Forgotten pathways reveal themselves.",
            LogKind.narrative,
        )

        locked = [zid for zid in zone.connections if self._require_zone(zid).status == ZoneStatus.locked]
        if locked and self._rng.random() < EXPLORE_UNLOCK_CHANCE:
            target_id = self._rng.choice(locked)
            self.unlock_zone(target_id)
            self.add_log(f"A new path to {self._require_zone(target_id).name} has been discovered!", LogKind.system)
            self.update_metrics(mystery_progress=self._metrics.mystery_progress + 5)

        self.update_metrics(stability=self._metrics.stability - 2)

    def _handle_hack(self, turnout: int) -> None:
        self.add_log(
            "Dormant systems crackle to life as the collective will infiltrates the digital remnants.",
            LogKind.narrative,
        )
        self.update_metrics(
            stability=self._metrics.stability - 5,
            mystery_progress=self._metrics.mystery_progress + 7,
        )
        if self._active_zone_id == DATA_CENTER_ZONE_ID:
            self.add_log(HACK_DATA_CENTER_LORE, LogKind.narrative)

    def _handle_investigate(self, turnout: int) -> None:
        zone = self._require_zone(self._active_zone_id)
        self.add_log(f"A thorough examination of {zone.name} reveals hidden details.", LogKind.narrative)
        self.update_metrics(mystery_progress=self._metrics.mystery_progress + 5)

        lore = INVESTIGATE_LORE.get(zone.id)
        if lore:
            self.add_log(lore, LogKind.narrative)

    def _handle_defend(self, turnout: int) -> None:
        zone = self._require_zone(self._active_zone_id)
        self.add_log(
            f"Reinforcing your position in {zone.name} provides security but delays progress.",
            LogKind.narrative,
        )
        self.update_metrics(
            stability=self._metrics.stability + 8,
            mystery_progress=max(0, self._metrics.mystery_progress - 2),
        )

    # --- zones ---

    def unlock_zone(self, zone_id: str) -> None:
        """Make a locked zone enterable. Never moves the player.

        Already active zones stay active. Completed zones are refused and stay completed;
        the refusal is logged, not raised.
        """

        zone = self._require_zone(zone_id)
        fsm = ZoneFSM(zone)
        try:
            fsm.unlock()
        except TransitionNotAllowed:
            logger.debug("Zone %s is %s; unlock ignored", zone_id, zone.status.value)
        else:
            fsm.sync_status_to_model()
            logger.info("Zone %s unlocked", zone_id)
        self._notify()

    def set_active_zone(self, zone_id: str) -> None:
        zone = self._require_zone(zone_id)
        if zone.status != ZoneStatus.active:
            logger.debug("Cannot move to %s: zone is %s", zone_id, zone.status.value)
            return

        self._active_zone_id = zone_id
        self.add_log(f"Moved to {zone.name}.", LogKind.system)
        self._notify()

    # --- log ---

    def add_log(self, text: str, kind: LogKind | str) -> LogEntry:
        entry = LogEntry(
            id=self._next_log_id,
            time=self._clock().strftime("%H:%M"),
            text=text,
            kind=LogKind(kind),
        )
        self._next_log_id += 1

        self._logs.append(entry)
        overflow = len(self._logs) - MAX_LOG_ENTRIES
        if overflow > 0:
            del self._logs[:overflow]

        self._notify()
        return entry.model_copy()

    # --- metrics ---

    def update_metrics(self, **changes: int) -> None:
        unknown = set(changes) - set(GameMetrics.model_fields)
        if unknown:
            raise ValueError(f"Unknown metric(s): {', '.join(sorted(unknown))}")

        merged = self._metrics.model_dump() | changes
        self._metrics = GameMetrics(**{name: _clamp_metric(value) for name, value in merged.items()})
        self._notify()

    # --- read accessors (return copies) ---

    def _require_zone(self, zone_id: str) -> Zone:
        zone = self._zones.get(zone_id)
        if zone is None:
            raise ZoneNotFoundError(f"Zone not found: {zone_id}")
        return zone

    def get_zones(self) -> list[Zone]:
        return [z.model_copy(deep=True) for z in self._zones.values()]

    def get_zone(self, zone_id: str) -> Zone:
        return self._require_zone(zone_id).model_copy(deep=True)

    def get_active_zone(self) -> Zone:
        return self.get_zone(self._active_zone_id)

    def get_logs(self) -> list[LogEntry]:
        return [entry.model_copy() for entry in self._logs]

    def get_metrics(self) -> GameMetrics:
        return self._metrics.model_copy()

    def snapshot(self) -> WorldSnapshot:
        return WorldSnapshot(
            zones=self.get_zones(),
            active_zone_id=self._active_zone_id,
            metrics=self.get_metrics(),
            logs=self.get_logs(),
        )
