from __future__ import annotations

from statemachine import State, StateMachine

from echoes.api.models import Zone, ZoneStatus


class ZoneFSM(StateMachine):
    """FSM wrapper around a Zone's status.

    locked -> active -> completed

    - `unlock` is idempotent on an already active zone.
    - `complete` exists to keep the graph whole, but nothing in the game drives a
      zone into `completed` yet; presentation only uses it for styling.
    - state is mutated by the game state machine; the FSM only guards transitions.
    """

    locked = State(ZoneStatus.locked.value, value=ZoneStatus.locked.value, initial=True)
    active = State(ZoneStatus.active.value, value=ZoneStatus.active.value)
    completed = State(ZoneStatus.completed.value, value=ZoneStatus.completed.value, final=True)

    unlock = locked.to(active) | active.to.itself()
    complete = active.to(completed)

    def __init__(self, zone: Zone):
        self.zone = zone
        super().__init__(start_value=zone.status.value)

    def sync_status_to_model(self) -> None:
        self.zone.status = ZoneStatus(str(self.current_state.value))
