from __future__ import annotations

from collections.abc import Callable

StateChangeListener = Callable[[], None]


class StateChangeNotifier:
    """Single-listener "state changed" hook.

    Contract:
      - only the most recently registered listener is called; registering replaces it.
      - `notify()` runs the listener synchronously, in-line, with no payload. Listeners
        re-read whatever they need through the game state accessors.

    Fan-out to many consumers belongs downstream (see `GameWebSocketHub`).
    """

    def __init__(self) -> None:
        self._listener: StateChangeListener | None = None

    def set_listener(self, listener: StateChangeListener | None) -> None:
        self._listener = listener

    def notify(self) -> None:
        if self._listener is not None:
            self._listener()
