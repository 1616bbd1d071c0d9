"""Per-turn record of reconciled changes.

The ledger is an explicit object passed to whoever produces or reads changes
for a turn; there is no module-level instance.

Lifecycle:
    start_turn()            arm a reset (nothing is cleared yet)
    received_model_output() first model output of the turn: clear if armed
    record_change(change)   clear if armed, then append
    get_changes()           immutable snapshot
    end_turn()              snapshot of the finished turn

Clearing happens at most once per turn, on the first activity after
``start_turn()``. Calling ``start_turn()`` twice with no activity in between
therefore clears only once, and the previous turn's changes stay readable until
the new turn produces output.
"""

from __future__ import annotations

import logging
import threading

from .models import ReconciledChange

logger = logging.getLogger(__name__)


class ChangeLedger:
    """Records the changes produced during the current assistant turn."""

    def __init__(self) -> None:
        self._changes: list[ReconciledChange] = []
        self._reset_pending = False
        self._turn_id: str | None = None
        self._lock = threading.Lock()

    @property
    def turn_id(self) -> str | None:
        return self._turn_id

    @property
    def reset_pending(self) -> bool:
        return self._reset_pending

    def start_turn(self, turn_id: str | None = None) -> None:
        """Mark the start of a new user-input turn."""
        with self._lock:
            self._reset_pending = True
            self._turn_id = turn_id
        logger.debug(f"Turn started: {turn_id or '<unnamed>'}")

    def received_model_output(self) -> None:
        """Signal that the model produced output for the current turn."""
        with self._lock:
            self._clear_if_pending()

    def record_change(self, change: ReconciledChange) -> None:
        with self._lock:
            self._clear_if_pending()
            self._changes.append(change)

    def get_changes(self) -> tuple[ReconciledChange, ...]:
        """Snapshot of the recorded changes; later recording does not affect it."""
        with self._lock:
            return tuple(self._changes)

    def end_turn(self) -> tuple[ReconciledChange, ...]:
        with self._lock:
            snapshot = tuple(self._changes)
        logger.debug(f"Turn ended with {len(snapshot)} change(s)")
        return snapshot

    def _clear_if_pending(self) -> None:
        if self._reset_pending:
            self._changes = []
            self._reset_pending = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._changes)
