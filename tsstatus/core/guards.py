# tsstatus/core/guards.py
from __future__ import annotations

from tsstatus.core.errors import RateLimited
from tsstatus.core.state import CountLabelState


class EditRateGuard:
    """At most one display edit per `min_spacing` seconds."""

    def __init__(self, min_spacing: float = 5.0):
        self.min_spacing = float(min_spacing)
        self.last_edit: float | None = None

    def check(self, now: float) -> None:
        if self.last_edit is None:
            return
        elapsed = now - self.last_edit
        if elapsed < self.min_spacing:
            raise RateLimited(self.min_spacing - elapsed)

    def record(self, now: float) -> None:
        self.last_edit = now


class RenameRateGuard:
    """
    Channel renames are heavily limited by Discord (2 per 10 minutes).

    - at most `max_renames` inside the trailing `window`
    - at least `min_spacing` seconds between two renames
    History lives on CountLabelState so it can be inspected / reset.
    """

    def __init__(self, max_renames: int = 2, window: float = 600.0, min_spacing: float = 61.0):
        self.max_renames = int(max_renames)
        self.window = float(window)
        self.min_spacing = float(min_spacing)

    def prune(self, state: CountLabelState, now: float) -> None:
        state.rename_history = [t for t in state.rename_history if now - t < self.window]

    def check(self, state: CountLabelState, now: float) -> None:
        self.prune(state, now)
        history = state.rename_history
        if not history:
            return

        since_last = now - max(history)
        if since_last < self.min_spacing:
            raise RateLimited(self.min_spacing - since_last)

        if len(history) >= self.max_renames:
            raise RateLimited(self.window - (now - min(history)))

    def record(self, state: CountLabelState, now: float) -> None:
        state.rename_history.append(now)
