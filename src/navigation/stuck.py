"""Motion-failure detection from sampled agent positions."""

from __future__ import annotations

from src.models.world import Position


class StuckDetector:
    """Reports the agent as stuck when it stops making progress.

    The detector keeps an anchor sample. Every sample farther than
    ``movement_threshold`` from the anchor re-anchors it; the agent is stuck
    once samples have stayed within the threshold for ``stuck_seconds``.
    """

    def __init__(self, movement_threshold: float, stuck_seconds: float) -> None:
        self._threshold = movement_threshold
        self._stuck_seconds = stuck_seconds
        self._anchor: Position | None = None
        self._anchor_time = 0.0

    @property
    def anchor(self) -> Position | None:
        return self._anchor

    def reset(self, position: Position | None = None, now: float = 0.0) -> None:
        """Restart the sampling window (optionally at a known position)."""
        self._anchor = position
        self._anchor_time = now

    def sample(self, position: Position, now: float) -> bool:
        """Record a position sample.

        Returns:
            True if displacement has stayed below threshold for the full window.
        """
        if self._anchor is None or position.distance_to(self._anchor) > self._threshold:
            self._anchor = position
            self._anchor_time = now
            return False
        return now - self._anchor_time >= self._stuck_seconds

    def stalled_for(self, now: float) -> float:
        """Seconds since the last displacement above threshold."""
        if self._anchor is None:
            return 0.0
        return now - self._anchor_time
