"""Input backend interface and the no-op implementation.

A backend physically delivers a command (mouse move, key press, click) to
the game. The executor owns timing and queueing; backends only perform the
input operation itself.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from src.models.world import Position

logger = logging.getLogger(__name__)


class InputBackend(ABC):
    """Abstract interface for input delivery."""

    @abstractmethod
    def move(self, point: Position) -> None:
        """Issue a move towards a world point.

        Args:
            point: Destination in world coordinates.
        """
        ...

    @abstractmethod
    def press(self, binding: str, point: Position | None = None) -> None:
        """Press an ability binding, optionally aimed at a point.

        Args:
            binding: Input binding (e.g. 'F1', 'R').
            point: Aim point, or None for self-cast.
        """
        ...

    @abstractmethod
    def interact(self, point: Position) -> None:
        """Click or pick up at a world point.

        Args:
            point: Interaction point in world coordinates.
        """
        ...


class NullInputBackend(InputBackend):
    """No-op backend for testing.

    All methods are no-ops that just log at debug level.
    """

    def move(self, point: Position) -> None:
        """No-op move."""
        logger.debug(f"NullInputBackend.move({point!r})")

    def press(self, binding: str, point: Position | None = None) -> None:
        """No-op press."""
        logger.debug(f"NullInputBackend.press({binding!r}, {point!r})")

    def interact(self, point: Position) -> None:
        """No-op interact."""
        logger.debug(f"NullInputBackend.interact({point!r})")
