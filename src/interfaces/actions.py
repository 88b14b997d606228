"""Action executor interface for controlling the agent."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

from src.models.world import Position


class ActionType(Enum):
    """Types of commands the agent can dispatch."""

    MOVE = "move"
    ABILITY = "ability"
    INTERACT = "interact"


class ActionCommand:
    """A command queued for delivery by an executor."""

    __slots__ = ("action_type", "target", "binding")

    def __init__(
        self,
        action_type: ActionType,
        target: Position | None = None,
        binding: str | None = None,
    ) -> None:
        """Initialize a command.

        Args:
            action_type: The type of command.
            target: World point for move/interact, optional for abilities.
            binding: Input binding for ability presses.
        """
        self.action_type = action_type
        self.target = target
        self.binding = binding

    def __repr__(self) -> str:
        return f"ActionCommand({self.action_type.value}, target={self.target}, binding={self.binding})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActionCommand):
            return NotImplemented
        return (
            self.action_type == other.action_type
            and self.target == other.target
            and self.binding == other.binding
        )


class ActionExecutor(ABC):
    """Abstract interface for dispatching commands.

    Every dispatch is fire-and-forget: the call returns as soon as the
    command is accepted or rejected, and its effect (if any) shows up in a
    later world snapshot. A rejection is not an error; callers re-assess
    on the next tick.
    """

    @abstractmethod
    def move_to(self, point: Position) -> bool:
        """Request movement towards a world point.

        Returns:
            True if the command was accepted.
        """
        ...

    @abstractmethod
    def use_ability(self, binding: str, target_point: Position | None = None) -> bool:
        """Request an ability press, optionally aimed at a world point.

        Returns:
            True if the command was accepted.
        """
        ...

    @abstractmethod
    def interact(self, point: Position) -> bool:
        """Request an interaction (pickup, click) at a world point.

        Returns:
            True if the command was accepted.
        """
        ...

    def is_ready(self) -> bool:
        """Whether the action channel can accept commands at all."""
        return True


class ActionError(Exception):
    """Error raised when the action channel fails unexpectedly."""

    pass
