"""
Action Registry - name -> action lookup.

The registry is the controlled interface through which the AI can affect the
world. Only actions registered here (or bridged from a capability provider)
can be called. It is read-mostly: populate it at startup, then only look
things up.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from toolgate.actions import Action, RegistrationError, UnknownActionError
from toolgate.types import ActionSchema

logger = logging.getLogger(__name__)


@dataclass
class ActionRegistry:
    """In-memory registry of actions keyed by unique name."""

    _actions: dict[str, Action] = field(default_factory=dict)

    def register(self, action: Action, replace: bool = True) -> None:
        """
        Register an action.

        Re-registering a name replaces the earlier action with a warning,
        unless replace=False, in which case RegistrationError is raised.
        """
        if not action.name:
            raise RegistrationError("Action name must not be empty")
        if action.name in self._actions:
            if not replace:
                raise RegistrationError(f"Duplicate action name: {action.name}")
            logger.warning(f"Overwriting existing action: {action.name}")
        self._actions[action.name] = action
        logger.debug(f"Registered action: {action.name}")

    def unregister(self, name: str) -> Action | None:
        return self._actions.pop(name, None)

    def get(self, name: str) -> Action | None:
        return self._actions.get(name)

    def require(self, name: str) -> Action:
        """Look up an action, raising UnknownActionError if it is missing."""
        action = self._actions.get(name)
        if action is None:
            raise UnknownActionError(name)
        return action

    def all_actions(self) -> list[Action]:
        return list(self._actions.values())

    def get_schemas(self) -> list[ActionSchema]:
        return [action.schema for action in self._actions.values()]

    @property
    def names(self) -> list[str]:
        return list(self._actions.keys())

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: str) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[Action]:
        return iter(list(self._actions.values()))
