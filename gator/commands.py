"""Named commands and the registry that dispatches them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

Handler = Callable[[Any, "Command"], Any]


@dataclass(frozen=True)
class Command:
    """A command name with the arguments given after it."""

    name: str
    args: Sequence[str] = ()


class CommandError(Exception):
    """A command could not be carried out."""


class CommandNotFoundError(CommandError):
    """No handler is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__("command not found")
        self.name = name


class CommandRegistry:
    """Maps command names to the handlers that carry them out."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def register(self, name: str, handler: Handler) -> None:
        """Register ``handler`` under ``name``, replacing any earlier one."""
        self._handlers[name] = handler

    def run(self, state: Any, command: Command) -> Any:
        """Run the handler registered for ``command.name``."""
        try:
            handler = self._handlers[command.name]
        except KeyError:
            raise CommandNotFoundError(command.name) from None
        return handler(state, command)