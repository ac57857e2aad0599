"""Update classification and command dispatch."""

from __future__ import annotations

import html
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

MSG_CMD_NOT_SUPPORTED = "Not a supported bot command: {}"
MSG_TYPE_NOT_SUPPORTED = "Not a supported message type."


class RouteKind(str, Enum):
    COMMAND = "command"
    CONVERSATION = "conversation"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Route:
    kind: RouteKind
    command: str = ""
    args: str = ""


def parse_command(text: str) -> tuple[str, str]:
    """Split `/cmd@botname some args` into (`/cmd`, `some args`)."""
    parts = text.strip().split(maxsplit=1)
    token = parts[0] if parts else ""
    command = token.split("@", 1)[0]
    args = parts[1].strip() if len(parts) > 1 else ""
    return command, args


def route(text: str | None, has_document: bool = False) -> Route:
    if text and text.startswith("/"):
        command, args = parse_command(text)
        return Route(RouteKind.COMMAND, command=command, args=args)
    if text or has_document:
        return Route(RouteKind.CONVERSATION)
    return Route(RouteKind.UNSUPPORTED)


@dataclass(frozen=True)
class CommandReply:
    text: str
    quote: bool = True


CommandHandlerFn = Callable[[Any, str], CommandReply]


@dataclass(frozen=True)
class Command:
    name: str
    description: str
    handler: CommandHandlerFn


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandlerFn, description: str = "") -> None:
        if not name.startswith("/"):
            name = f"/{name}"
        self._commands[name] = Command(name=name, description=description, handler=handler)

    def list_commands(self) -> list[Command]:
        return [self._commands[name] for name in sorted(self._commands)]

    def dispatch(self, name: str, args: str, context: Any) -> CommandReply:
        command = self._commands.get(name)
        if command is None:
            return CommandReply(MSG_CMD_NOT_SUPPORTED.format(html.escape(name)))
        return command.handler(context, args)
