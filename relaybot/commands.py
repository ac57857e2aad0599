"""Built-in bot commands."""

from __future__ import annotations

import platform
from dataclasses import dataclass
from importlib import metadata

from relaybot.router import CommandRegistry, CommandReply
from relaybot.store.request_log import RequestLogStore, stats_message
from relaybot.tokenizer import TokenCounter, TokenizerError

MSG_START = "This bot will answer your messages with ChatGPT API :-)"
MSG_TOKEN_COUNT = "<b>{count}</b> tokens in <b>{chars}</b> chars <i>({encoding})</i>"
MSG_HELP = """Help message here:

/count [some_text] : count the number of tokens in a given text.
/stats : show stats of this bot.
/help : show this help message.

<i>version: {version}</i>
"""


@dataclass(frozen=True)
class CommandContext:
    token_counter: TokenCounter
    log_store: RequestLogStore | None = None


def build_version() -> str:
    try:
        version = metadata.version("relaybot")
    except metadata.PackageNotFoundError:
        version = "unknown"
    return f"{version} {platform.system().lower()}/{platform.machine().lower()}"


def cmd_start(context: CommandContext, args: str) -> CommandReply:
    return CommandReply(MSG_START, quote=False)


def cmd_help(context: CommandContext, args: str) -> CommandReply:
    return CommandReply(MSG_HELP.format(version=build_version()))


def cmd_stats(context: CommandContext, args: str) -> CommandReply:
    return CommandReply(stats_message(context.log_store))


def cmd_count(context: CommandContext, args: str) -> CommandReply:
    text = args.strip()
    try:
        count = context.token_counter.count(text)
    except TokenizerError as exc:
        return CommandReply(str(exc))
    return CommandReply(
        MSG_TOKEN_COUNT.format(count=count, chars=len(text), encoding=context.token_counter.encoding_name)
    )


def default_registry() -> CommandRegistry:
    registry = CommandRegistry()
    registry.register("/start", cmd_start, "start the bot")
    registry.register("/help", cmd_help, "show this help message")
    registry.register("/stats", cmd_stats, "show stats of this bot")
    registry.register("/count", cmd_count, "count the number of tokens in a given text")
    return registry
