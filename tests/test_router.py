from __future__ import annotations

import unittest

from relaybot.commands import (
    MSG_START,
    CommandContext,
    build_version,
    cmd_count,
    cmd_help,
    cmd_start,
    cmd_stats,
    default_registry,
)
from relaybot.router import (
    CommandRegistry,
    CommandReply,
    RouteKind,
    parse_command,
    route,
)
from relaybot.store.request_log import MSG_DATABASE_NOT_CONFIGURED
from relaybot.tokenizer import TokenCounter, TokenizerError


class _WordEncoding:
    def encode(self, text: str, disallowed_special: object = ()) -> list[int]:
        return [0 for _ in text.split()]


def _context() -> CommandContext:
    return CommandContext(token_counter=TokenCounter(loader=lambda name: _WordEncoding()))


class RouteTests(unittest.TestCase):
    def test_command_route(self) -> None:
        target = route("/count  some text here ")
        self.assertEqual(target.kind, RouteKind.COMMAND)
        self.assertEqual(target.command, "/count")
        self.assertEqual(target.args, "some text here")

    def test_command_with_bot_mention(self) -> None:
        self.assertEqual(parse_command("/stats@relay_bot"), ("/stats", ""))
        self.assertEqual(parse_command("/count@relay_bot a b"), ("/count", "a b"))

    def test_plain_text_is_conversation(self) -> None:
        self.assertEqual(route("hello there").kind, RouteKind.CONVERSATION)

    def test_document_is_conversation(self) -> None:
        self.assertEqual(route(None, has_document=True).kind, RouteKind.CONVERSATION)

    def test_nothing_usable_is_unsupported(self) -> None:
        self.assertEqual(route(None).kind, RouteKind.UNSUPPORTED)
        self.assertEqual(route("").kind, RouteKind.UNSUPPORTED)

    def test_whitespace_text_is_conversation(self) -> None:
        self.assertEqual(route("   ").kind, RouteKind.CONVERSATION)


class CommandRegistryTests(unittest.TestCase):
    def test_unknown_command_echoes_name(self) -> None:
        reply = default_registry().dispatch("/foo", "", _context())
        self.assertEqual(reply.text, "Not a supported bot command: /foo")
        self.assertTrue(reply.quote)

    def test_register_normalizes_slash(self) -> None:
        registry = CommandRegistry()
        registry.register("ping", lambda ctx, args: CommandReply(f"pong {args}"), "ping")
        self.assertEqual(registry.dispatch("/ping", "x", None).text, "pong x")
        self.assertEqual([c.name for c in registry.list_commands()], ["/ping"])

    def test_default_commands(self) -> None:
        names = [c.name for c in default_registry().list_commands()]
        self.assertEqual(names, ["/count", "/help", "/start", "/stats"])


class CommandHandlerTests(unittest.TestCase):
    def test_start_does_not_quote(self) -> None:
        reply = cmd_start(_context(), "")
        self.assertEqual(reply.text, MSG_START)
        self.assertFalse(reply.quote)

    def test_help_includes_version(self) -> None:
        reply = cmd_help(_context(), "")
        self.assertIn("/count [some_text]", reply.text)
        self.assertIn(f"version: {build_version()}", reply.text)

    def test_stats_without_store(self) -> None:
        self.assertEqual(cmd_stats(_context(), "").text, MSG_DATABASE_NOT_CONFIGURED)

    def test_count_empty_text(self) -> None:
        reply = cmd_count(_context(), "")
        self.assertEqual(reply.text, "<b>0</b> tokens in <b>0</b> chars <i>(cl100k_base)</i>")

    def test_count_text(self) -> None:
        reply = cmd_count(_context(), "  one two  ")
        self.assertEqual(reply.text, "<b>2</b> tokens in <b>7</b> chars <i>(cl100k_base)</i>")

    def test_count_reports_tokenizer_error(self) -> None:
        def broken(name: str) -> _WordEncoding:
            raise TokenizerError("offline")

        context = CommandContext(token_counter=TokenCounter(loader=broken))
        reply = cmd_count(context, "text")
        self.assertIn("tokenizer is not initialized", reply.text)


if __name__ == "__main__":
    unittest.main()
