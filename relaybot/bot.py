"""Command-line entry point for the relay bot."""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from pathlib import Path

from relaybot.config import ConfigError, Settings, load_settings
from relaybot.credentials import CredentialError, credential_provider_for
from relaybot.store.request_log import RequestLogStore
from relaybot.telegram_bot import TelegramBot
from relaybot.tokenizer import TokenCounter

logger = logging.getLogger("relaybot")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relaybot",
        description="Relay Telegram messages to the OpenAI chat completion API",
    )
    parser.add_argument("config_filepath", nargs="?", help="Path to a JSON config file")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger("relaybot").setLevel(logging.DEBUG if verbose else logging.INFO)
    # polling requests are logged by httpx on every cycle
    logging.getLogger("httpx").setLevel(logging.WARNING)


def open_log_store(settings: Settings) -> RequestLogStore | None:
    if not settings.db_filepath:
        return None
    try:
        return RequestLogStore.open(Path(settings.db_filepath).expanduser())
    except (sqlite3.Error, OSError) as exc:
        logger.error("failed to open request logs db: %s", exc)
        return None


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config_filepath is None:
        parser.print_usage(sys.stdout)
        return 0

    configure_logging()
    try:
        settings = load_settings(args.config_filepath)
    except ConfigError as exc:
        logger.error("failed to load config: %s", exc)
        return 1
    configure_logging(settings.verbose)

    try:
        credentials = credential_provider_for(settings).resolve()
    except CredentialError as exc:
        logger.error("failed to resolve credentials: %s", exc)
        return 1

    log_store = open_log_store(settings)
    bot = TelegramBot(
        settings,
        credentials,
        token_counter=TokenCounter(),
        log_store=log_store,
    )
    try:
        bot.start()
    finally:
        if log_store is not None:
            log_store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
