"""Telegram bot relaying allowed users' messages to the chat completion API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from telegram import Bot, BotCommand, Message, ReplyParameters, Update, User
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from relaybot.commands import CommandContext, default_registry
from relaybot.config import Settings
from relaybot.converter import (
    ChatMessage,
    DocumentFetcher,
    chat_messages_from_message,
    messages_to_prompt,
    telegram_document_fetcher,
)
from relaybot.credentials import Credentials
from relaybot.llm import Completion, LLMError, complete, user_agent
from relaybot.router import MSG_TYPE_NOT_SUPPORTED, CommandRegistry, RouteKind, route
from relaybot.store.request_log import PromptRecord, RequestLogStore, ResultRecord
from relaybot.tokenizer import TokenCounter

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
CAPTION_PREVIEW_LENGTH = 128
ANSWER_FILENAME = "answer.txt"
DEFAULT_LLM_TIMEOUT_SECONDS = 120

MSG_NO_USABLE_MESSAGES = (
    "Failed to get usable chat messages from your input. See the server logs for more information."
)
MSG_COMPLETION_FAILED = "Failed to generate an answer from OpenAI. See the server logs for more information."
MSG_SEND_FILE_FAILED = "Failed to send you the answer as a text file. See the server logs for more information."
MSG_SEND_TEXT_FAILED = "Failed to send you the answer as a text. See the server logs for more information."


def display_name(user: User | None) -> str:
    if user is None:
        return "unknown"
    if user.username:
        return f"@{user.username} ({user.first_name})"
    return user.first_name


def is_allowed(user: User | None, allowed_users: frozenset[str]) -> bool:
    if user is None or not user.username:
        return False
    return user.username in allowed_users


def usable_message(update: Update) -> Message | None:
    if update.message is not None and (update.message.text or update.message.document is not None):
        return update.message
    if update.edited_message is not None and update.edited_message.text:
        return update.edited_message
    return None


def caption_for(answer: str) -> str:
    return answer[:CAPTION_PREVIEW_LENGTH] + "..."


class TelegramBot:
    def __init__(
        self,
        settings: Settings,
        credentials: Credentials,
        *,
        token_counter: TokenCounter,
        log_store: RequestLogStore | None = None,
        registry: CommandRegistry | None = None,
        completer: Callable[..., Completion] = complete,
        document_fetcher_factory: Callable[[Bot], DocumentFetcher] = telegram_document_fetcher,
        llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
    ) -> None:
        self._settings = settings
        self._credentials = credentials
        self._log_store = log_store
        self._registry = registry or default_registry()
        self._command_context = CommandContext(token_counter=token_counter, log_store=log_store)
        self._complete = completer
        self._document_fetcher_factory = document_fetcher_factory
        self._llm_timeout_seconds = llm_timeout_seconds
        self._app: Application | None = None

    def start(self) -> None:
        """Build the application and poll updates until interrupted."""
        self._app = (
            Application.builder()
            .token(self._credentials.telegram_bot_token)
            .post_init(self._post_init)
            .build()
        )
        self._setup_handlers()
        self._app.run_polling(allowed_updates=Update.ALL_TYPES)

    async def _post_init(self, app: Application) -> None:
        me = await app.bot.get_me()
        logger.info("launching bot: %s", display_name(me))
        await app.bot.set_my_commands(
            [BotCommand(c.name.lstrip("/"), c.description or c.name) for c in self._registry.list_commands()]
        )

    def _setup_handlers(self) -> None:
        assert self._app is not None
        self._app.add_handler(MessageHandler(filters.UpdateType.MESSAGES, self._handle_update))
        self._app.add_error_handler(self._handle_error)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("failed to handle update: %s", context.error, exc_info=context.error)

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not is_allowed(user, self._settings.allowed_telegram_users):
            logger.warning("message not allowed: %s", display_name(user))
            return

        bot = context.bot
        message = usable_message(update)
        if message is None:
            fallback = update.effective_message
            if fallback is not None:
                await self._send(bot, fallback.chat_id, MSG_TYPE_NOT_SUPPORTED, fallback.message_id)
            return

        target = route(message.text, message.document is not None)
        if target.kind == RouteKind.COMMAND:
            reply = self._registry.dispatch(target.command, target.args, self._command_context)
            await self._send(bot, message.chat_id, reply.text, message.message_id if reply.quote else None)
        elif target.kind == RouteKind.CONVERSATION:
            await self._handle_message(bot, message, display_name(user))
        else:
            await self._send(bot, message.chat_id, MSG_TYPE_NOT_SUPPORTED, message.message_id)

    async def _handle_message(self, bot: Bot, message: Message, username: str) -> None:
        chat_messages = await chat_messages_from_message(message, self._document_fetcher_factory(bot))
        if not chat_messages:
            logger.warning("no converted chat messages from message %s in chat %s", message.message_id, message.chat_id)
            await self._send(bot, message.chat_id, MSG_NO_USABLE_MESSAGES, message.message_id)
            return
        await self._answer(bot, message, chat_messages, username)

    async def _typing(self, bot: Bot, chat_id: int) -> None:
        try:
            await bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
        except TelegramError as exc:
            logger.debug("failed to send chat action: %s", exc)

    async def _send(self, bot: Bot, chat_id: int, text: str, reply_to: int | None = None) -> bool:
        await self._typing(bot, chat_id)
        logger.debug("sending message to chat(%s): '%s'", chat_id, text)
        kwargs: dict[str, Any] = {"parse_mode": ParseMode.HTML}
        if reply_to is not None:
            kwargs["reply_parameters"] = ReplyParameters(message_id=reply_to)
        try:
            await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except TelegramError as exc:
            logger.error("failed to send message to chat(%s): %s", chat_id, exc)
            return False
        return True

    async def _answer(self, bot: Bot, message: Message, chat_messages: list[ChatMessage], username: str) -> None:
        chat_id = message.chat_id
        message_id = message.message_id
        user_id = message.from_user.id if message.from_user is not None else 0
        prompt = messages_to_prompt(chat_messages)

        await self._typing(bot, chat_id)
        try:
            completion = await asyncio.wait_for(
                asyncio.to_thread(
                    self._complete,
                    [m.as_dict() for m in chat_messages],
                    self._credentials.openai_api_key,
                    org_id=self._credentials.openai_org_id or None,
                    model=self._settings.model,
                    user=user_agent(user_id),
                    timeout=self._llm_timeout_seconds,
                ),
                timeout=self._llm_timeout_seconds,
            )
        except (LLMError, asyncio.TimeoutError) as exc:
            error_text = str(exc) or "chat completion timed out"
            logger.error("failed to create chat completion: %s", error_text)
            await self._send(bot, chat_id, MSG_COMPLETION_FAILED, message_id)
            self._save(chat_id, user_id, username, prompt, 0, ResultRecord(False, error_text, 0))
            return

        answer = completion.content
        logger.debug("%s ===> %s", prompt, answer)
        await self._typing(bot, chat_id)

        # too long for a telegram message, send it as a text document
        if len(answer) > MAX_MESSAGE_LENGTH:
            try:
                await bot.send_document(
                    chat_id=chat_id,
                    document=answer.encode("utf-8"),
                    filename=ANSWER_FILENAME,
                    caption=caption_for(answer),
                    reply_parameters=ReplyParameters(message_id=message_id),
                )
            except TelegramError as exc:
                logger.error("failed to answer messages with '%s' as file: %s", answer[:CAPTION_PREVIEW_LENGTH], exc)
                await self._send(bot, chat_id, MSG_SEND_FILE_FAILED, message_id)
                self._save(chat_id, user_id, username, prompt, completion.prompt_tokens, ResultRecord(False, str(exc), 0))
                return
        else:
            try:
                await bot.send_message(
                    chat_id=chat_id,
                    text=answer,
                    reply_parameters=ReplyParameters(message_id=message_id),
                )
            except TelegramError as exc:
                logger.error("failed to answer messages with '%s': %s", answer[:CAPTION_PREVIEW_LENGTH], exc)
                await self._send(bot, chat_id, MSG_SEND_TEXT_FAILED, message_id)
                self._save(chat_id, user_id, username, prompt, completion.prompt_tokens, ResultRecord(False, str(exc), 0))
                return

        self._save(
            chat_id,
            user_id,
            username,
            prompt,
            completion.prompt_tokens,
            ResultRecord(True, answer, completion.completion_tokens),
        )

    def _save(
        self,
        chat_id: int,
        user_id: int,
        username: str,
        prompt: str,
        prompt_tokens: int,
        result: ResultRecord,
    ) -> None:
        if self._log_store is None:
            return
        self._log_store.save(
            PromptRecord(chat_id=chat_id, user_id=user_id, username=username, text=prompt, tokens=prompt_tokens),
            result,
        )
