"""Telegram message to chat-completion message conversion."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from telegram import Bot, Document, Message
from telegram.error import TelegramError

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
DOCUMENT_FETCH_TIMEOUT_SECONDS = 60
PROMPT_SEPARATOR = "\n--------\n"

DocumentFetcher = Callable[[Document], Awaitable[bytes]]


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def telegram_document_fetcher(
    bot: Bot,
    *,
    timeout_seconds: float = DOCUMENT_FETCH_TIMEOUT_SECONDS,
) -> DocumentFetcher:
    async def fetch(document: Document) -> bytes:
        async def _download() -> bytes:
            file = await bot.get_file(document.file_id, read_timeout=timeout_seconds)
            data = await file.download_as_bytearray(
                read_timeout=timeout_seconds,
                connect_timeout=timeout_seconds,
            )
            return bytes(data)

        return await asyncio.wait_for(_download(), timeout=timeout_seconds)

    return fetch


def _is_from_bot(message: Message) -> bool:
    if message.via_bot is not None and message.via_bot.is_bot:
        return True
    return message.from_user is not None and message.from_user.is_bot


async def convert_message(message: Message, fetch_document: DocumentFetcher) -> ChatMessage | None:
    """Convert one Telegram message; None when it has no usable content."""
    role = ROLE_ASSISTANT if _is_from_bot(message) else ROLE_USER

    if message.text:
        return ChatMessage(role=role, content=message.text)

    if message.document is not None:
        try:
            raw = await fetch_document(message.document)
        except (TelegramError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("failed to read document content for %s message: %s", role, exc)
            return None
        content = raw.decode("utf-8", errors="replace").strip()
        if content:
            return ChatMessage(role=role, content=content)
        logger.warning("document %s has no text content", message.document.file_name)

    return None


async def chat_messages_from_message(
    message: Message,
    fetch_document: DocumentFetcher,
) -> list[ChatMessage]:
    out: list[ChatMessage] = []
    if message.reply_to_message is not None:
        parent = await convert_message(message.reply_to_message, fetch_document)
        if parent is not None:
            out.append(parent)
    current = await convert_message(message, fetch_document)
    if current is not None:
        out.append(current)
    return out


def messages_to_prompt(messages: list[ChatMessage]) -> str:
    return PROMPT_SEPARATOR.join(f"[{m.role}] {m.content}" for m in messages)
