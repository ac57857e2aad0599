"""Minimal OpenAI chat completion client."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib import error, request

from relaybot.config import DEFAULT_MODEL

OPENAI_BASE = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 60
NO_RESPONSE_MESSAGE = "There was no response from OpenAI API."


@dataclass(frozen=True)
class Completion:
    content: str
    prompt_tokens: int
    completion_tokens: int


class LLMError(RuntimeError):
    """Raised when the completion API call fails."""


def user_agent(user_id: int) -> str:
    return f"telegram-chatgpt-bot:{user_id}"


def _first_choice_content(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not isinstance(choices, list):
        raise LLMError(f"LLM API unexpected choices: {choices!r}")
    if not choices:
        return NO_RESPONSE_MESSAGE
    choice = choices[0]
    if not isinstance(choice, dict):
        raise LLMError(f"LLM API unexpected choice: {choice!r}")
    msg = choice.get("message") or {}
    if not isinstance(msg, dict):
        raise LLMError(f"LLM API unexpected message: {msg!r}")
    content = msg.get("content")
    return content if isinstance(content, str) else ""


def _parse_usage(data: dict[str, Any]) -> tuple[int, int]:
    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        raise LLMError(f"LLM API unexpected usage: {usage!r}")
    try:
        return int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
    except (TypeError, ValueError) as exc:
        raise LLMError(f"LLM API unexpected usage: {usage!r}") from exc


def complete(
    messages: list[dict[str, str]],
    api_key: str,
    *,
    org_id: str | None = None,
    model: str | None = None,
    user: str | None = None,
    base_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Completion:
    """
    Call the chat completions API once.
    Returns the first choice's content and the reported token usage.
    """
    url = (base_url or OPENAI_BASE).rstrip("/") + "/chat/completions"
    body: dict[str, Any] = {
        "model": model or DEFAULT_MODEL,
        "messages": messages,
    }
    if user:
        body["user"] = user
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    if org_id:
        headers["OpenAI-Organization"] = org_id
    req = request.Request(url, data=json.dumps(body).encode("utf-8"), headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as response:  # noqa: S310
            raw = response.read()
    except error.HTTPError as exc:
        body_read = exc.read().decode("utf-8", errors="replace")
        raise LLMError(f"LLM API HTTP {exc.code}: {body_read}") from exc
    except (error.URLError, TimeoutError, OSError) as exc:
        raise LLMError(f"LLM API request failed: {exc}") from exc

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LLMError(f"LLM API returned an undecodable body: {exc}") from exc

    if not isinstance(data, dict):
        raise LLMError(f"LLM API unexpected response: {data}")
    prompt_tokens, completion_tokens = _parse_usage(data)
    return Completion(
        content=_first_choice_content(data),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
    )
