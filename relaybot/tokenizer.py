"""BPE token counting backed by tiktoken."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class TokenizerError(RuntimeError):
    """Raised when the tokenizer cannot be loaded or fails to encode."""


class TokenCounter:
    """Counts tokens with an encoding loaded on first use and shared afterwards."""

    def __init__(
        self,
        encoding_name: str = DEFAULT_ENCODING,
        *,
        loader: Callable[[str], Any] = tiktoken.get_encoding,
    ) -> None:
        self._encoding_name = encoding_name
        self._loader = loader
        self._encoding: Any = None
        self._lock = threading.Lock()

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    def _get_encoding(self) -> Any:
        if self._encoding is not None:
            return self._encoding
        with self._lock:
            if self._encoding is None:
                try:
                    self._encoding = self._loader(self._encoding_name)
                except Exception as exc:
                    raise TokenizerError(
                        f"tokenizer is not initialized: {self._encoding_name}: {exc}"
                    ) from exc
                logger.debug("loaded tokenizer encoding %s", self._encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoding = self._get_encoding()
        try:
            return len(encoding.encode(text, disallowed_special=()))
        except Exception as exc:
            raise TokenizerError(f"failed to encode text: {exc}") from exc
