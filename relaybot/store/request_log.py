"""Persistent prompt/result log for usage statistics."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MSG_DATABASE_NOT_CONFIGURED = "Database not configured. Set `db_filepath` in your config file."
MSG_DATABASE_EMPTY = "Database is empty."

SCHEMA = """
CREATE TABLE IF NOT EXISTS prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    username TEXT NOT NULL DEFAULT '',
    text TEXT NOT NULL,
    tokens INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_prompts_chat_id ON prompts(chat_id);
CREATE INDEX IF NOT EXISTS idx_prompts_tokens ON prompts(tokens);

CREATE TABLE IF NOT EXISTS results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt_id INTEGER NOT NULL UNIQUE REFERENCES prompts(id),
    successful INTEGER NOT NULL,
    text TEXT NOT NULL,
    tokens INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_results_successful ON results(successful);
CREATE INDEX IF NOT EXISTS idx_results_tokens ON results(tokens);
"""


@dataclass(frozen=True)
class PromptRecord:
    chat_id: int
    user_id: int
    username: str
    text: str
    tokens: int


@dataclass(frozen=True)
class ResultRecord:
    successful: bool
    text: str
    tokens: int


class RequestLogStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, db_path: Path) -> RequestLogStore:
        """Open (creating if needed) the log database with its prompts/results tables."""
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(db_path, check_same_thread=False)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(SCHEMA)
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return cls(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def save(self, prompt: PromptRecord, result: ResultRecord) -> int | None:
        """Write a prompt and its result together; errors are logged, not raised."""
        try:
            with self._conn:
                cursor = self._conn.execute(
                    """
                    INSERT INTO prompts (chat_id, user_id, username, text, tokens)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (prompt.chat_id, prompt.user_id, prompt.username, prompt.text, int(prompt.tokens)),
                )
                prompt_id = int(cursor.lastrowid)
                self._conn.execute(
                    """
                    INSERT INTO results (prompt_id, successful, text, tokens)
                    VALUES (?, ?, ?, ?)
                    """,
                    (prompt_id, 1 if result.successful else 0, result.text, int(result.tokens)),
                )
        except sqlite3.Error as exc:
            logger.error("failed to save prompt & result to database: %s", exc)
            return None
        return prompt_id

    def summary(self) -> dict[str, Any]:
        first = self._conn.execute(
            "SELECT created_at FROM prompts ORDER BY id ASC LIMIT 1"
        ).fetchone()
        chats = self._conn.execute(
            "SELECT COUNT(DISTINCT chat_id) AS count FROM prompts"
        ).fetchone()
        prompts = self._conn.execute(
            """
            SELECT COUNT(id) AS count, COALESCE(SUM(tokens), 0) AS tokens
            FROM prompts
            WHERE tokens > 0
            """
        ).fetchone()
        completions = self._conn.execute(
            """
            SELECT COUNT(id) AS count, COALESCE(SUM(tokens), 0) AS tokens
            FROM results
            WHERE successful = 1
            """
        ).fetchone()
        errors = self._conn.execute(
            "SELECT COUNT(id) AS count FROM results WHERE successful = 0"
        ).fetchone()
        return {
            "since": None if first is None else str(first["created_at"]),
            "chats": int(chats["count"]),
            "prompts": int(prompts["count"]),
            "prompt_tokens": int(prompts["tokens"]),
            "completions": int(completions["count"]),
            "completion_tokens": int(completions["tokens"]),
            "errors": int(errors["count"]),
        }

    def stats(self) -> str:
        try:
            summary = self.summary()
        except sqlite3.Error as exc:
            logger.error("failed to read stats from database: %s", exc)
            return f"Failed to read stats: {exc}"
        if summary["since"] is None:
            return MSG_DATABASE_EMPTY
        lines = [
            f"Since <i>{summary['since']}</i>",
            "",
            f"* Chats: <b>{summary['chats']}</b>",
            f"* Prompts: <b>{summary['prompts']}</b> (Total tokens: <b>{summary['prompt_tokens']}</b>)",
            f"* Completions: <b>{summary['completions']}</b> (Total tokens: <b>{summary['completion_tokens']}</b>)",
            f"* Errors: <b>{summary['errors']}</b>",
        ]
        return "\n".join(lines)


def stats_message(store: RequestLogStore | None) -> str:
    if store is None:
        return MSG_DATABASE_NOT_CONFIGURED
    return store.stats()
