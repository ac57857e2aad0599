from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from relaybot.config import DEFAULT_MODEL, ConfigError, load_settings


class LoadSettingsTests(unittest.TestCase):
    def _write(self, tmpdir: str, name: str, body: str) -> Path:
        path = Path(tmpdir) / name
        path.write_text(body, encoding="utf-8")
        return path

    def test_loads_json_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.json",
                json.dumps(
                    {
                        "telegram_bot_token": "123:abc",
                        "openai_api_key": "sk-test",
                        "openai_org_id": "org-test",
                        "allowed_telegram_users": ["alice", "@bob"],
                        "db_filepath": "/tmp/logs.db",
                        "verbose": True,
                    }
                ),
            )
            settings = load_settings(path)
        self.assertEqual(settings.telegram_bot_token, "123:abc")
        self.assertEqual(settings.openai_org_id, "org-test")
        self.assertEqual(settings.allowed_telegram_users, frozenset({"alice", "bob"}))
        self.assertEqual(settings.db_filepath, "/tmp/logs.db")
        self.assertTrue(settings.verbose)
        self.assertIsNone(settings.infisical)

    def test_model_falls_back_to_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.json",
                '{"telegram_bot_token": "t", "openai_api_key": "k", "openai_model": ""}',
            )
            settings = load_settings(path)
        self.assertIsNone(settings.openai_model)
        self.assertEqual(settings.model, DEFAULT_MODEL)
        self.assertFalse(settings.verbose)
        self.assertEqual(settings.allowed_telegram_users, frozenset())

    def test_loads_yaml_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.yaml",
                "\n".join(
                    [
                        "telegram_bot_token: t",
                        "openai_api_key: k",
                        "openai_model: gpt-4o-mini",
                        "allowed_telegram_users:",
                        "  - carol",
                    ]
                )
                + "\n",
            )
            settings = load_settings(path)
        self.assertEqual(settings.model, "gpt-4o-mini")
        self.assertIn("carol", settings.allowed_telegram_users)

    def test_missing_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_settings(Path(tmpdir) / "missing.json")

    def test_invalid_json_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, "config.json", "{not json")
            with self.assertRaises(ConfigError):
                load_settings(path)

    def test_directory_path_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_settings(tmpdir)

    def test_non_utf8_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_bytes(b"\xff\xfe not json")
            with self.assertRaises(ConfigError) as ctx:
                load_settings(path)
        self.assertIn("Cannot read config file", str(ctx.exception))

    def test_missing_credentials_raise_without_secret_manager(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(tmpdir, "config.json", '{"openai_api_key": "k"}')
            with self.assertRaises(ConfigError) as ctx:
                load_settings(path)
        self.assertIn("telegram_bot_token", str(ctx.exception))

    def test_allowed_users_must_be_a_list(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.json",
                '{"telegram_bot_token": "t", "openai_api_key": "k", "allowed_telegram_users": "alice"}',
            )
            with self.assertRaises(ConfigError):
                load_settings(path)

    def test_infisical_block_replaces_inline_credentials(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.json",
                json.dumps(
                    {
                        "allowed_telegram_users": ["alice"],
                        "infisical": {
                            "workspace_id": "ws",
                            "token": "st.token",
                            "environment": "dev",
                            "telegram_bot_token_key_path": "/bot/TELEGRAM_BOT_TOKEN",
                            "openai_api_key_key_path": "/bot/OPENAI_API_KEY",
                            "e2ee_api_key": "ak",
                        },
                    }
                ),
            )
            settings = load_settings(path)
        assert settings.infisical is not None
        self.assertEqual(settings.telegram_bot_token, "")
        self.assertEqual(settings.infisical.secret_type, "shared")
        self.assertEqual(settings.infisical.e2ee_api_key, "ak")
        self.assertIsNone(settings.infisical.openai_org_id_key_path)

    def test_incomplete_infisical_block_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "config.json",
                '{"infisical": {"workspace_id": "ws", "token": "t"}}',
            )
            with self.assertRaises(ConfigError) as ctx:
                load_settings(path)
        self.assertIn("environment", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
