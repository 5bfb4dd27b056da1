"""
Configuration file + environment overrides, and .env loading.
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from llama_hub.common.dotenv import load_dotenv, parse_dotenv
from llama_hub.core.config import ConfigManager, ServerConfig
from llama_hub.core.templates import TemplateKind


def clean_env(**extra):
    env = {k: v for k, v in os.environ.items() if not k.startswith("LLAMA_HUB_")}
    env.update(extra)
    return mock.patch.dict(os.environ, env, clear=True)


class TestConfigManager(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "llama_hub.json"

    def tearDown(self):
        self.tmp.cleanup()

    def load(self, **env):
        with clean_env(**env):
            return ConfigManager(default_path=self.path).load()

    def test_missing_file_writes_defaults(self):
        cfg = self.load()
        self.assertEqual(cfg, ServerConfig())
        self.assertTrue(self.path.exists())
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data["template"], "llama-2-chat")
        self.assertEqual(data["options"]["n_predict"], 1024)

    def test_file_values(self):
        self.path.write_text(
            json.dumps({"model_name": "tiny", "template": "chatml", "options": {"n_predict": 64}}),
            encoding="utf-8",
        )
        cfg = self.load()
        self.assertEqual(cfg.model_name, "tiny")
        self.assertIs(cfg.template, TemplateKind.CHATML)
        self.assertEqual(cfg.options.n_predict, 64)
        self.assertEqual(cfg.options.ctx_size, 4096)

    def test_env_overrides_file(self):
        self.path.write_text(json.dumps({"port": 1234, "options": {"temp": 0.5}}), encoding="utf-8")
        cfg = self.load(
            LLAMA_HUB_PORT="9000",
            LLAMA_HUB_TEMP="0.2",
            LLAMA_HUB_PROMPT_TEMPLATE="mistral-instruct-v0.1",
            LLAMA_HUB_ENGINE_MODE="remote",
            LLAMA_HUB_ENGINE_BASE_URL="http://127.0.0.1:8081",
            LLAMA_HUB_LOG_PROMPTS="yes",
        )
        self.assertEqual(cfg.port, 9000)
        self.assertEqual(cfg.options.temp, 0.2)
        self.assertIs(cfg.template, TemplateKind.MISTRAL_INSTRUCT)
        self.assertEqual(cfg.engine.mode, "remote")
        self.assertEqual(cfg.engine.base_url, "http://127.0.0.1:8081")
        self.assertTrue(cfg.log_prompts)

    def test_blank_env_is_ignored(self):
        cfg = self.load(LLAMA_HUB_MODEL_NAME="   ")
        self.assertEqual(cfg.model_name, "default")

    def test_config_path_from_env(self):
        other = Path(self.tmp.name) / "other.json"
        other.write_text(json.dumps({"model_name": "from-env-path"}), encoding="utf-8")
        cfg = self.load(LLAMA_HUB_CONFIG_PATH=str(other))
        self.assertEqual(cfg.model_name, "from-env-path")

    def test_corrupt_file_is_moved_aside(self):
        self.path.write_text("{not json", encoding="utf-8")
        cfg = self.load()
        self.assertEqual(cfg, ServerConfig())
        backups = list(Path(self.tmp.name).glob("llama_hub.json.bad-*"))
        self.assertEqual(len(backups), 1)
        self.assertEqual(backups[0].read_text(encoding="utf-8"), "{not json")
        json.loads(self.path.read_text(encoding="utf-8"))

    def test_invalid_values_fall_back_to_defaults(self):
        with self.assertLogs("llama_hub.core.config", level="WARNING"):
            cfg = self.load(LLAMA_HUB_PORT="not-a-port")
        self.assertEqual(cfg, ServerConfig())

    def test_unknown_template_falls_back_to_defaults(self):
        cfg = self.load(LLAMA_HUB_PROMPT_TEMPLATE="gpt-9")
        self.assertIs(cfg.template, TemplateKind.LLAMA_2_CHAT)


class TestDotenv(unittest.TestCase):
    def test_parse(self):
        values = parse_dotenv(
            "# comment\n"
            "\n"
            "LLAMA_HUB_PORT=9000\n"
            "export LLAMA_HUB_MODEL_NAME='tiny model'\n"
            'LLAMA_HUB_TEMP="0.3"\n'
            "garbage line\n"
        )
        self.assertEqual(
            values,
            {"LLAMA_HUB_PORT": "9000", "LLAMA_HUB_MODEL_NAME": "tiny model", "LLAMA_HUB_TEMP": "0.3"},
        )

    def test_load_respects_prefix_and_existing(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file = Path(tmp) / ".env"
            env_file.write_text("LLAMA_HUB_PORT=9000\nLLAMA_HUB_HOST=1.2.3.4\nOTHER=x\n", encoding="utf-8")
            with clean_env(LLAMA_HUB_HOST="127.0.0.1"):
                self.assertTrue(load_dotenv(env_file, allow_prefixes=("LLAMA_HUB_",)))
                self.assertEqual(os.environ["LLAMA_HUB_PORT"], "9000")
                self.assertEqual(os.environ["LLAMA_HUB_HOST"], "127.0.0.1")
                self.assertNotIn("OTHER", os.environ)

                load_dotenv(env_file, override=True)
                self.assertEqual(os.environ["LLAMA_HUB_HOST"], "1.2.3.4")

    def test_missing_file(self):
        self.assertFalse(load_dotenv("/nonexistent/.env"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
