from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models import GenerationOptions
from .templates import TemplateKind

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Inference engine selection.

    `remote` drives an OpenAI-compatible /v1/completions backend (llama.cpp
    server, vLLM, ...); `mock` runs the in-process echo engine.
    """

    mode: Literal["mock", "remote"] = "mock"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = "default"
    completions_path: str = "/v1/completions"
    timeout_s: float = 300.0


class ServerConfig(BaseModel):
    """Server runtime configuration loaded from file + env overrides."""

    host: str = "0.0.0.0"
    port: int = 8080
    model_name: str = "default"
    template: TemplateKind = TemplateKind.LLAMA_2_CHAT
    log_prompts: bool = False

    options: GenerationOptions = Field(default_factory=GenerationOptions)
    engine: EngineConfig = Field(default_factory=EngineConfig)


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_flag(name: str) -> Optional[bool]:
    v = _env(name)
    if v is None:
        return None
    return v.lower() in ("1", "true", "yes", "on")


# env var -> (section, key); section None means top level
_ENV_KEYS: dict[str, tuple[Optional[str], str]] = {
    "LLAMA_HUB_HOST": (None, "host"),
    "LLAMA_HUB_PORT": (None, "port"),
    "LLAMA_HUB_MODEL_NAME": (None, "model_name"),
    "LLAMA_HUB_PROMPT_TEMPLATE": (None, "template"),
    "LLAMA_HUB_CTX_SIZE": ("options", "ctx_size"),
    "LLAMA_HUB_N_PREDICT": ("options", "n_predict"),
    "LLAMA_HUB_N_GPU_LAYERS": ("options", "n_gpu_layers"),
    "LLAMA_HUB_BATCH_SIZE": ("options", "batch_size"),
    "LLAMA_HUB_TEMP": ("options", "temp"),
    "LLAMA_HUB_REPEAT_PENALTY": ("options", "repeat_penalty"),
    "LLAMA_HUB_REVERSE_PROMPT": ("options", "reverse_prompt"),
    "LLAMA_HUB_ENGINE_MODE": ("engine", "mode"),
    "LLAMA_HUB_ENGINE_BASE_URL": ("engine", "base_url"),
    "LLAMA_HUB_ENGINE_API_KEY": ("engine", "api_key"),
    "LLAMA_HUB_ENGINE_MODEL": ("engine", "model"),
    "LLAMA_HUB_ENGINE_COMPLETIONS_PATH": ("engine", "completions_path"),
    "LLAMA_HUB_ENGINE_TIMEOUT_S": ("engine", "timeout_s"),
}

_ENV_FLAGS: dict[str, tuple[Optional[str], str]] = {
    "LLAMA_HUB_LOG_PROMPTS": (None, "log_prompts"),
    "LLAMA_HUB_LOG_ENABLE": ("options", "log_enable"),
}


class ConfigManager:
    """Load configuration from a JSON file with environment overrides.

    Precedence: defaults < config file < environment (including .env).
    A missing file is created with defaults and a corrupt one is moved aside,
    both best-effort. Values that fail validation are reported and the
    defaults are used instead.
    """

    def __init__(self, default_path: Optional[Path] = None) -> None:
        repo_root = Path(__file__).resolve().parents[2]
        self.repo_root = repo_root
        self.default_path = default_path or repo_root / "config" / "llama_hub.json"

    def _default_data(self) -> dict:
        return json.loads(ServerConfig().model_dump_json())

    def _write_default(self, cfg_path: Path) -> None:
        try:
            cfg_path.parent.mkdir(parents=True, exist_ok=True)
            cfg_path.write_text(json.dumps(self._default_data(), indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning("could not write default config to %s: %s", cfg_path, e)

    def _read_file(self, cfg_path: Path) -> dict:
        if not cfg_path.exists():
            self._write_default(cfg_path)
            return self._default_data()
        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            return data
        except ValueError as e:
            ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            backup = cfg_path.with_suffix(cfg_path.suffix + f".bad-{ts}")
            logger.warning("config %s is corrupt (%s); moved to %s", cfg_path, e, backup.name)
            try:
                cfg_path.replace(backup)
            except OSError:
                pass
            self._write_default(cfg_path)
            return self._default_data()

    def _config_path(self) -> Path:
        cfg_path = Path(os.getenv("LLAMA_HUB_CONFIG_PATH", str(self.default_path)))
        if not cfg_path.is_absolute():
            # relative to repo root, not process CWD
            cfg_path = self.repo_root / cfg_path
        return cfg_path

    @staticmethod
    def _apply_env(data: dict) -> None:
        def put(section: Optional[str], key: str, value: Any) -> None:
            target = data if section is None else data.setdefault(section, {})
            target[key] = value

        for name, (section, key) in _ENV_KEYS.items():
            v = _env(name)
            if v is not None:
                put(section, key, v)
        for name, (section, key) in _ENV_FLAGS.items():
            flag = _env_flag(name)
            if flag is not None:
                put(section, key, flag)

    def load(self) -> ServerConfig:
        data = self._read_file(self._config_path())
        self._apply_env(data)
        try:
            return ServerConfig.model_validate(data)
        except ValidationError as e:
            logger.warning("invalid configuration, using defaults: %s", e)
            return ServerConfig()
