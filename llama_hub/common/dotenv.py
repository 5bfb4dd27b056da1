from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional


def parse_dotenv(text: str) -> dict[str, str]:
    """Parse the body of a .env file.

    Accepts `KEY=VALUE` and `export KEY=VALUE`; blank lines and `#` comments are
    skipped, and one layer of matching quotes is removed from values.
    """
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[key] = value
    return values


def load_dotenv(
    path: str | Path,
    *,
    override: bool = False,
    allow_prefixes: Optional[Iterable[str]] = None,
) -> bool:
    """Copy the variables of a .env file into os.environ.

    Existing variables win unless `override` is set. When `allow_prefixes` is
    given, only keys starting with one of them are loaded.
    Returns False when the file does not exist.
    """
    p = Path(path)
    if not p.is_file():
        return False

    prefixes = tuple(allow_prefixes) if allow_prefixes is not None else None
    for key, value in parse_dotenv(p.read_text(encoding="utf-8")).items():
        if prefixes is not None and not key.startswith(prefixes):
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value
    return True


def load_dotenv_auto(
    *,
    env_file: Optional[str] = None,
    override: bool = False,
    allow_prefixes: Optional[Iterable[str]] = ("LLAMA_HUB_",),
) -> Optional[Path]:
    """Load the first .env found.

    Search order: LLAMA_HUB_ENV_FILE (or `env_file`), the working directory,
    then the repository root.
    """
    candidates: list[Path] = []
    explicit = os.getenv("LLAMA_HUB_ENV_FILE") or env_file
    if explicit:
        candidates.append(Path(explicit))
    candidates.append(Path.cwd() / ".env")
    # <repo>/llama_hub/common/dotenv.py -> parents[2] is <repo>
    candidates.append(Path(__file__).resolve().parents[2] / ".env")

    for candidate in candidates:
        if load_dotenv(candidate, override=override, allow_prefixes=allow_prefixes):
            return candidate
    return None
