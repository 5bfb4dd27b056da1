"""Entry point for `python -m llama_hub`: serve the OpenAI-compatible API."""

import logging

import uvicorn

from .common.dotenv import load_dotenv_auto
from .core.config import ConfigManager


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
    load_dotenv_auto(override=False)
    cfg = ConfigManager().load()
    uvicorn.run(
        "llama_hub.app:create_app",
        factory=True,
        host=cfg.host,
        port=cfg.port,
    )


if __name__ == "__main__":
    main()
