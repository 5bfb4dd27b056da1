from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .api.http import router as http_router
from .capabilities.interfaces import InferenceEngine
from .capabilities.mock_engine import MockEngine
from .common.dotenv import load_dotenv_auto
from .common.errors import ApiError, InferenceError, PromptBuildError
from .common.time_util import unix_now
from .core.config import ConfigManager, ServerConfig
from .core.guard import EngineGuard
from .core.orchestrator import Orchestrator
from .core.registry import TemplateRegistry
from .models import ErrorDetail, ErrorEnvelope
from .modules.engine_remote import RemoteCompletionsEngine, RemoteEngineConfig

logger = logging.getLogger(__name__)


def build_engine(cfg: ServerConfig) -> InferenceEngine:
    """Select an engine based on config.

    Remote mode without a base URL falls back to the mock engine.
    """
    if cfg.engine.mode == "remote":
        if not cfg.engine.base_url:
            logger.warning("engine mode is remote but no base_url is set; using the mock engine")
            return MockEngine()
        return RemoteCompletionsEngine(
            RemoteEngineConfig(
                base_url=cfg.engine.base_url,
                api_key=cfg.engine.api_key,
                model=cfg.engine.model,
                completions_path=cfg.engine.completions_path,
                timeout_s=cfg.engine.timeout_s,
            )
        )
    return MockEngine()


def _error_response(exc: ApiError) -> JSONResponse:
    body = ErrorEnvelope(error=ErrorDetail(message=exc.message, type=exc.type, code=exc.code))
    return JSONResponse(status_code=exc.http_status, content=body.model_dump())


def create_app(cfg: Optional[ServerConfig] = None, engine: Optional[InferenceEngine] = None) -> FastAPI:
    if cfg is None:
        # Environment variables set by the process take precedence over .env.
        load_dotenv_auto(override=False)
        cfg = ConfigManager().load()

    # Fails here, at startup, if a dialect has no strategy.
    registry = TemplateRegistry()
    guard = EngineGuard(engine if engine is not None else build_engine(cfg))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "[startup] model=%s template=%s engine=%s",
            cfg.model_name,
            cfg.template.value,
            cfg.engine.mode,
        )
        yield
        await guard.close()

    app = FastAPI(title="llama_hub", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = cfg
    app.state.created = unix_now()
    app.state.orchestrator = Orchestrator(guard=guard, registry=registry, log_prompts=cfg.log_prompts)

    @app.exception_handler(ApiError)
    async def api_error_handler(_, exc: ApiError):
        return _error_response(exc)

    @app.exception_handler(PromptBuildError)
    async def prompt_error_handler(_, exc: PromptBuildError):
        return _error_response(ApiError(code="INVALID_PROMPT", message=str(exc), http_status=400))

    @app.exception_handler(InferenceError)
    async def inference_error_handler(_, exc: InferenceError):
        logger.error("inference failed: %s", exc)
        return _error_response(
            ApiError(code="INFERENCE_FAILED", message=str(exc), http_status=500, type="server_error")
        )

    app.include_router(http_router, prefix="/v1")
    return app
