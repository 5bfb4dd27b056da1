from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..capabilities.interfaces import ChatMessage
from ..common.errors import ApiError, InferenceError
from ..common.time_util import unix_now, utc_now_iso
from ..common.trace import new_completion_id
from ..core.assembler import build_chat_chunk, build_chat_completion, build_completion, build_model_list
from ..core.config import ServerConfig
from ..core.orchestrator import Orchestrator
from ..core.prompt_builder import RenderedPrompt
from ..models import ChatCompletionRequest, CompletionRequest, ErrorDetail, ErrorEnvelope, GenerationOptions

logger = logging.getLogger(__name__)

router = APIRouter()


def _request_options(
    base: GenerationOptions,
    *,
    max_tokens: Optional[int],
    temperature: Optional[float],
    stop: Optional[Union[str, List[str]]],
) -> GenerationOptions:
    """Per-request overrides on top of the server defaults."""
    update: dict = {}
    if max_tokens is not None:
        update["n_predict"] = max_tokens
    if temperature is not None:
        update["temp"] = temperature
    if isinstance(stop, list):
        stop = stop[0] if stop else None
    if stop:
        update["reverse_prompt"] = stop
    return base.model_copy(update=update) if update else base


def _sse(model: BaseModel) -> str:
    return f"data: {model.model_dump_json(exclude_none=True)}\n\n"


@router.get("/health")
def health_check(request: Request):
    cfg: ServerConfig = request.app.state.config
    orch: Orchestrator = request.app.state.orchestrator
    return {
        "status": "ok",
        "model": cfg.model_name,
        "template": cfg.template.value,
        "engine": cfg.engine.mode,
        "engine_busy": orch.guard.busy,
        "time_utc": utc_now_iso(),
    }


@router.get("/models")
def list_models(request: Request):
    cfg: ServerConfig = request.app.state.config
    resp = build_model_list(model_name=cfg.model_name, template=cfg.template.value, created=request.app.state.created)
    return resp.model_dump()


@router.post("/completions")
async def completions(request: Request, body: CompletionRequest):
    cfg: ServerConfig = request.app.state.config
    orch: Orchestrator = request.app.state.orchestrator
    logger.info("[COMPLETION] New completion begins ...")

    text = body.prompt if isinstance(body.prompt, str) else " ".join(body.prompt)
    if not text.strip():
        raise ApiError(code="INVALID_ARGUMENT", message="prompt is empty")
    prompt = RenderedPrompt(text=text.strip())
    options = _request_options(cfg.options, max_tokens=body.max_tokens, temperature=body.temperature, stop=body.stop)

    answer, usage = await orch.run_non_streaming(prompt, options)
    logger.info("[COMPLETION] New completion ends (%d words).", usage.completion_tokens)
    return build_completion(model=body.model or cfg.model_name, text=answer, usage=usage).model_dump()


@router.post("/chat/completions")
async def chat_completions(request: Request, body: ChatCompletionRequest):
    cfg: ServerConfig = request.app.state.config
    orch: Orchestrator = request.app.state.orchestrator

    messages = [ChatMessage(role=m.role, content=m.content or "", name=m.name) for m in body.messages]
    prompt = orch.render_prompt(cfg.template, messages)
    options = _request_options(cfg.options, max_tokens=body.max_tokens, temperature=body.temperature, stop=body.stop)
    model = body.model or cfg.model_name

    if body.stream:
        return StreamingResponse(_chat_stream(orch, prompt, options, model), media_type="text/event-stream")

    answer, usage = await orch.run_non_streaming(prompt, options)
    return build_chat_completion(model=model, content=answer, usage=usage).model_dump()


async def _chat_stream(
    orch: Orchestrator,
    prompt: RenderedPrompt,
    options: GenerationOptions,
    model: str,
) -> AsyncIterator[str]:
    # Headers are already sent once this runs; engine failures become an error event.
    chunk_id = new_completion_id("chatcmpl")
    created = unix_now()
    yield _sse(build_chat_chunk(chunk_id=chunk_id, created=created, model=model, content="", first=True))
    try:
        async with aclosing(orch.astream(prompt, options)) as tokens:
            async for token in tokens:
                yield _sse(build_chat_chunk(chunk_id=chunk_id, created=created, model=model, content=token))
    except InferenceError as e:
        logger.error("streaming chat completion failed: %s", e)
        yield _sse(ErrorEnvelope(error=ErrorDetail(message=str(e), type="server_error", code="INFERENCE_FAILED")))
        return
    yield _sse(build_chat_chunk(chunk_id=chunk_id, created=created, model=model, finish=True))
    yield "data: [DONE]\n\n"
