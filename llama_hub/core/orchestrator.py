from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

from ..capabilities.interfaces import METADATA_SLOT, PROMPT_SLOT, ChatMessage, InferenceEngine
from ..common.errors import InferenceError
from ..models import GenerationOptions, Usage
from .assembler import build_usage
from .decode import DecodeLoop
from .guard import EngineGuard
from .postprocess import strip_output
from .prompt_builder import RenderedPrompt, build_prompt
from .registry import TemplateRegistry
from .templates import TemplateKind

logger = logging.getLogger(__name__)

Sink = Callable[[str], Awaitable[None]]


class Orchestrator:
    """messages -> prompt -> engine (exclusive) -> answer + usage."""

    def __init__(
        self,
        *,
        guard: EngineGuard,
        registry: Optional[TemplateRegistry] = None,
        log_prompts: bool = False,
    ) -> None:
        self.guard = guard
        self.registry = registry or TemplateRegistry()
        self.log_prompts = log_prompts

    def render_prompt(self, kind: TemplateKind, messages: Sequence[ChatMessage]) -> RenderedPrompt:
        start = time.perf_counter()
        prompt = build_prompt(self.registry.resolve(kind), messages)
        logger.debug("[PERF] build prompt: %.3f ms", (time.perf_counter() - start) * 1000)
        if self.log_prompts:
            logger.info("\n---------------- [LOG: PROMPT] ---------------------\n%s\n", prompt.text)
        return prompt

    def stop_for(self, prompt: RenderedPrompt, options: GenerationOptions) -> tuple[str, ...]:
        """Configured reverse prompt plus the dialect's own end-of-turn marker."""
        stops: list[str] = []
        if options.reverse_prompt:
            stops.append(options.reverse_prompt)
        if prompt.template is not None:
            marker = self.registry.resolve(prompt.template).stop_marker
            if marker and marker not in stops:
                stops.append(marker)
        return tuple(stops)

    async def _set_input(self, engine: InferenceEngine, prompt: RenderedPrompt, options: GenerationOptions) -> None:
        try:
            await engine.set_input(METADATA_SLOT, options.to_metadata())
            await engine.set_input(PROMPT_SLOT, prompt.text.encode("utf-8"))
        except Exception as e:
            raise InferenceError(f"Fail to set input tensor: {e}") from e

    async def run_non_streaming(self, prompt: RenderedPrompt, options: GenerationOptions) -> tuple[str, Usage]:
        """Single-shot inference followed by dialect post-processing."""
        async with self.guard.acquire() as engine:
            await self._set_input(engine, prompt, options)

            start = time.perf_counter()
            try:
                await engine.compute()
            except Exception as e:
                raise InferenceError(f"Fail to execute model inference: {e}") from e
            if options.log_enable:
                logger.debug("[PERF] compute: %.3f ms", (time.perf_counter() - start) * 1000)

            try:
                raw = await engine.get_output(PROMPT_SLOT)
            except Exception as e:
                raise InferenceError(f"Fail to get output tensor: {e}") from e

        answer = strip_output(raw.decode("utf-8", errors="replace"), prompt.template, self.registry)
        return answer, build_usage(prompt.text, answer)

    async def astream(self, prompt: RenderedPrompt, options: GenerationOptions) -> AsyncIterator[str]:
        """Yield accepted tokens while holding the engine.

        The lock is released when the generator finishes or is closed.
        """
        async with self.guard.acquire() as engine:
            await self._set_input(engine, prompt, options)
            loop = DecodeLoop(engine, stop=self.stop_for(prompt, options))
            start = time.perf_counter()
            async for token in loop.tokens():
                yield token
            if options.log_enable:
                logger.debug(
                    "[PERF] decode: %d steps, %s, %.3f ms",
                    loop.steps,
                    loop.state.value,
                    (time.perf_counter() - start) * 1000,
                )

    async def run_streaming(
        self,
        prompt: RenderedPrompt,
        options: GenerationOptions,
        sink: Sink,
    ) -> tuple[str, Usage]:
        """Push each accepted token to `sink`, then return the full answer.

        Tokens already pushed stay pushed when the engine fails midway; the
        InferenceError still propagates.
        """
        parts: list[str] = []
        async with aclosing(self.astream(prompt, options)) as tokens:
            async for token in tokens:
                parts.append(token)
                await sink(token)
        text = "".join(parts)
        return text, build_usage(prompt.text, text)
