from __future__ import annotations

import asyncio
import json
from typing import Optional, Sequence

from .interfaces import METADATA_SLOT, PROMPT_SLOT, BackendError, EndOfSequence, InferenceEngine


def _echo_tokens(prompt: str, limit: int = 16) -> list[str]:
    # Leading lone space mimics the artifact some dialects emit first.
    words = prompt.split()[-limit:]
    return [" ", " Echo:"] + [f" {w}" for w in words]


class MockEngine(InferenceEngine):
    """In-process engine for local runs and tests.

    With `tokens` it replays that script for every prompt; without, it echoes
    the tail of the prompt. The script is cut at `n-predict` tokens and before
    the first token matching `reverse-prompt`. `fail_at` makes the N-th compute_single call (1-based)
    fail with a BackendError; `fail_compute` does the same for compute().
    """

    def __init__(
        self,
        tokens: Optional[Sequence[str]] = None,
        *,
        fail_at: Optional[int] = None,
        fail_compute: bool = False,
        delay_s: float = 0.0,
    ) -> None:
        self.script = list(tokens) if tokens is not None else None
        self.fail_at = fail_at
        self.fail_compute = fail_compute
        self.delay_s = delay_s

        self.prompt = ""
        self.metadata: dict = {}
        self.single_calls = 0
        self.active = 0
        self.max_active = 0
        self._tokens: list[str] = []
        self._cursor = 0
        self._current = b""
        self._output = b""

    async def set_input(self, slot: int, data: bytes) -> None:
        if slot == METADATA_SLOT:
            self.metadata = json.loads(data.decode("utf-8")) if data else {}
            return
        if slot != PROMPT_SLOT:
            raise BackendError(f"unknown input slot {slot}")
        self.prompt = data.decode("utf-8")
        self._tokens = self.script if self.script is not None else _echo_tokens(self.prompt)
        n_predict = self.metadata.get("n-predict")
        if isinstance(n_predict, int) and n_predict >= 0:
            self._tokens = self._tokens[:n_predict]
        reverse_prompt = self.metadata.get("reverse-prompt")
        if reverse_prompt:
            # generation halts before the reverse prompt
            for i, token in enumerate(self._tokens):
                if token.strip() == reverse_prompt:
                    self._tokens = self._tokens[:i]
                    break
        self._cursor = 0
        self.single_calls = 0
        self._current = b""
        self._output = b""

    async def _step(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay_s)
        finally:
            self.active -= 1

    async def compute(self) -> None:
        await self._step()
        if self.fail_compute:
            raise BackendError("Fail to execute model inference")
        self._output = "".join(self._tokens).encode("utf-8")

    async def compute_single(self) -> None:
        await self._step()
        self.single_calls += 1
        if self.fail_at is not None and self.single_calls == self.fail_at:
            raise BackendError("backend failure during compute_single")
        if self._cursor >= len(self._tokens):
            raise EndOfSequence()
        self._current = self._tokens[self._cursor].encode("utf-8")
        self._cursor += 1

    async def get_output(self, slot: int) -> bytes:
        if slot == METADATA_SLOT:
            info = {"input_tokens": len(self.prompt.split()), "output_tokens": self._cursor or len(self._tokens)}
            return json.dumps(info).encode("utf-8")
        return self._output

    async def get_output_single(self, slot: int) -> bytes:
        return self._current
