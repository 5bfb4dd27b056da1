from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from ..capabilities.interfaces import METADATA_SLOT, PROMPT_SLOT, BackendError, EndOfSequence, InferenceEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteEngineConfig:
    base_url: str
    api_key: Optional[str]
    model: str
    completions_path: str = "/v1/completions"
    timeout_s: float = 30.0


def _sse_payload(line: str) -> Optional[str]:
    """Return the payload of a `data: ...` SSE line, or None for anything else.

    Keepalive blank lines and comment/event lines carry no token.
    """
    if not line or not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    return payload or None


def _extract_text(payload_json: dict) -> str:
    """Pull the generated text out of a completion (or chat chunk) payload."""
    choices = payload_json.get("choices") or []
    if not choices:
        return ""
    choice = choices[0]
    # /v1/completions format
    txt = choice.get("text")
    if isinstance(txt, str):
        return txt
    # Some proxies only speak chat chunks
    delta = choice.get("delta") or choice.get("message") or {}
    txt2 = delta.get("content")
    if isinstance(txt2, str):
        return txt2
    return ""


class RemoteCompletionsEngine(InferenceEngine):
    """Engine backed by an OpenAI-compatible text completions endpoint.

    compute() issues one non-streaming request; compute_single() reads the next
    delta of a streaming request opened on first use. `[DONE]` or the end of the
    body map to EndOfSequence, transport and HTTP errors to BackendError.
    """

    def __init__(self, cfg: RemoteEngineConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.cfg = cfg
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._prompt = ""
        self._params: dict = {}
        self._response: Optional[httpx.Response] = None
        self._lines: Optional[AsyncIterator[str]] = None
        self._current = ""
        self._output = ""

    @property
    def url(self) -> str:
        return self.cfg.base_url.rstrip("/") + self.cfg.completions_path

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.cfg.timeout_s), transport=self._transport)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        return headers

    def _payload(self, stream: bool) -> dict:
        payload = {"model": self.cfg.model, "prompt": self._prompt, "stream": stream}
        # engine metadata keys -> completion request fields
        if "n-predict" in self._params:
            payload["max_tokens"] = self._params["n-predict"]
        if "temp" in self._params:
            payload["temperature"] = self._params["temp"]
        if "repeat-penalty" in self._params:
            payload["repeat_penalty"] = self._params["repeat-penalty"]
        if self._params.get("reverse-prompt"):
            payload["stop"] = self._params["reverse-prompt"]
        return payload

    async def set_input(self, slot: int, data: bytes) -> None:
        if slot == METADATA_SLOT:
            try:
                self._params = json.loads(data.decode("utf-8")) if data else {}
            except ValueError as e:
                raise BackendError(f"Fail to parse engine metadata: {e}") from e
            return
        if slot != PROMPT_SLOT:
            raise BackendError(f"Fail to set input tensor: unknown slot {slot}")
        await self._close_stream()
        self._prompt = data.decode("utf-8")
        self._current = ""
        self._output = ""

    async def compute(self) -> None:
        client = self._get_client()
        try:
            resp = await client.post(self.url, headers=self._headers(), json=self._payload(stream=False))
            resp.raise_for_status()
            self._output = _extract_text(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            raise BackendError(f"Fail to execute model inference: {e}") from e

    async def _open_stream(self) -> AsyncIterator[str]:
        client = self._get_client()
        request = client.build_request("POST", self.url, headers=self._headers(), json=self._payload(stream=True))
        self._response = await client.send(request, stream=True)
        self._response.raise_for_status()
        return self._response.aiter_lines()

    async def compute_single(self) -> None:
        try:
            if self._lines is None:
                self._lines = await self._open_stream()
            while True:
                try:
                    line = await self._lines.__anext__()
                except StopAsyncIteration:
                    await self._close_stream()
                    raise EndOfSequence() from None

                raw = _sse_payload(line)
                if raw is None:
                    continue
                if raw == "[DONE]":
                    await self._close_stream()
                    raise EndOfSequence()
                chunk = json.loads(raw)
                text = _extract_text(chunk)
                if text:
                    self._current = text
                    return
        except httpx.HTTPError as e:
            await self._close_stream()
            raise BackendError(f"Fail to compute next token: {e}") from e
        except ValueError as e:
            await self._close_stream()
            raise BackendError(f"Malformed stream payload: {e}") from e

    async def get_output(self, slot: int) -> bytes:
        return self._output.encode("utf-8")

    async def get_output_single(self, slot: int) -> bytes:
        return self._current.encode("utf-8")

    async def _close_stream(self) -> None:
        if self._response is not None:
            await self._response.aclose()
        self._response = None
        self._lines = None

    async def close(self) -> None:
        await self._close_stream()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.debug("remote engine closed (%s)", self.url)
