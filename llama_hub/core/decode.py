from __future__ import annotations

import enum
import logging
from typing import AsyncIterator, Optional, Sequence, Union

from ..capabilities.interfaces import PROMPT_SLOT, EndOfSequence, InferenceEngine
from ..common.errors import InferenceError

logger = logging.getLogger(__name__)


def should_stop(trimmed_token: str, stop: Optional[str]) -> bool:
    """Exact match against one stop string."""
    return stop is not None and trimmed_token == stop


class DecodeState(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    END_OF_SEQUENCE = "end_of_sequence"


class DecodeLoop:
    """Pull tokens from an engine one at a time.

    `tokens()` yields every accepted chunk; once it is exhausted `output` holds
    the full answer and `state` tells why it ended. The engine's input must
    already be set, and the caller owns the engine for the loop's lifetime.
    `stop` is one string or several; a token whose trimmed text equals any of
    them ends the loop and is never emitted. There is no iteration cap: the
    engine's own n-predict limit ends the run.
    """

    def __init__(self, engine: InferenceEngine, stop: Union[str, Sequence[str], None] = None) -> None:
        self.engine = engine
        if stop is None:
            stop = ()
        elif isinstance(stop, str):
            stop = (stop,)
        self.stops: tuple[str, ...] = tuple(stop)
        self.state = DecodeState.RUNNING
        self.output = ""
        self.steps = 0
        self._started = False

    async def _next_token(self) -> Optional[str]:
        """Next raw token, or None at end-of-sequence."""
        try:
            await self.engine.compute_single()
        except EndOfSequence:
            return None
        except Exception as e:
            self.state = DecodeState.FAILED
            raise InferenceError(str(e)) from e
        try:
            raw = await self.engine.get_output_single(PROMPT_SLOT)
        except Exception as e:
            self.state = DecodeState.FAILED
            raise InferenceError(f"Fail to get output tensor: {e}") from e
        return raw.decode("utf-8", errors="replace")

    async def tokens(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("DecodeLoop.tokens() can only be consumed once")
        self._started = True

        while True:
            token = await self._next_token()
            self.steps += 1
            if token is None:
                self.state = DecodeState.END_OF_SEQUENCE
                return

            if not self.output and token == " ":
                continue

            trimmed = token.strip()
            if any(should_stop(trimmed, s) for s in self.stops):
                logger.debug("stop sequence %r reached after %d steps", trimmed, self.steps)
                self.state = DecodeState.STOPPED
                return

            if not self.output and token.startswith(" "):
                token = token.lstrip()
            if not token:
                continue
            self.output += token
            yield token

    async def run(self) -> str:
        """Drain the loop without emitting anything."""
        async for _ in self.tokens():
            pass
        return self.output
