from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Protocol

Role = Literal["system", "user", "assistant", "function"]

# Engine input/output slots.
PROMPT_SLOT = 0
METADATA_SLOT = 1


@dataclass(frozen=True)
class ChatMessage:
    """One turn of a conversation.

    Request schemas are mapped onto this before prompt rendering.
    """

    role: Role
    content: str
    name: Optional[str] = None


class EndOfSequence(Exception):
    """The model reached its own stopping point. Not an error."""


class BackendError(Exception):
    """Any engine failure other than end-of-sequence."""


class InferenceEngine(Protocol):
    """Inference backend (kernel depends on interface, not implementation).

    An engine holds one execution context, so callers must not overlap calls;
    see core.guard.EngineGuard.
    """

    async def set_input(self, slot: int, data: bytes) -> None:
        ...

    async def compute(self) -> None:
        """Run the whole generation for the current input."""
        ...

    async def compute_single(self) -> None:
        """Produce the next token. Raises EndOfSequence when done."""
        ...

    async def get_output(self, slot: int) -> bytes:
        ...

    async def get_output_single(self, slot: int) -> bytes:
        """The token produced by the last compute_single call."""
        ...
