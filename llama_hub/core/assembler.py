from __future__ import annotations

from typing import Optional

from ..common.time_util import unix_now
from ..common.trace import new_completion_id
from ..models import (
    ChatCompletionChoice,
    ChatCompletionChunk,
    ChatCompletionChunkChoice,
    ChatCompletionChunkDelta,
    ChatCompletionObject,
    ChatCompletionResponseMessage,
    CompletionChoice,
    CompletionObject,
    ListModelsResponse,
    ModelCard,
    Usage,
)


def count_words(text: str) -> int:
    """Approximate token count: whitespace-separated words.

    Not a tokenizer; clients see word counts in `usage`.
    """
    return len(text.split())


def build_usage(prompt: str, completion: str) -> Usage:
    prompt_tokens = count_words(prompt)
    completion_tokens = count_words(completion)
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def build_completion(*, model: str, text: str, usage: Usage) -> CompletionObject:
    return CompletionObject(
        id=new_completion_id("cmpl"),
        created=unix_now(),
        model=model,
        choices=[CompletionChoice(index=0, text=text, finish_reason="stop")],
        usage=usage,
    )


def build_chat_completion(*, model: str, content: str, usage: Usage) -> ChatCompletionObject:
    return ChatCompletionObject(
        id=new_completion_id("chatcmpl"),
        created=unix_now(),
        model=model,
        choices=[
            ChatCompletionChoice(
                index=0,
                message=ChatCompletionResponseMessage(content=content),
                finish_reason="stop",
            )
        ],
        usage=usage,
    )


def build_chat_chunk(
    *,
    chunk_id: str,
    created: int,
    model: str,
    content: Optional[str] = None,
    first: bool = False,
    finish: bool = False,
) -> ChatCompletionChunk:
    """One SSE chunk; all chunks of a response share `chunk_id` and `created`."""
    delta = ChatCompletionChunkDelta(role="assistant" if first else None, content=content)
    return ChatCompletionChunk(
        id=chunk_id,
        created=created,
        model=model,
        choices=[ChatCompletionChunkChoice(index=0, delta=delta, finish_reason="stop" if finish else None)],
    )


def build_model_list(*, model_name: str, template: str, created: int) -> ListModelsResponse:
    card = ModelCard(id=f"{model_name}:{template}", created=created)
    return ListModelsResponse(data=[card])
