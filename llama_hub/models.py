from __future__ import annotations

import json
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

FinishReason = Literal["stop", "length"]
Role = Literal["system", "user", "assistant", "function"]


# -------------------------
# Engine options
# -------------------------

class GenerationOptions(BaseModel):
    """Per-call engine configuration, handed to the engine as opaque JSON."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ctx_size: int = Field(default=4096, ge=1, serialization_alias="ctx-size")
    n_predict: int = Field(default=1024, ge=0, serialization_alias="n-predict")
    n_gpu_layers: int = Field(default=100, ge=0, serialization_alias="n-gpu-layers")
    batch_size: int = Field(default=4096, ge=1, serialization_alias="batch-size")
    temp: float = Field(default=0.8, ge=0.0)
    repeat_penalty: float = Field(default=1.1, ge=0.0, serialization_alias="repeat-penalty")
    reverse_prompt: Optional[str] = Field(default=None, serialization_alias="reverse-prompt")
    stream_stdout: bool = Field(default=False, serialization_alias="stream-stdout")
    log_enable: bool = Field(default=False, serialization_alias="enable-log")

    def to_metadata(self) -> bytes:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True)).encode("utf-8")


# -------------------------
# Requests
# -------------------------

class ChatCompletionRequestMessage(BaseModel):
    role: Role
    content: Optional[str] = ""
    name: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: Optional[str] = None
    messages: List[ChatCompletionRequestMessage]
    max_tokens: Optional[int] = Field(default=None, ge=0)
    temperature: Optional[float] = Field(default=None, ge=0.0)
    stop: Optional[Union[str, List[str]]] = None
    stream: bool = False
    user: Optional[str] = None


class CompletionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: Optional[str] = None
    prompt: Union[str, List[str]]
    max_tokens: Optional[int] = Field(default=None, ge=0)
    temperature: Optional[float] = Field(default=None, ge=0.0)
    stop: Optional[Union[str, List[str]]] = None
    user: Optional[str] = None


# -------------------------
# Responses
# -------------------------

class Usage(BaseModel):
    """Whitespace-word counts, not model tokens."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionChoice(BaseModel):
    index: int
    text: str
    finish_reason: FinishReason = "stop"
    logprobs: Optional[dict] = None


class CompletionObject(BaseModel):
    id: str
    object: Literal["text_completion"] = "text_completion"
    created: int
    model: str
    choices: List[CompletionChoice]
    usage: Usage


class ChatCompletionResponseMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str
    function_call: Optional[dict] = None


class ChatCompletionChoice(BaseModel):
    index: int
    message: ChatCompletionResponseMessage
    finish_reason: FinishReason = "stop"


class ChatCompletionObject(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: Usage


class ChatCompletionChunkDelta(BaseModel):
    role: Optional[Literal["assistant"]] = None
    content: Optional[str] = None


class ChatCompletionChunkChoice(BaseModel):
    index: int = 0
    delta: ChatCompletionChunkDelta
    finish_reason: Optional[FinishReason] = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChatCompletionChunkChoice]


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str = "Not specified"


class ListModelsResponse(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelCard] = Field(default_factory=list)


# -------------------------
# Errors
# -------------------------

class ErrorDetail(BaseModel):
    message: str
    type: str
    code: str


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
