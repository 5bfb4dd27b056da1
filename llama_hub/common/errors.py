from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    """HTTP-facing error, rendered into the OpenAI-style error body."""
    code: str
    message: str
    http_status: int = 400
    type: str = "invalid_request_error"


class PromptBuildError(Exception):
    """The message sequence does not fit the chosen dialect."""


class InferenceError(Exception):
    """The engine failed with anything other than end-of-sequence."""


class RegistryError(Exception):
    """A TemplateKind has no strategy. Raised at construction, never per request."""
