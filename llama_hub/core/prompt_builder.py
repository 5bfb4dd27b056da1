from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..capabilities.interfaces import ChatMessage
from ..common.errors import PromptBuildError
from .templates import PromptStrategy, TemplateKind


@dataclass(frozen=True)
class RenderedPrompt:
    """Prompt text ready for the engine.

    `template` is None for raw text completions, which skip dialect
    post-processing.
    """

    text: str
    template: Optional[TemplateKind] = None


def _validate(messages: Sequence[ChatMessage]) -> None:
    if not messages:
        raise PromptBuildError("no messages to build a prompt from")
    for i, msg in enumerate(messages):
        if msg.role == "system" and i != 0:
            raise PromptBuildError(f"system message must be the first message (found at index {i})")
        if msg.role == "assistant" and not msg.content.strip():
            raise PromptBuildError(f"assistant message at index {i} has no content")
    if not any(m.role == "user" for m in messages):
        raise PromptBuildError("at least one user message is required")


def build_prompt(strategy: PromptStrategy, messages: Sequence[ChatMessage]) -> RenderedPrompt:
    """Render `messages` in the dialect described by `strategy`.

    Pure: the same strategy and messages always give the same text.
    """
    _validate(messages)

    system_content = messages[0].content if messages[0].role == "system" else None
    system = strategy.render_system(system_content)
    first_user = strategy.first_user_template or strategy.user_template

    prompt = ""
    for msg in messages:
        if msg.role not in ("user", "assistant"):
            continue
        content = msg.content.strip()
        if msg.role == "user" and not prompt:
            prompt = first_user.format(system=system, content=content)
            continue
        history = prompt.strip() if strategy.trim_history else prompt
        template = strategy.user_template if msg.role == "user" else strategy.assistant_template
        prompt = history + template.format(content=content)

    return RenderedPrompt(text=prompt + strategy.priming_cue, template=strategy.kind)
