from __future__ import annotations

from typing import Optional

from .registry import TemplateRegistry
from .templates import STRATEGIES, TemplateKind


def _cut_at(text: str, markers: tuple[str, ...]) -> str:
    """Drop everything from the earliest marker on."""
    cut = len(text)
    for marker in markers:
        idx = text.find(marker)
        if idx != -1:
            cut = min(cut, idx)
    return text[:cut]


def _trim_trailing(text: str, markers: tuple[str, ...]) -> str:
    """Remove trailing markers (and whitespace between them) until none is left."""
    while True:
        text = text.rstrip()
        for marker in markers:
            if text.endswith(marker):
                text = text[: -len(marker)]
                break
        else:
            return text


def strip_output(output: str, kind: Optional[TemplateKind], registry: Optional[TemplateRegistry] = None) -> str:
    """Strip end-of-turn artifacts from a single-shot completion.

    Used where the engine returns one blob; the decode loop handles the
    streaming case through its stop check. Rules come from `registry` when
    given, else from the built-in table. Idempotent.
    """
    if kind is not None:
        strategy = registry.resolve(kind) if registry is not None else STRATEGIES[kind]
        if strategy.cut_markers:
            output = _cut_at(output, strategy.cut_markers)
        if strategy.trailing_markers:
            output = _trim_trailing(output, strategy.trailing_markers)
    return output.strip()
