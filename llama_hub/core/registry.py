from __future__ import annotations

from typing import Mapping, Optional

from ..common.errors import RegistryError
from .templates import STRATEGIES, PromptStrategy, TemplateKind


class TemplateRegistry:
    """TemplateKind -> PromptStrategy lookup.

    Construction checks that every TemplateKind has a strategy, so a dialect
    added to the enum without a table entry stops the process at startup instead
    of failing a request later.
    """

    def __init__(self, strategies: Optional[Mapping[TemplateKind, PromptStrategy]] = None) -> None:
        table = dict(STRATEGIES if strategies is None else strategies)
        missing = [k.value for k in TemplateKind if k not in table]
        if missing:
            raise RegistryError(f"no prompt strategy for template(s): {', '.join(missing)}")
        for kind, strategy in table.items():
            if strategy.kind is not kind:
                raise RegistryError(f"strategy registered under {kind.value} describes {strategy.kind.value}")
        self._items: dict[TemplateKind, PromptStrategy] = table

    def resolve(self, kind: TemplateKind) -> PromptStrategy:
        return self._items[kind]

    def kinds(self) -> list[TemplateKind]:
        return list(self._items)
