"""Selective-trace filter: eligibility and effective category."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ftflayer._config import LayerConfig
    from ftflayer._registry import SpanRecordState


@dataclass(frozen=True)
class FilterDecision:
    """Outcome of filtering one span or event."""

    eligible: bool
    category: str


_REJECTED = FilterDecision(eligible=False, category="")


class SelectiveFilter:
    """Decides whether a span or event is recorded, and under which category.

    A call site opts in with ``<eligibility_field>=True``. Children of a
    tracked span inherit both its eligibility and its category; an explicit
    ``<category_field>`` on the call site wins over the inherited one.
    """

    def __init__(self, config: LayerConfig) -> None:
        self._eligibility_field = config.eligibility_field
        self._category_field = config.category_field
        self._default_category = config.default_category
        self.reserved: frozenset[str] = frozenset(
            (config.eligibility_field, config.category_field)
        )

    def resolve(
        self,
        attributes: Mapping[str, Any],
        parent: SpanRecordState | None,
    ) -> FilterDecision:
        """Resolve eligibility and category against the parent's state.

        ``parent`` is the registry state of the enclosing span, or None when
        there is no parent or the parent is not tracked.
        """
        if attributes.get(self._eligibility_field) is not True and parent is None:
            return _REJECTED

        category = attributes.get(self._category_field)
        if category is None:
            category = parent.category if parent is not None else self._default_category
        elif not isinstance(category, str):
            category = str(category)
        return FilterDecision(eligible=True, category=category)
