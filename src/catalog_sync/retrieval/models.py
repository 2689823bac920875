"""Query-side models: metadata filters and search hits."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"category"``, ``"brand"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class SearchHit(BaseModel):
    """A single stored catalog document returned by a similarity query."""

    document_id: str | None = None
    content: str = ""
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def item_id(self) -> str | None:
        value = self.metadata.get("id")
        return None if value is None else str(value)

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.item_id or '?'}] {self.content[:120]}"
