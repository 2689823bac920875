"""Catalog record → embeddable document conversion.

The transformer is a pure function: it never raises, never performs I/O,
and produces the same document for the same record.  A record with
missing or oddly typed fields yields a sparse (possibly empty) text body
rather than an error, so one bad record can never abort a batch.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from langchain_core.documents import Document
from pydantic import BaseModel

DOCUMENT_TYPE = "product"

# (metadata key, accepted source keys)
_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("id", ("id",)),
    ("name", ("name",)),
    ("category", ("category",)),
    ("brand", ("brand",)),
    ("price", ("price",)),
    ("stock", ("stock",)),
    ("image", ("image",)),
    ("spec", ("spec",)),
    ("sold", ("sold",)),
    ("comment_count", ("comment_count", "commentCount")),
    ("is_ad", ("is_ad", "isAD")),
    ("status", ("status",)),
)

# Text body lines, in display order: (metadata key, label, unit suffix)
_TEXT_LINES: tuple[tuple[str, str, str], ...] = (
    ("name", "Name", ""),
    ("category", "Category", ""),
    ("brand", "Brand", ""),
    ("price", "Price", ""),
    ("spec", "Spec", ""),
    ("stock", "Stock", " units"),
    ("sold", "Sold", " units"),
    ("comment_count", "Comments", ""),
)


def _as_mapping(record: Any) -> Mapping[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump()
    if isinstance(record, Mapping):
        return record
    return {}


def _pick(source: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def extract_fields(record: Any) -> dict[str, Any]:
    """Return every known field of *record*, ``None`` where absent."""
    source = _as_mapping(record)
    fields = {key: _pick(source, aliases) for key, aliases in _FIELDS}
    if fields["id"] is not None:
        fields["id"] = str(fields["id"])
    return fields


def build_text(fields: Mapping[str, Any]) -> str:
    """Join the present descriptive fields into labelled lines."""
    lines = []
    for key, label, suffix in _TEXT_LINES:
        value = fields.get(key)
        if value is None or value == "":
            continue
        lines.append(f"{label}: {value}{suffix}")
    return "\n".join(lines)


def to_document(record: Any) -> Document:
    """Convert one catalog record into a :class:`Document`.

    Parameters
    ----------
    record:
        A :class:`~catalog_sync.ingestion.models.CatalogRecord` or a raw
        mapping in either snake_case or the upstream camelCase form.

    Returns
    -------
    Document
        Text body plus metadata.  Every metadata key is always present;
        ``metadata["id"]`` is the item id as a string and
        ``metadata["type"]`` is the fixed ``"product"`` discriminator.
    """
    fields = extract_fields(record)
    metadata = {**fields, "type": DOCUMENT_TYPE}
    return Document(page_content=build_text(fields), metadata=metadata)


def to_documents(records: Iterable[Any]) -> list[Document]:
    return [to_document(r) for r in records]
