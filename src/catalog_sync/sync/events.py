"""Sync event model shared by the publisher, the consumer and the reconciler."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_sync.ingestion.models import CatalogRecord, utcnow


class EventType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncEvent(BaseModel):
    """One catalog change notification.

    Producers in the catalog service emit camelCase JSON (``itemId``,
    ``eventType``, ``itemData``, ``operatorId``); both spellings validate.

    Attributes
    ----------
    item_id:
        Id of the changed catalog item.
    event_type:
        What happened to it; ``None`` when the producer sent an unknown
        or blank type.
    item_data:
        Snapshot of the record at event time, when the producer embeds one.
        Without it the reconciler fetches the current record from the catalog.
    timestamp:
        When the event was created.
    source / operator_id:
        Free-form provenance, logged only.
    """

    model_config = ConfigDict(populate_by_name=True)

    item_id: int = Field(alias="itemId")
    event_type: EventType | None = Field(default=None, alias="eventType")
    item_data: CatalogRecord | None = Field(default=None, alias="itemData")
    timestamp: datetime = Field(default_factory=utcnow)
    source: str | None = None
    operator_id: str | None = Field(default=None, alias="operatorId")

    @field_validator("event_type", mode="before")
    @classmethod
    def normalize_event_type(cls, value: object) -> object:
        # Unknown or blank types are left for the routing key to decide.
        if isinstance(value, str):
            value = value.strip().upper()
            return value if value in EventType.__members__ else None
        return value

    @classmethod
    def create(cls, item_id: int, item_data: CatalogRecord | None = None, **kwargs) -> SyncEvent:
        return cls(item_id=item_id, event_type=EventType.CREATE, item_data=item_data, **kwargs)

    @classmethod
    def update(cls, item_id: int, item_data: CatalogRecord | None = None, **kwargs) -> SyncEvent:
        return cls(item_id=item_id, event_type=EventType.UPDATE, item_data=item_data, **kwargs)

    @classmethod
    def delete(cls, item_id: int, **kwargs) -> SyncEvent:
        return cls(item_id=item_id, event_type=EventType.DELETE, **kwargs)

    def to_wire(self) -> dict:
        """JSON-ready payload in the producers' camelCase shape."""
        return self.model_dump(mode="json", by_alias=True)
