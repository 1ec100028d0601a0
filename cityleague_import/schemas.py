"""Wire contracts shared by the producer, the queue and the consumer."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator


class _WireModel(BaseModel):
    """Base for upstream payloads, where JSON null means "use the default"."""

    @model_validator(mode="before")
    @classmethod
    def _null_as_default(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        # Required fields keep their null so validation still rejects it.
        return {
            key: value
            for key, value in data.items()
            if value is not None or key not in cls.model_fields or cls.model_fields[key].is_required()
        }


class OfficialEvent(_WireModel):
    """
    One official event as carried (base64 JSON) in a queue message.
    """

    # Required fields
    id: int
    date: datetime

    # Optional fields
    title: str = ""
    address: str = ""
    venue: str = ""
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    type_name: str = ""
    league_title: str = ""
    regulation_title: str = ""
    csp_flg: bool = False
    capacity: int = 0
    shop_id: int = 0
    shop_name: str = ""


class OfficialEventsResponse(_WireModel):
    type_id: int = 0
    league_type: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    official_events: list[OfficialEvent] = []


class EventResult(_WireModel):
    player_id: str
    name: str = ""
    rank: int = 0
    point: int = 0
    deck_id: str = ""


class EventResultDetailSearch(_WireModel):
    code: int = 0
    count: int = 0
    results: Optional[list[EventResult]] = None
