from __future__ import annotations

from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class Event(BaseModel):
    id: str
    name: str
    date: str  # "YYYY-MM-DD"
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    created_at: Optional[str] = None


class EventUpdate(BaseModel):
    name: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    def changes_timing(self) -> bool:
        return any(value is not None
                   for value in (self.date, self.start_time, self.end_time))


class StoreResult(BaseModel):
    status: Literal["success", "error"]
    event: Optional[Event] = None
    events: List[Event] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
