from __future__ import annotations

import json
import pathlib
from typing import Dict, List, Optional, Protocol

from .config import (DEMO_EVENTS, EVENTS_DATA_FILE, HHMM_RE, ISO_DATE_RE,
                     SEED_DEMO_EVENTS)
from .models import Event, EventUpdate, StoreResult
from .utils import _log_debug, _now_iso_minute, fold_text

CONFLICT_ERROR = "conflict"
NOT_FOUND_ERROR = "not_found"
INVALID_INTERVAL_ERROR = "invalid_interval"
INVALID_FORMAT_ERROR = "invalid_format"


def intervals_overlap(start: str, end: str, other_start: str, other_end: str) -> bool:
    # Half-open [start, end): back-to-back events sharing a boundary do not overlap.
    return start < other_end and end > other_start


def _well_formed(date: str, start_time: str, end_time: str) -> bool:
    return bool(ISO_DATE_RE.match(date) and HHMM_RE.match(start_time)
                and HHMM_RE.match(end_time))


def _sort_key(event: Event):
    return (event.date, event.start_time, event.end_time, event.id)


class EventStore(Protocol):
    """Calendar persistence contract consumed by the dialogue flows."""

    async def create(self, name: str, date: str, start_time: str,
                     end_time: str) -> StoreResult: ...

    async def query_range(self, start_date: str, end_date: str) -> StoreResult: ...

    async def query_by_name(self, substring: str,
                            case_insensitive: bool = True) -> List[Event]: ...

    async def query_by_date(self, date: str) -> List[Event]: ...

    async def get_by_id(self, event_id: str) -> Optional[Event]: ...

    async def update_by_id(self, event_id: str, fields: EventUpdate) -> StoreResult: ...

    async def delete_by_id(self, event_id: str) -> StoreResult: ...

    async def delete_by_name(self, name: str) -> StoreResult: ...

    async def has_conflict(self, date: str, start_time: str, end_time: str,
                           exclude_id: Optional[str] = None) -> bool: ...


class JsonEventStore:
    """In-process event store, optionally mirrored to a JSON file.

    Ids are assigned from an incrementing counter and never reused while the
    file exists. Defaults come from EVENTS_DATA_FILE / SEED_DEMO_EVENTS; pass
    ``data_file=None`` for a memory-only store.
    """

    def __init__(self,
                 data_file: Optional[pathlib.Path] = EVENTS_DATA_FILE,
                 seed_demo_events: bool = SEED_DEMO_EVENTS) -> None:
        self.data_file = data_file
        self.events: Dict[str, Event] = {}
        self.next_id: int = 1
        self._load_events_from_disk()
        if seed_demo_events and not self.events:
            for item in DEMO_EVENTS:
                self._insert(item["name"], item["date"], item["start_time"],
                             item["end_time"])
            self._save_events_to_disk()
            _log_debug(f"[EVENT STORE] seeded {len(DEMO_EVENTS)} demo events")

    # -------------------------
    # persistence
    # -------------------------
    def _serialize_events_payload(self) -> Dict[str, object]:
        return {
            "version": 1,
            "next_id": self.next_id,
            "events": [e.model_dump() for e in self.list_all()],
        }

    def _save_events_to_disk(self) -> None:
        if self.data_file is None:
            return
        payload = self._serialize_events_payload()
        self.data_file.write_text(json.dumps(payload, ensure_ascii=False, indent=2),
                                  encoding="utf-8")

    def _load_events_from_disk(self) -> None:
        self.events.clear()
        self.next_id = 1
        if self.data_file is None or not self.data_file.exists():
            return
        try:
            data = json.loads(self.data_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _log_debug(f"[EVENT STORE] load failed: {exc}")
            return

        raw_events = data.get("events") if isinstance(data, dict) else data
        if not isinstance(raw_events, list):
            return
        max_id = 0
        for item in raw_events:
            if not isinstance(item, dict):
                continue
            try:
                ev = Event.model_validate(item)
            except ValueError:
                continue
            self.events[ev.id] = ev
            if ev.id.isdigit():
                max_id = max(max_id, int(ev.id))
        stored_next = data.get("next_id") if isinstance(data, dict) else None
        self.next_id = max(max_id + 1, stored_next if isinstance(stored_next, int) else 1)

    def _insert(self, name: str, date: str, start_time: str, end_time: str) -> Event:
        new_event = Event(
            id=str(self.next_id),
            name=name,
            date=date,
            start_time=start_time,
            end_time=end_time,
            created_at=_now_iso_minute(),
        )
        self.next_id += 1
        self.events[new_event.id] = new_event
        return new_event

    def list_all(self) -> List[Event]:
        return sorted(self.events.values(), key=_sort_key)

    # -------------------------
    # store contract
    # -------------------------
    async def has_conflict(self, date: str, start_time: str, end_time: str,
                           exclude_id: Optional[str] = None) -> bool:
        for event in self.events.values():
            if event.date != date or event.id == exclude_id:
                continue
            if intervals_overlap(start_time, end_time, event.start_time, event.end_time):
                return True
        return False

    async def create(self, name: str, date: str, start_time: str,
                     end_time: str) -> StoreResult:
        if not _well_formed(date, start_time, end_time):
            return StoreResult(status="error", error=INVALID_FORMAT_ERROR)
        if end_time <= start_time:
            return StoreResult(status="error", error=INVALID_INTERVAL_ERROR)
        if await self.has_conflict(date, start_time, end_time):
            return StoreResult(status="error", error=CONFLICT_ERROR)
        event = self._insert(name, date, start_time, end_time)
        self._save_events_to_disk()
        _log_debug(f"[EVENT STORE] created id={event.id} {event.date} "
                   f"{event.start_time}-{event.end_time}")
        return StoreResult(status="success", event=event)

    async def query_range(self, start_date: str, end_date: str) -> StoreResult:
        if end_date < start_date:
            start_date, end_date = end_date, start_date
        found = [e for e in self.list_all() if start_date <= e.date <= end_date]
        return StoreResult(status="success", events=found)

    async def query_by_name(self, substring: str,
                            case_insensitive: bool = True) -> List[Event]:
        needle = (substring or "").strip()
        if not needle:
            return []
        if case_insensitive:
            needle = fold_text(needle)
            return [e for e in self.list_all() if needle in fold_text(e.name)]
        return [e for e in self.list_all() if needle in e.name]

    async def query_by_date(self, date: str) -> List[Event]:
        return [e for e in self.list_all() if e.date == date]

    async def get_by_id(self, event_id: str) -> Optional[Event]:
        return self.events.get(str(event_id))

    async def update_by_id(self, event_id: str, fields: EventUpdate) -> StoreResult:
        current = self.events.get(str(event_id))
        if current is None:
            return StoreResult(status="error", error=NOT_FOUND_ERROR)
        changes = fields.model_dump(exclude_none=True)
        updated = current.model_copy(update=changes)
        if not _well_formed(updated.date, updated.start_time, updated.end_time):
            return StoreResult(status="error", error=INVALID_FORMAT_ERROR)
        if updated.end_time <= updated.start_time:
            return StoreResult(status="error", error=INVALID_INTERVAL_ERROR)
        if fields.changes_timing() and await self.has_conflict(
                updated.date, updated.start_time, updated.end_time,
                exclude_id=current.id):
            return StoreResult(status="error", error=CONFLICT_ERROR)
        self.events[current.id] = updated
        self._save_events_to_disk()
        return StoreResult(status="success", event=updated)

    async def delete_by_id(self, event_id: str) -> StoreResult:
        removed = self.events.pop(str(event_id), None)
        if removed is None:
            return StoreResult(status="error", error=NOT_FOUND_ERROR)
        self._save_events_to_disk()
        return StoreResult(status="success", event=removed)

    async def delete_by_name(self, name: str) -> StoreResult:
        target = fold_text(name)
        for event in self.list_all():
            if fold_text(event.name) == target:
                return await self.delete_by_id(event.id)
        return StoreResult(status="error", error=NOT_FOUND_ERROR)
