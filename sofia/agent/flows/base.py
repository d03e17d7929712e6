from __future__ import annotations

import asyncio
from datetime import date
from typing import Awaitable, Callable, List, Optional, TypeVar

from ...config import MAX_FAILED_ATTEMPTS, STORE_TIMEOUT_SECONDS
from ...errors import ErrorKind, EventStoreError
from ...models import Event
from ...state import EventStore
from ...utils import _log_debug
from ..normalizer import today_in_timezone
from ..resolve_event_target import DisambiguationResolver
from ..response_agent import ResponseComposer
from ..schemas import AgentReply
from ..state import Session

R = TypeVar("R")

TOO_MANY_ATTEMPTS_TEXT = ("Demasiados intentos fallidos. Cancelé la operación; "
                          "cuando quieras, empezamos de nuevo.")


class FlowContext:
  """Collaborators shared by every flow handler during one turn."""

  def __init__(self,
               store: EventStore,
               composer: ResponseComposer,
               resolver: DisambiguationResolver,
               today: Optional[Callable[[], date]] = None,
               store_timeout: float = STORE_TIMEOUT_SECONDS) -> None:
    self.store = store
    self.composer = composer
    self.resolver = resolver
    self._today = today or today_in_timezone
    self.store_timeout = store_timeout

  def today(self) -> date:
    return self._today()

  async def call_store(self, awaitable: Awaitable[R]) -> R:
    """Await a store operation under the store timeout.

    Anything the store raises, a timeout included, surfaces as
    ``EventStoreError``.
    """
    try:
      return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
    except EventStoreError:
      raise
    except asyncio.TimeoutError as exc:
      raise EventStoreError(f"event store timed out after {self.store_timeout}s") from exc
    except Exception as exc:
      raise EventStoreError(str(exc) or exc.__class__.__name__) from exc


def describe_event(event: Event) -> str:
  return f"\"{event.name}\" ({event.date} {event.start_time}-{event.end_time})"


def minutes_of(value: str) -> int:
  hour, minute = (int(part) for part in value.split(":"))
  return hour * 60 + minute


def shift_time(start_time: str, minutes: int) -> str:
  """``start_time`` moved by ``minutes``, clamped to 23:59 on the same day."""
  total = minutes_of(start_time) + minutes
  if total > 23 * 60 + 59:
    return "23:59"
  return f"{total // 60:02d}:{total % 60:02d}"


def pending(message: str) -> AgentReply:
  return AgentReply(status="pending", message=message)


def advance(session: Session, step: int) -> None:
  session.step = step
  session.failed_attempts = 0


def register_failure(session: Session, message: str,
                     kind: ErrorKind = ErrorKind.PARSE) -> AgentReply:
  """Count an invalid answer. Below the threshold the same step is asked
  again; at the threshold the action is dropped."""
  session.failed_attempts += 1
  _log_debug(f"[FLOW] invalid answer action={session.pending_action.value} "
             f"step={session.step} attempts={session.failed_attempts}")
  if session.failed_attempts >= MAX_FAILED_ATTEMPTS:
    session.reset_action()
    return AgentReply(status="error", message=TOO_MANY_ATTEMPTS_TEXT,
                      error=ErrorKind.TOO_MANY_ATTEMPTS)
  return AgentReply(status="error", message=message, error=kind)


def not_found(session: Session, message: str) -> AgentReply:
  session.reset_action()
  return AgentReply(status="error", message=message, error=ErrorKind.NOT_FOUND)


def conflict(message: str) -> AgentReply:
  return AgentReply(status="error", message=message, error=ErrorKind.CONFLICT)


async def find_candidates(ctx: FlowContext,
                          *,
                          event_id: Optional[str] = None,
                          name: Optional[str] = None,
                          on_date: Optional[str] = None) -> List[Event]:
  """Events matching an explicit id, else a name substring (optionally on
  ``on_date``), else everything on ``on_date``."""
  if event_id:
    event = await ctx.call_store(ctx.store.get_by_id(event_id))
    return [event] if event is not None else []
  if name:
    found = await ctx.call_store(ctx.store.query_by_name(name, True))
    if on_date:
      found = [event for event in found if event.date == on_date]
    return found
  if on_date:
    return await ctx.call_store(ctx.store.query_by_date(on_date))
  return []


def describe_lookup(*,
                    event_id: Optional[str] = None,
                    name: Optional[str] = None,
                    on_date: Optional[str] = None) -> str:
  if event_id:
    return f"con id {event_id}"
  parts = []
  if name:
    parts.append(f"llamado \"{name}\"")
  if on_date:
    parts.append(f"el {on_date}")
  return " ".join(parts)
