from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...models import Event
from ..normalizer import (DateRange, is_date_phrase, normalize_date,
                          normalize_time)
from ..resolve_event_target import parse_explicit_id
from ..schemas import AgentReply, ClassifierParameters
from ..state import PendingAction, QueryStep, Session
from .base import FlowContext, pending, register_failure

ASK_IDENTIFIER_TEXT = ("¿Qué quieres consultar? Puedes decirme una fecha "
                       "(\"mañana\", \"19 de marzo\"), un rango (\"del 10 al 15 "
                       "de marzo\") o el nombre del evento.")


def _criteria_from_parameters(ctx: FlowContext, params: ClassifierParameters,
                              text: str) -> Dict[str, Any]:
  today = ctx.today()
  criteria: Dict[str, Any] = {}
  if params.id:
    criteria["id"] = params.id
  if params.date:
    date_value = normalize_date(params.date, today=today)
    if isinstance(date_value, DateRange):
      criteria["range"] = date_value
    elif date_value:
      criteria["date"] = date_value
  if params.end_date and "date" in criteria:
    end_value = normalize_date(params.end_date, today=today)
    if isinstance(end_value, str) and end_value >= criteria["date"]:
      criteria["range"] = DateRange(start=criteria.pop("date"), end=end_value)
  if params.start_time:
    criteria["start_time"] = normalize_time(params.start_time)
  if params.end_time:
    criteria["end_time"] = normalize_time(params.end_time)
  if params.name:
    criteria["name"] = params.name
  if not any(key in criteria for key in ("id", "date", "range", "name")):
    # Keyword-routed messages carry no parameters; read a date off the text.
    date_value = normalize_date(text, today=today)
    if isinstance(date_value, DateRange):
      criteria["range"] = date_value
    elif date_value:
      criteria["date"] = date_value
  return {key: value for key, value in criteria.items() if value}


def _criteria_from_answer(ctx: FlowContext, text: str) -> Dict[str, Any]:
  explicit_id = parse_explicit_id(text)
  if explicit_id:
    return {"id": explicit_id}
  date_value = (normalize_date(text, today=ctx.today())
                if is_date_phrase(text, today=ctx.today()) else None)
  if isinstance(date_value, DateRange):
    return {"range": date_value}
  if date_value:
    return {"date": date_value}
  name = text.strip(" ¿?¡!.\"'")
  if len(name) < 2:
    return {}
  return {"name": name}


def _matches_times(event: Event, start_time: Optional[str],
                   end_time: Optional[str]) -> bool:
  if start_time and not (event.start_time == start_time
                         or event.start_time <= start_time < event.end_time):
    return False
  if end_time and event.end_time != end_time:
    return False
  return True


def _describe_criteria(criteria: Dict[str, Any]) -> str:
  if "id" in criteria:
    return f"con id {criteria['id']}"
  parts: List[str] = []
  if "name" in criteria:
    parts.append(f"con el nombre \"{criteria['name']}\"")
  if "range" in criteria:
    parts.append(f"entre el {criteria['range'].start} y el {criteria['range'].end}")
  elif "date" in criteria:
    parts.append(f"para el {criteria['date']}")
  if "start_time" in criteria:
    parts.append(f"a las {criteria['start_time']}")
  if "end_time" in criteria:
    parts.append(f"que terminen a las {criteria['end_time']}")
  return " ".join(parts)


async def _run_query(ctx: FlowContext, session: Session,
                     criteria: Dict[str, Any],
                     params: Optional[ClassifierParameters] = None) -> AgentReply:
  start_time = criteria.get("start_time")
  end_time = criteria.get("end_time")
  if "id" in criteria:
    event = await ctx.call_store(ctx.store.get_by_id(criteria["id"]))
    events = [event] if event is not None else []
  elif "name" in criteria:
    events = await ctx.call_store(ctx.store.query_by_name(criteria["name"], True))
    if "range" in criteria:
      events = [e for e in events
                if criteria["range"].start <= e.date <= criteria["range"].end]
    elif "date" in criteria:
      events = [e for e in events if e.date == criteria["date"]]
  elif "range" in criteria:
    result = await ctx.call_store(
        ctx.store.query_range(criteria["range"].start, criteria["range"].end))
    events = list(result.events)
  else:
    events = await ctx.call_store(ctx.store.query_by_date(criteria["date"]))
  events = [e for e in events if _matches_times(e, start_time, end_time)]

  session.reset_action()
  if len(events) == 1:
    # Lets a follow-up "edítalo" / "bórralo" target this event.
    session.selected_event_id = events[0].id

  result_payload = {
      "criteria": _describe_criteria(criteria),
      "events": [event.model_dump(exclude={"created_at"}) for event in events],
  }
  message = await ctx.composer.compose(
      "query", result_payload,
      params.model_dump(exclude_none=True) if params else criteria_to_parameters(criteria))
  return AgentReply(status="success", message=message, events=events)


def criteria_to_parameters(criteria: Dict[str, Any]) -> Dict[str, Any]:
  out = dict(criteria)
  if isinstance(out.get("range"), DateRange):
    out["range"] = out["range"].model_dump()
  return out


async def start(ctx: FlowContext, session: Session,
                params: ClassifierParameters, text: str) -> AgentReply:
  criteria = _criteria_from_parameters(ctx, params, text)
  session.start_action(PendingAction.QUERY, QueryStep.AWAITING_IDENTIFIER)
  if any(key in criteria for key in ("id", "date", "range", "name")):
    return await _run_query(ctx, session, criteria, params)
  if "start_time" in criteria or "end_time" in criteria:
    criteria["date"] = ctx.today().isoformat()
    return await _run_query(ctx, session, criteria, params)
  return pending(ASK_IDENTIFIER_TEXT)


async def handle_identifier(ctx: FlowContext, session: Session,
                            text: str) -> AgentReply:
  criteria = _criteria_from_answer(ctx, text)
  if not criteria:
    return register_failure(session, ASK_IDENTIFIER_TEXT)
  return await _run_query(ctx, session, criteria)


HANDLERS = {
    QueryStep.AWAITING_IDENTIFIER: handle_identifier,
}
