from __future__ import annotations

import re
from typing import Optional

from ...config import DEFAULT_DURATION_HOURS
from ...errors import ErrorKind
from ...state import CONFLICT_ERROR, intervals_overlap
from ...utils import fold_text
from ..confirmation import is_affirmation, is_negation
from ..normalizer import (DateRange, add_hours, normalize_date,
                          normalize_single_date, normalize_time,
                          parse_duration_hours)
from ..schemas import AgentReply, ClassifierParameters
from ..state import CreateStep, PendingAction, Session
from .base import (FlowContext, advance, conflict, minutes_of, pending,
                   register_failure, shift_time)

_END_PREFIX_RE = re.compile(r"^(?:hasta|termina|acaba|finaliza)\s+(?:a\s+)?")

# Slot filled by each step, in prompt order.
SLOT_ORDER = (
    (CreateStep.AWAITING_NAME, "name"),
    (CreateStep.AWAITING_DATE, "date"),
    (CreateStep.AWAITING_START_TIME, "start_time"),
    (CreateStep.AWAITING_DURATION, "end_time"),
)

PROMPTS = {
    CreateStep.AWAITING_NAME: "¿Cómo se llama el evento?",
    CreateStep.AWAITING_DATE: "¿Para qué fecha? Por ejemplo \"mañana\", \"19 de marzo\" o \"19/03/2025\".",
    CreateStep.AWAITING_START_TIME: "¿A qué hora empieza? Por ejemplo \"10:00\" o \"3pm\".",
    CreateStep.AWAITING_DURATION: "¿Cuánto dura? Dime las horas (\"2 horas\") o la hora de fin. Si no lo sabes, pondré 1 hora.",
}

RETRY_PROMPTS = {
    CreateStep.AWAITING_NAME: "Necesito un nombre para el evento. ¿Cómo se llama?",
    CreateStep.AWAITING_DATE: "No entendí la fecha. Prueba con \"mañana\", \"19 de marzo\" o \"19/03/2025\".",
    CreateStep.AWAITING_START_TIME: "No entendí la hora. Prueba con \"10:00\", \"3pm\" o \"a las 9\".",
    CreateStep.AWAITING_DURATION: "La hora de fin debe ser posterior a la de inicio. ¿Cuánto dura el evento?",
}


def _summary(session: Session) -> str:
  slots = session.slots
  return (f"Voy a crear \"{slots['name']}\" el {slots['date']} de "
          f"{slots['start_time']} a {slots['end_time']}. ¿Lo confirmo? "
          "Responde \"sí\", \"no\" para cambiar los datos, o dime otra hora de inicio.")


def _prompt_for(session: Session, step: CreateStep) -> str:
  prompt = PROMPTS[step]
  slot = dict(SLOT_ORDER)[step]
  current = session.slots.get(slot)
  if session.slots.get("revising") and current:
    prompt += f" (actual: {current})"
  return prompt


def _next_step(session: Session, after: Optional[CreateStep]) -> CreateStep:
  if session.slots.get("revising") and after is not None:
    return CreateStep(after + 1)
  for step, slot in SLOT_ORDER:
    if not session.slots.get(slot):
      return step
  return CreateStep.AWAITING_CONFIRMATION


def _move_on(session: Session, after: Optional[CreateStep]) -> AgentReply:
  step = _next_step(session, after)
  advance(session, step)
  if step == CreateStep.AWAITING_CONFIRMATION:
    session.slots = {k: v for k, v in session.slots.items() if k != "revising"}
    return pending(_summary(session))
  return pending(_prompt_for(session, step))


async def start(ctx: FlowContext, session: Session,
                params: ClassifierParameters, text: str) -> AgentReply:
  session.start_action(PendingAction.CREATE, CreateStep.AWAITING_NAME)
  slots = {}
  if params.name:
    slots["name"] = params.name
  if params.date:
    date_value = normalize_date(params.date, today=ctx.today())
    if isinstance(date_value, str):
      slots["date"] = date_value
  start_time = normalize_time(params.start_time) if params.start_time else None
  if start_time:
    slots["start_time"] = start_time
    end_time = normalize_time(params.end_time) if params.end_time else None
    if end_time and end_time > start_time:
      slots["end_time"] = end_time
  session.slots = slots
  return _move_on(session, None)


async def handle_name(ctx: FlowContext, session: Session, text: str) -> AgentReply:
  name = text.strip(" \"'")
  if not name:
    return register_failure(session, RETRY_PROMPTS[CreateStep.AWAITING_NAME],
                            ErrorKind.VALIDATION)
  session.slots = {**session.slots, "name": name}
  return _move_on(session, CreateStep.AWAITING_NAME)


async def handle_date(ctx: FlowContext, session: Session, text: str) -> AgentReply:
  date_value = normalize_single_date(text, today=ctx.today())
  if date_value is None:
    message = RETRY_PROMPTS[CreateStep.AWAITING_DATE]
    if isinstance(normalize_date(text, today=ctx.today()), DateRange):
      message = "Necesito un solo día, no un rango. ¿Para qué fecha?"
    return register_failure(session, message)
  session.slots = {**session.slots, "date": date_value}
  return _move_on(session, CreateStep.AWAITING_DATE)


async def handle_start_time(ctx: FlowContext, session: Session,
                            text: str) -> AgentReply:
  start_time = normalize_time(text)
  if start_time is None:
    return register_failure(session, RETRY_PROMPTS[CreateStep.AWAITING_START_TIME])
  slots = {**session.slots, "start_time": start_time}
  # A stale end time is recomputed at the duration step.
  slots.pop("end_time", None)
  session.slots = slots
  return _move_on(session, CreateStep.AWAITING_START_TIME)


def _explicit_end_time(text: str, start_time: str) -> Optional[str]:
  folded = _END_PREFIX_RE.sub("", fold_text(text))
  if ":" not in folded and "am" not in folded and "pm" not in folded:
    return None
  end_time = normalize_time(folded)
  if end_time and end_time > start_time:
    return end_time
  return None


async def handle_duration(ctx: FlowContext, session: Session,
                          text: str) -> AgentReply:
  start_time = session.slots["start_time"]
  hours = parse_duration_hours(text)
  if hours is not None:
    end_time = add_hours(start_time, hours)
  else:
    end_time = (_explicit_end_time(text, start_time)
                or add_hours(start_time, DEFAULT_DURATION_HOURS))
  if end_time <= start_time:
    return register_failure(session, RETRY_PROMPTS[CreateStep.AWAITING_DURATION],
                            ErrorKind.VALIDATION)
  session.slots = {**session.slots, "end_time": end_time}
  return _move_on(session, CreateStep.AWAITING_DURATION)


async def _conflict_message(ctx: FlowContext, session: Session) -> str:
  slots = session.slots
  same_day = await ctx.call_store(ctx.store.query_by_date(slots["date"]))
  clashing = [e for e in same_day
              if intervals_overlap(slots["start_time"], slots["end_time"],
                                   e.start_time, e.end_time)]
  detail = ""
  if clashing:
    other = clashing[0]
    detail = f" con \"{other.name}\" ({other.start_time}-{other.end_time})"
  return (f"⚠️ Ese horario choca{detail} el {slots['date']}. "
          "Dime otra hora de inicio o responde \"no\" para cambiar los datos.")


async def handle_confirmation(ctx: FlowContext, session: Session,
                              text: str) -> AgentReply:
  slots = session.slots
  new_start = normalize_time(text)
  if new_start is not None:
    duration = minutes_of(slots["end_time"]) - minutes_of(slots["start_time"])
    new_end = shift_time(new_start, duration)
    if new_end <= new_start:
      return register_failure(session, "Esa hora no deja espacio para el evento. "
                              "Dime otra hora de inicio.", ErrorKind.VALIDATION)
    session.slots = {**slots, "start_time": new_start, "end_time": new_end}
    session.failed_attempts = 0
    return pending(_summary(session))

  if is_affirmation(text):
    if await ctx.call_store(ctx.store.has_conflict(
        slots["date"], slots["start_time"], slots["end_time"])):
      return conflict(await _conflict_message(ctx, session))
    result = await ctx.call_store(ctx.store.create(
        slots["name"], slots["date"], slots["start_time"], slots["end_time"]))
    if not result.ok:
      if result.error == CONFLICT_ERROR:
        return conflict(await _conflict_message(ctx, session))
      return register_failure(session, "No pude crear el evento con esos datos. "
                              "Dime otra hora de inicio.", ErrorKind.VALIDATION)
    event = result.event
    session.reset_action()
    message = await ctx.composer.compose(
        "create", {"event": event.model_dump(exclude={"created_at"})},
        {"name": event.name, "date": event.date,
         "start_time": event.start_time, "end_time": event.end_time})
    return AgentReply(status="success", message=message, events=[event])

  if is_negation(text):
    session.slots = {**slots, "revising": True}
    advance(session, CreateStep.AWAITING_NAME)
    return pending("De acuerdo, revisemos los datos. " + _prompt_for(session, CreateStep.AWAITING_NAME))

  return register_failure(session, "No entendí. " + _summary(session))


HANDLERS = {
    CreateStep.AWAITING_NAME: handle_name,
    CreateStep.AWAITING_DATE: handle_date,
    CreateStep.AWAITING_START_TIME: handle_start_time,
    CreateStep.AWAITING_DURATION: handle_duration,
    CreateStep.AWAITING_CONFIRMATION: handle_confirmation,
}
