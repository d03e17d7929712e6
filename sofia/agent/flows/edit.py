from __future__ import annotations

import re
from typing import List, Optional

from ...errors import ErrorKind
from ...models import Event, EventUpdate
from ...state import CONFLICT_ERROR, NOT_FOUND_ERROR
from ...utils import fold_text
from ..confirmation import is_affirmation, is_negation
from ..normalizer import (is_date_phrase, normalize_date, normalize_single_date,
                          normalize_time)
from ..resolve_event_target import parse_explicit_id
from ..schemas import AgentReply, ClassifierParameters
from ..state import EditStep, PendingAction, Session
from .base import (FlowContext, advance, describe_event, describe_lookup,
                   find_candidates, minutes_of, not_found, pending,
                   register_failure, shift_time)

ASK_IDENTIFIER_TEXT = ("¿Qué evento quieres editar? Dime su nombre, su fecha "
                       "o su id (por ejemplo \"id 3\").")

FIELD_LABELS = {
    "name": "el nombre",
    "date": "la fecha",
    "start_time": "la hora de inicio",
    "end_time": "la hora de fin",
}

FIELD_MENU = ("¿Qué quieres cambiar?\n1. nombre\n2. fecha\n3. hora de inicio\n"
              "4. hora de fin")

# Checked in order against folded text; end time before the bare "hora".
FIELD_SYNONYMS = (
    ("end_time", ("hora de fin", "hora final", "hora de termino", "fin", "final",
                  "termino", "termina", "terminar", "salida")),
    ("start_time", ("hora de inicio", "inicio", "empieza", "empezar", "comienza", "comienzo", "hora")),
    ("date", ("fecha", "dia")),
    ("name", ("nombre", "titulo", "name")),
)
FIELD_NUMBERS = {"1": "name", "2": "date", "3": "start_time", "4": "end_time"}

NEW_VALUE_PROMPTS = {
    "name": "¿Cuál es el nuevo nombre?",
    "date": "¿Cuál es la nueva fecha? Por ejemplo \"mañana\" o \"19 de marzo\".",
    "start_time": "¿Cuál es la nueva hora de inicio? Por ejemplo \"10:00\" o \"3pm\".",
    "end_time": "¿Cuál es la nueva hora de fin? Por ejemplo \"11:30\" o \"5pm\".",
}


def parse_field_choice(text: str) -> Optional[str]:
  folded = fold_text(text).strip(" .!¡¿?")
  number = re.sub(r"^(?:el|la|opcion|numero)\s+", "", folded)
  if number in FIELD_NUMBERS:
    return FIELD_NUMBERS[number]
  for field, phrases in FIELD_SYNONYMS:
    for phrase in phrases:
      if re.search(rf"\b{re.escape(phrase)}\b", folded):
        return field
  if folded in FIELD_LABELS:
    return folded
  return None


async def _selected_event(ctx: FlowContext, session: Session) -> Optional[Event]:
  if not session.selected_event_id:
    return None
  return await ctx.call_store(ctx.store.get_by_id(session.selected_event_id))


def _field_menu_for(event: Event) -> str:
  return f"Vamos a editar {describe_event(event)}. {FIELD_MENU}"


async def _route(ctx: FlowContext, session: Session, candidates: List[Event],
                 lookup: str) -> AgentReply:
  if not candidates:
    suffix = f" {lookup}" if lookup else ""
    return not_found(session, f"No encontré ningún evento{suffix} para editar.")
  if len(candidates) == 1:
    event = candidates[0]
    session.selected_event_id = event.id
    session.candidates = []
    advance(session, EditStep.AWAITING_FIELD_CHOICE)
    return pending(_field_menu_for(event))
  return pending(ctx.resolver.resolve(session, candidates, PendingAction.EDIT))


async def start(ctx: FlowContext, session: Session,
                params: ClassifierParameters, text: str) -> AgentReply:
  carried_id = session.selected_event_id
  session.start_action(PendingAction.EDIT, EditStep.AWAITING_IDENTIFIER)
  on_date = None
  if params.date:
    date_value = normalize_date(params.date, today=ctx.today())
    on_date = date_value if isinstance(date_value, str) else None
  event_id = params.id or parse_explicit_id(text)
  if event_id or params.name or on_date:
    candidates = await find_candidates(ctx, event_id=event_id, name=params.name,
                                       on_date=on_date)
    return await _route(ctx, session, candidates,
                        describe_lookup(event_id=event_id, name=params.name,
                                        on_date=on_date))
  if carried_id:
    candidates = await find_candidates(ctx, event_id=carried_id)
    if candidates:
      return await _route(ctx, session, candidates, "")
  return pending(ASK_IDENTIFIER_TEXT)


async def handle_identifier(ctx: FlowContext, session: Session,
                            text: str) -> AgentReply:
  event_id = parse_explicit_id(text)
  if event_id:
    candidates = await find_candidates(ctx, event_id=event_id)
    return await _route(ctx, session, candidates, describe_lookup(event_id=event_id))
  on_date = (normalize_single_date(text, today=ctx.today())
             if is_date_phrase(text, today=ctx.today()) else None)
  if on_date:
    candidates = await find_candidates(ctx, on_date=on_date)
    return await _route(ctx, session, candidates, describe_lookup(on_date=on_date))
  name = text.strip(" ¿?¡!.\"'")
  if len(name) < 2:
    return register_failure(session, ASK_IDENTIFIER_TEXT)
  candidates = await find_candidates(ctx, name=name)
  return await _route(ctx, session, candidates, describe_lookup(name=name))


async def handle_selection(ctx: FlowContext, session: Session,
                           text: str) -> AgentReply:
  event = ctx.resolver.select(session, text)
  if event is None:
    return register_failure(session, "No reconocí esa opción. " + ctx.resolver.prompt(session))
  advance(session, EditStep.AWAITING_FIELD_CHOICE)
  return pending(_field_menu_for(event))


async def handle_field_choice(ctx: FlowContext, session: Session,
                              text: str) -> AgentReply:
  field = parse_field_choice(text)
  if field is None:
    return register_failure(session, "Solo puedo cambiar el nombre, la fecha, "
                            "la hora de inicio o la hora de fin. " + FIELD_MENU,
                            ErrorKind.VALIDATION)
  session.slots = {**session.slots, "field": field}
  advance(session, EditStep.AWAITING_NEW_VALUE)
  return pending(NEW_VALUE_PROMPTS[field])


def _parse_new_value(ctx: FlowContext, field: str, text: str) -> Optional[str]:
  if field == "name":
    name = text.strip(" \"'")
    return name or None
  if field == "date":
    return normalize_single_date(text, today=ctx.today())
  return normalize_time(text)


async def handle_new_value(ctx: FlowContext, session: Session,
                           text: str) -> AgentReply:
  field = session.slots["field"]
  event = await _selected_event(ctx, session)
  if event is None:
    return not_found(session, "El evento ya no existe en tu agenda.")
  value = _parse_new_value(ctx, field, text)
  if value is None:
    return register_failure(session, "No entendí el nuevo valor. " + NEW_VALUE_PROMPTS[field])

  if field == "start_time":
    # Moving the start keeps the duration.
    duration = minutes_of(event.end_time) - minutes_of(event.start_time)
    new_end = shift_time(value, duration)
    if new_end <= value:
      return register_failure(
          session, "Con esa hora de inicio el evento no cabe en el día. "
          + NEW_VALUE_PROMPTS[field], ErrorKind.VALIDATION)
    changes = {"start_time": value, "end_time": new_end}
    prompt = (f"¿Confirmas mover \"{event.name}\" de {event.start_time}-{event.end_time} "
              f"a {value}-{new_end}? (sí/no)")
  else:
    if field == "end_time" and value <= event.start_time:
      return register_failure(
          session, f"La hora de fin debe ser posterior a la de inicio ({event.start_time}). "
          + NEW_VALUE_PROMPTS[field], ErrorKind.VALIDATION)
    changes = {field: value}
    prompt = (f"¿Confirmas cambiar {FIELD_LABELS[field]} de \"{event.name}\" "
              f"de {getattr(event, field)} a {value}? (sí/no)")

  session.slots = {**session.slots, "changes": changes}
  advance(session, EditStep.AWAITING_CONFIRMATION)
  return pending(prompt)


def _back_to_new_value(session: Session, message: str,
                       kind: ErrorKind) -> AgentReply:
  advance(session, EditStep.AWAITING_NEW_VALUE)
  session.slots = {k: v for k, v in session.slots.items() if k != "changes"}
  return AgentReply(status="error", message=message, error=kind)


async def handle_confirmation(ctx: FlowContext, session: Session,
                              text: str) -> AgentReply:
  field = session.slots["field"]
  changes = session.slots["changes"]
  if is_affirmation(text):
    event = await _selected_event(ctx, session)
    if event is None:
      return not_found(session, "El evento ya no existe en tu agenda.")
    update = EventUpdate(**changes)
    conflict_text = (f"⚠️ Con ese cambio el evento choca con otro de tu agenda. "
                     f"Indica otro valor para {FIELD_LABELS[field]}.")
    if update.changes_timing():
      updated = event.model_copy(update=changes)
      if await ctx.call_store(ctx.store.has_conflict(
          updated.date, updated.start_time, updated.end_time, event.id)):
        return _back_to_new_value(session, conflict_text, ErrorKind.CONFLICT)
    result = await ctx.call_store(ctx.store.update_by_id(event.id, update))
    if not result.ok:
      if result.error == NOT_FOUND_ERROR:
        return not_found(session, "El evento ya no existe en tu agenda.")
      if result.error == CONFLICT_ERROR:
        return _back_to_new_value(session, conflict_text, ErrorKind.CONFLICT)
      return _back_to_new_value(session, "Ese valor no es válido para el evento. "
                                + NEW_VALUE_PROMPTS[field], ErrorKind.VALIDATION)
    session.reset_action()
    message = await ctx.composer.compose(
        "edit",
        {"event": result.event.model_dump(exclude={"created_at"}),
         "field": field, "previous": getattr(event, field)},
        {"field": field, "value": changes[field]})
    return AgentReply(status="success", message=message, events=[result.event])

  if is_negation(text):
    session.reset_action()
    return AgentReply(status="success", message="De acuerdo, no modifiqué el evento.")

  return register_failure(session, "Responde \"sí\" para guardar el cambio o \"no\" para cancelarlo.")


HANDLERS = {
    EditStep.AWAITING_IDENTIFIER: handle_identifier,
    EditStep.DISAMBIGUATING: handle_selection,
    EditStep.AWAITING_FIELD_CHOICE: handle_field_choice,
    EditStep.AWAITING_NEW_VALUE: handle_new_value,
    EditStep.AWAITING_CONFIRMATION: handle_confirmation,
}
