from __future__ import annotations

from typing import List, Optional

from ...models import Event
from ...state import NOT_FOUND_ERROR
from ..confirmation import is_affirmation, is_negation
from ..resolve_event_target import parse_explicit_id
from ..schemas import AgentReply, ClassifierParameters
from ..state import DeleteStep, PendingAction, Session
from .base import (FlowContext, advance, describe_event, describe_lookup,
                   find_candidates, not_found, pending, register_failure)

ASK_IDENTIFIER_TEXT = ("¿Qué evento quieres eliminar? Dime su nombre o su id "
                       "(por ejemplo \"id 3\").")


def _confirmation_prompt(event: Event) -> str:
  return f"¿Seguro que quieres eliminar {describe_event(event)}? (sí/no)"


async def _route(ctx: FlowContext, session: Session, candidates: List[Event],
                 lookup: str) -> AgentReply:
  if not candidates:
    suffix = f" {lookup}" if lookup else ""
    return not_found(session, f"No encontré ningún evento{suffix} para eliminar.")
  if len(candidates) == 1:
    event = candidates[0]
    session.selected_event_id = event.id
    session.candidates = []
    advance(session, DeleteStep.AWAITING_CONFIRMATION)
    return pending(_confirmation_prompt(event))
  return pending(ctx.resolver.resolve(session, candidates, PendingAction.DELETE))


async def start(ctx: FlowContext, session: Session,
                params: ClassifierParameters, text: str) -> AgentReply:
  carried_id = session.selected_event_id
  session.start_action(PendingAction.DELETE, DeleteStep.AWAITING_IDENTIFIER)
  event_id = params.id or parse_explicit_id(text)
  if event_id or params.name:
    candidates = await find_candidates(ctx, event_id=event_id, name=params.name)
    return await _route(ctx, session, candidates,
                        describe_lookup(event_id=event_id, name=params.name))
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
  advance(session, DeleteStep.AWAITING_CONFIRMATION)
  return pending(_confirmation_prompt(event))


async def handle_confirmation(ctx: FlowContext, session: Session,
                              text: str) -> AgentReply:
  if is_affirmation(text):
    event_id: Optional[str] = session.selected_event_id
    if not event_id:
      return not_found(session, "No hay ningún evento seleccionado para eliminar.")
    result = await ctx.call_store(ctx.store.delete_by_id(event_id))
    if not result.ok:
      if result.error == NOT_FOUND_ERROR:
        return not_found(session, "El evento ya no existe en tu agenda.")
      return not_found(session, "No pude eliminar el evento.")
    session.reset_action()
    deleted = result.event
    payload = {"event": deleted.model_dump(exclude={"created_at"})} if deleted else {}
    message = await ctx.composer.compose("delete", payload, {"id": event_id})
    return AgentReply(status="success", message=message,
                      events=[deleted] if deleted else None)

  if is_negation(text):
    session.reset_action()
    return AgentReply(status="success", message="De acuerdo, no eliminé el evento.")

  return register_failure(session, "Responde \"sí\" para eliminar el evento o \"no\" para conservarlo.")


HANDLERS = {
    DeleteStep.AWAITING_IDENTIFIER: handle_identifier,
    DeleteStep.DISAMBIGUATING: handle_selection,
    DeleteStep.AWAITING_CONFIRMATION: handle_confirmation,
}
