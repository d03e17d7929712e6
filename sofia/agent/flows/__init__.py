"""One slot-filling state machine per intent, wired through ``FLOW_TABLE``."""
from __future__ import annotations

from typing import Awaitable, Callable, Dict, Tuple

from ...errors import ErrorKind, EventStoreError, apology_for
from ..schemas import AgentReply, ClassifierParameters
from ..state import PendingAction, Session
from . import create, delete, edit, query
from .base import FlowContext

Handler = Callable[[FlowContext, Session, str], Awaitable[AgentReply]]
Starter = Callable[[FlowContext, Session, ClassifierParameters, str],
                   Awaitable[AgentReply]]

FLOW_TABLE: Dict[Tuple[PendingAction, int], Handler] = {}
for _action, _module in ((PendingAction.QUERY, query),
                         (PendingAction.CREATE, create),
                         (PendingAction.EDIT, edit),
                         (PendingAction.DELETE, delete)):
  for _step, _handler in _module.HANDLERS.items():
    FLOW_TABLE[(_action, int(_step))] = _handler

STARTERS: Dict[PendingAction, Starter] = {
    PendingAction.QUERY: query.start,
    PendingAction.CREATE: create.start,
    PendingAction.EDIT: edit.start,
    PendingAction.DELETE: delete.start,
}


def _restore(session: Session, snapshot: Session) -> None:
  for field in Session.model_fields:
    setattr(session, field, getattr(snapshot, field))


async def _guarded(session: Session, action: PendingAction,
                   call: Awaitable[AgentReply]) -> AgentReply:
  snapshot = session.model_copy(deep=True)
  try:
    return await call
  except EventStoreError as exc:
    print(f"[FLOW ERROR] action={action.value} step={snapshot.step} error={exc.detail}", flush=True)
    _restore(session, snapshot)
    return AgentReply(status="error", message=apology_for(action.value),
                      error=ErrorKind.EXTERNAL)


async def start_flow(ctx: FlowContext, session: Session, action: PendingAction,
                     params: ClassifierParameters, text: str) -> AgentReply:
  """Begin ``action`` with whatever the classifier already extracted."""
  action = PendingAction(action)
  return await _guarded(session, action,
                        STARTERS[action](ctx, session, params, text))


async def dispatch(ctx: FlowContext, session: Session, text: str) -> AgentReply:
  """Feed ``text`` to the handler owning the session's (action, step).

  A store failure rolls the session back to its state before the call.
  """
  action = session.pending_action
  handler = FLOW_TABLE.get((action, int(session.step)))
  if handler is None:
    print(f"[FLOW ERROR] no handler for action={action.value} step={session.step}", flush=True)
    session.reset_action()
    return AgentReply(status="error", message=apology_for(None),
                      error=ErrorKind.EXTERNAL)
  return await _guarded(session, action, handler(ctx, session, text))


__all__ = ["FLOW_TABLE", "STARTERS", "FlowContext", "dispatch", "start_flow"]
