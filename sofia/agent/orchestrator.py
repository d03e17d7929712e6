from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from ..config import (CLASSIFIER_HISTORY_WINDOW, GREETING_TEXT,
                      SMALL_TALK_HISTORY_WINDOW)
from ..errors import ErrorKind, apology_for
from ..state import EventStore, JsonEventStore
from ..utils import _log_debug, normalize_text
from .confirmation import is_cancel_request, is_thanks
from .flows import FlowContext, dispatch, start_flow
from .intent_router import IntentClassifier
from .normalizer import today_in_timezone
from .resolve_event_target import DisambiguationResolver
from .response_agent import ResponseComposer
from .schemas import AgentReply, RecognizedIntent
from .state import InMemorySessionStore, PendingAction, Session, SessionStore

logger = logging.getLogger(__name__)

THANKS_TEXT = "¡De nada! Si necesitas algo más, aquí estaré."
CANCELLED_TEXT = "De acuerdo, cancelé la operación en curso. ¿Te ayudo con algo más?"
EMPTY_MESSAGE_TEXT = "¿En qué puedo ayudarte con tu agenda?"


class Agent:
  """Runs one conversational turn per call.

  The session is read once, mutated in memory by the owning flow, and written
  back once at the end of the turn. A turn that raises writes nothing.
  """

  def __init__(self,
               session_store: Optional[SessionStore] = None,
               event_store: Optional[EventStore] = None,
               classifier: Optional[IntentClassifier] = None,
               composer: Optional[ResponseComposer] = None,
               resolver: Optional[DisambiguationResolver] = None,
               today: Optional[Callable[[], date]] = None) -> None:
    self.session_store = session_store if session_store is not None else InMemorySessionStore()
    self.event_store = event_store if event_store is not None else JsonEventStore()
    self.classifier = classifier or IntentClassifier()
    self.composer = composer or ResponseComposer()
    self.resolver = resolver or DisambiguationResolver()
    self.today = today or today_in_timezone
    self.context = FlowContext(store=self.event_store,
                               composer=self.composer,
                               resolver=self.resolver,
                               today=self.today)

  async def handle_message(self, user_id: str, text: str) -> AgentReply:
    session = self.session_store.get_session(user_id)
    message = normalize_text(text)
    try:
      reply = await self._run_turn(session, message)
    except Exception:
      logger.exception("Turn failed for user_id=%s", user_id)
      return AgentReply(status="error", message=apology_for(None),
                        error=ErrorKind.EXTERNAL)

    if not session.greeted:
      session.greeted = True
      reply = reply.model_copy(update={"message": GREETING_TEXT + reply.message})
    session.append_history("user", message)
    session.append_history("assistant", reply.message)
    self.session_store.update_session(user_id, session.model_dump())
    _log_debug(f"[ORCHESTRATOR] user={user_id} status={reply.status} "
               f"action={session.pending_action.value} step={session.step}")
    return reply

  async def _run_turn(self, session: Session, message: str) -> AgentReply:
    if not message:
      return AgentReply(status="info", message=EMPTY_MESSAGE_TEXT)

    if not session.is_idle:
      if is_cancel_request(message):
        _log_debug(f"[ORCHESTRATOR] cancel action={session.pending_action.value}")
        session.reset_action()
        return AgentReply(status="info", message=CANCELLED_TEXT)
      return await dispatch(self.context, session, message)

    if is_thanks(message):
      return AgentReply(status="info", message=THANKS_TEXT)

    intent = await self.classifier.classify(
        message, session.recent_history(CLASSIFIER_HISTORY_WINDOW),
        today=self.today())
    if not isinstance(intent, RecognizedIntent):
      _log_debug(f"[ORCHESTRATOR] unrecognized intent reason={intent.reason}")
      reply_text = await self.composer.small_talk(
          message, session.recent_history(SMALL_TALK_HISTORY_WINDOW))
      return AgentReply(status="info", message=reply_text)

    _log_debug(f"[ORCHESTRATOR] intent={intent.action} source={intent.source} "
               f"params={intent.parameters.model_dump(exclude_none=True)}")
    return await start_flow(self.context, session, PendingAction(intent.action),
                            intent.parameters, message)
