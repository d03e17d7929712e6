from __future__ import annotations

from sofia.agent.orchestrator import Agent, THANKS_TEXT
from sofia.agent.response_agent import GENERAL_FALLBACK_TEXT
from sofia.agent.state import CreateStep, InMemorySessionStore
from sofia.config import GREETING_TEXT
from sofia.errors import ErrorKind
from sofia.state import JsonEventStore

from .conftest import FIXED_TODAY, send_all


async def test_greeting_is_prefixed_once(agent):
  first, second = await send_all(agent, "u1", ["hola", "¿qué tal?"])
  assert first.message.startswith(GREETING_TEXT)
  assert not second.message.startswith(GREETING_TEXT)
  other = await agent.handle_message("u2", "hola")
  assert other.message.startswith(GREETING_TEXT)


async def test_thanks_short_circuits_the_classifier(agent, classifier):
  reply = await agent.handle_message("u1", "¡Muchas gracias!")
  assert reply.status == "info"
  assert reply.message.endswith(THANKS_TEXT)
  assert classifier.calls == []


async def test_unrecognized_message_gets_small_talk_fallback(agent):
  reply = await agent.handle_message("u1", "¿cómo estás?")
  assert reply.status == "info"
  assert reply.message == GREETING_TEXT + GENERAL_FALLBACK_TEXT


async def test_pending_action_resumes_without_classifying(agent, classifier, session_store):
  await agent.handle_message("u1", "agenda un evento")
  await agent.handle_message("u1", "borrar cosas viejas")
  # The second message is a name answer, not a delete request.
  assert classifier.calls == ["agenda un evento"]
  session = session_store.get_session("u1")
  assert session.slots["name"] == "borrar cosas viejas"
  assert session.step == CreateStep.AWAITING_DATE


async def test_history_is_recorded_and_capped(agent, classifier, session_store):
  await send_all(agent, "u1", ["hola", "¿qué tal?", "bien", "ok", "adiós", "hasta luego"])
  session = session_store.get_session("u1")
  assert len(session.history) == 10
  assert session.history[-2].role == "user"
  assert session.history[-2].content == "hasta luego"
  assert session.history[-1].role == "assistant"
  # The classifier only sees the last three prior entries.
  assert len(classifier.histories[-1]) == 3
  assert classifier.histories[-1][-1]["role"] == "assistant"


async def test_unexpected_error_returns_error_and_keeps_session(session_store, event_store,
                                                               composer):
  class Exploding:
    async def classify(self, text, history=None, today=None):
      raise ValueError("boom")

  agent = Agent(session_store=session_store, event_store=event_store,
                classifier=Exploding(), composer=composer,
                today=lambda: FIXED_TODAY)
  reply = await agent.handle_message("u1", "agenda algo")
  assert reply.status == "error"
  assert reply.error == ErrorKind.EXTERNAL
  session = session_store.get_session("u1")
  assert session.greeted is False
  assert session.history == []


async def test_blank_message(agent):
  reply = await agent.handle_message("u1", "   ")
  assert reply.status == "info"


def test_default_stores():
  agent = Agent(today=lambda: FIXED_TODAY)
  assert isinstance(agent.session_store, InMemorySessionStore)
  assert isinstance(agent.event_store, JsonEventStore)
  assert agent.context.store is agent.event_store
