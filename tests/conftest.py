from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

import pytest

from sofia.agent.intent_router import IntentClassifier
from sofia.agent.orchestrator import Agent
from sofia.agent.response_agent import ResponseComposer
from sofia.agent.schemas import (ClassifierParameters, IntentResult,
                                 RecognizedIntent)
from sofia.agent.state import InMemorySessionStore
from sofia.state import JsonEventStore

FIXED_TODAY = date(2025, 3, 9)


def recognized(action: str, **params) -> RecognizedIntent:
  return RecognizedIntent(action=action,
                          parameters=ClassifierParameters(**params))


class ScriptedClassifier(IntentClassifier):
  """Answers from a message -> intent script; unscripted text falls back to
  keyword matching."""

  def __init__(self, script: Optional[Dict[str, IntentResult]] = None) -> None:
    super().__init__(model=None)
    self.script = dict(script or {})
    self.calls: List[str] = []
    self.histories: List[list] = []

  async def classify(self, text, history=None, today=None):
    self.calls.append(text)
    self.histories.append(list(history or []))
    if text in self.script:
      return self.script[text]
    return await super().classify(text, history, today=today)


class RecordingStore(JsonEventStore):
  """Memory-only store that records destructive calls."""

  def __init__(self) -> None:
    super().__init__(data_file=None)
    self.deleted_ids: List[str] = []

  async def delete_by_id(self, event_id):
    self.deleted_ids.append(event_id)
    return await super().delete_by_id(event_id)


@pytest.fixture
def today() -> date:
  return FIXED_TODAY


@pytest.fixture
def event_store() -> RecordingStore:
  return RecordingStore()


@pytest.fixture
def session_store() -> InMemorySessionStore:
  return InMemorySessionStore()


@pytest.fixture
def composer() -> ResponseComposer:
  return ResponseComposer(model=None)


@pytest.fixture
def classifier() -> ScriptedClassifier:
  return ScriptedClassifier({
      "agenda un evento": recognized("create"),
      "quiero editar la reunión": recognized("edit", name="reunión"),
      "quiero editar un evento": recognized("edit"),
      "borra la revisión": recognized("delete", name="revisión"),
      "borra un evento": recognized("delete"),
      "qué tengo": recognized("query"),
  })


@pytest.fixture
def agent(session_store, event_store, classifier, composer) -> Agent:
  return Agent(session_store=session_store,
               event_store=event_store,
               classifier=classifier,
               composer=composer,
               today=lambda: FIXED_TODAY)


async def send_all(agent: Agent, user_id: str, messages: List[str]):
  replies = []
  for message in messages:
    replies.append(await agent.handle_message(user_id, message))
  return replies


async def seed(store, *rows):
  for name, day, start, end in rows:
    result = await store.create(name, day, start, end)
    assert result.ok, result.error
