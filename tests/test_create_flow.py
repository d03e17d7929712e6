from __future__ import annotations

import asyncio

from sofia.agent.flows import FlowContext, dispatch
from sofia.agent.resolve_event_target import DisambiguationResolver
from sofia.agent.state import CreateStep, PendingAction, Session
from sofia.errors import ErrorKind

from .conftest import FIXED_TODAY, recognized, send_all

SLOT_ANSWERS = ["Reunión equipo", "mañana", "10:00", "2 horas", "sí"]


async def test_slot_answers_from_a_fresh_create_session(event_store, composer):
  ctx = FlowContext(store=event_store, composer=composer,
                    resolver=DisambiguationResolver(), today=lambda: FIXED_TODAY)
  session = Session()
  session.start_action(PendingAction.CREATE, CreateStep.AWAITING_NAME)

  replies = [await dispatch(ctx, session, text) for text in SLOT_ANSWERS]

  assert [r.status for r in replies] == ["pending"] * 4 + ["success"]
  [event] = event_store.list_all()
  assert (event.name, event.date, event.start_time, event.end_time) == \
      ("Reunión equipo", "2025-03-10", "10:00", "12:00")
  assert replies[-1].events == [event]
  assert session.is_idle and session.slots == {} and session.step == 0


async def test_create_conversation_end_to_end(agent, session_store, event_store):
  replies = await send_all(agent, "u1", ["agenda un evento", *SLOT_ANSWERS])

  assert replies[0].message.startswith("¡Hola! Soy Sofía 😊. ")
  assert "¿Cómo se llama el evento?" in replies[0].message
  assert not replies[1].message.startswith("¡Hola!")
  assert replies[-1].status == "success"
  assert "Reunión equipo" in replies[-1].message
  [event] = event_store.list_all()
  assert (event.date, event.start_time, event.end_time) == ("2025-03-10", "10:00", "12:00")
  session = session_store.get_session("u1")
  assert session.is_idle and session.slots == {}
  assert session.greeted


async def test_conflict_keeps_confirmation_step_and_accepts_new_time(
    agent, session_store, event_store):
  await event_store.create("Llamada", "2025-03-10", "10:30", "11:30")
  replies = await send_all(agent, "u1", ["agenda un evento", *SLOT_ANSWERS])

  conflict = replies[-1]
  assert conflict.status == "error"
  assert conflict.error == ErrorKind.CONFLICT
  assert "choca" in conflict.message and "Llamada" in conflict.message
  session = session_store.get_session("u1")
  assert session.pending_action == PendingAction.CREATE
  assert session.step == CreateStep.AWAITING_CONFIRMATION
  assert session.slots["name"] == "Reunión equipo"
  assert len(event_store.list_all()) == 1

  retry = await agent.handle_message("u1", "13:00")
  assert retry.status == "pending"
  assert "13:00 a 15:00" in retry.message
  done = await agent.handle_message("u1", "sí")
  assert done.status == "success"
  created = [e for e in event_store.list_all() if e.name == "Reunión equipo"]
  assert [(e.start_time, e.end_time) for e in created] == [("13:00", "15:00")]


async def test_negation_revisits_every_slot_keeping_values(agent, session_store, event_store):
  await send_all(agent, "u1", ["agenda un evento", *SLOT_ANSWERS[:-1]])
  back = await agent.handle_message("u1", "no")
  session = session_store.get_session("u1")
  assert back.status == "pending"
  assert session.step == CreateStep.AWAITING_NAME
  assert session.slots["date"] == "2025-03-10"
  assert "(actual: Reunión equipo)" in back.message

  date_prompt = await agent.handle_message("u1", "Reunión nueva")
  assert session_store.get_session("u1").step == CreateStep.AWAITING_DATE
  assert "(actual: 2025-03-10)" in date_prompt.message
  await send_all(agent, "u1", ["pasado mañana", "9am", "1 hora"])
  assert session_store.get_session("u1").step == CreateStep.AWAITING_CONFIRMATION
  done = await agent.handle_message("u1", "sí")

  assert done.status == "success"
  [event] = event_store.list_all()
  assert (event.name, event.date, event.start_time, event.end_time) == \
      ("Reunión nueva", "2025-03-11", "09:00", "10:00")


async def test_three_unparseable_answers_reset_the_action(agent, session_store):
  await send_all(agent, "u1", ["agenda un evento", "Reunión equipo"])
  first, second = await send_all(agent, "u1", ["algún día", "cuando puedas"])
  assert first.status == second.status == "error"
  assert first.error == ErrorKind.PARSE
  session = session_store.get_session("u1")
  assert session.step == CreateStep.AWAITING_DATE and session.failed_attempts == 2

  third = await agent.handle_message("u1", "no sé")
  assert third.status == "error"
  assert "Demasiados intentos" in third.message
  assert third.error == ErrorKind.TOO_MANY_ATTEMPTS
  session = session_store.get_session("u1")
  assert session.is_idle and session.slots == {} and session.failed_attempts == 0


async def test_valid_answer_resets_the_failure_count(agent, session_store):
  await send_all(agent, "u1", ["agenda un evento", "Reunión equipo", "algún día",
                               "mañana", "a ninguna hora", "nunca jamás"])
  session = session_store.get_session("u1")
  assert session.step == CreateStep.AWAITING_START_TIME
  assert session.failed_attempts == 2


async def test_classifier_parameters_prefill_slots(agent, classifier, session_store):
  classifier.script["agenda reunión con Ana mañana a las 3pm"] = recognized(
      "create", name="reunión con Ana", date="mañana", start_time="3pm")
  reply = await agent.handle_message("u1", "agenda reunión con Ana mañana a las 3pm")
  assert "¿Cuánto dura?" in reply.message
  session = session_store.get_session("u1")
  assert session.step == CreateStep.AWAITING_DURATION
  assert session.slots == {"name": "reunión con Ana", "date": "2025-03-10",
                           "start_time": "15:00"}

  summary = await agent.handle_message("u1", "hasta las 17:30")
  assert "15:00 a 17:30" in summary.message


async def test_duration_defaults_to_one_hour(agent, session_store):
  replies = await send_all(agent, "u1", ["agenda un evento", "Dentista", "hoy",
                                         "9", "no sé"])
  assert "09:00 a 10:00" in replies[-1].message


async def test_cancel_keyword_abandons_the_flow(agent, session_store, event_store):
  await send_all(agent, "u1", ["agenda un evento", "Reunión equipo"])
  reply = await agent.handle_message("u1", "cancelar")
  assert reply.status == "info"
  assert session_store.get_session("u1").is_idle
  assert event_store.list_all() == []


async def test_store_failure_apologises_without_advancing(agent, session_store,
                                                         event_store, monkeypatch):
  async def broken(*args, **kwargs):
    raise RuntimeError("disk full")

  monkeypatch.setattr(event_store, "create", broken)
  replies = await send_all(agent, "u1", ["agenda un evento", *SLOT_ANSWERS])
  assert replies[-1].status == "error"
  assert "Error al crear el evento" in replies[-1].message
  assert replies[-1].error == ErrorKind.EXTERNAL
  session = session_store.get_session("u1")
  assert session.step == CreateStep.AWAITING_CONFIRMATION
  assert session.slots["end_time"] == "12:00"


async def test_store_timeout_is_reported_as_failure(agent, session_store,
                                                    event_store, monkeypatch):
  async def stalled(*args, **kwargs):
    await asyncio.sleep(5)
    return False

  monkeypatch.setattr(event_store, "has_conflict", stalled)
  agent.context.store_timeout = 0.05
  replies = await send_all(agent, "u1", ["agenda un evento", *SLOT_ANSWERS])
  assert replies[-1].status == "error"
  assert session_store.get_session("u1").step == CreateStep.AWAITING_CONFIRMATION
