from __future__ import annotations

import pytest

from sofia.agent.state import PendingAction, QueryStep

from .conftest import recognized, seed, send_all


@pytest.fixture
async def agenda(event_store):
  await seed(event_store,
             ("Reunión equipo", "2025-03-10", "09:00", "10:00"),
             ("Dentista", "2025-03-10", "15:00", "16:00"),
             ("Reunión cliente", "2025-03-12", "10:00", "11:00"),
             ("Viaje", "2025-03-20", "08:00", "20:00"))
  return event_store


async def test_asks_for_identifier_then_queries_date(agent, agenda, session_store):
  prompt = await agent.handle_message("u1", "qué tengo")
  assert prompt.status == "pending"
  session = session_store.get_session("u1")
  assert session.pending_action == PendingAction.QUERY
  assert session.step == QueryStep.AWAITING_IDENTIFIER

  reply = await agent.handle_message("u1", "10 de marzo")
  assert reply.status == "success"
  assert [e.name for e in reply.events] == ["Reunión equipo", "Dentista"]
  assert "Encontré 2 eventos para el 2025-03-10" in reply.message
  assert session_store.get_session("u1").is_idle


async def test_range_query(agent, agenda, classifier):
  classifier.script["agenda de la semana"] = recognized("query", date="del 10 al 15 de marzo")
  reply = await agent.handle_message("u1", "agenda de la semana")
  assert [e.name for e in reply.events] == ["Reunión equipo", "Dentista", "Reunión cliente"]


async def test_date_and_end_date_parameters_form_a_range(agent, agenda, classifier):
  classifier.script["del 12 al 20"] = recognized("query", date="12/03/2025", end_date="20/03/2025")
  reply = await agent.handle_message("u1", "del 12 al 20")
  assert [e.name for e in reply.events] == ["Reunión cliente", "Viaje"]


async def test_name_query_is_accent_insensitive(agent, agenda, classifier):
  classifier.script["¿cuándo es la reunion?"] = recognized("query", name="reunion")
  reply = await agent.handle_message("u1", "¿cuándo es la reunion?")
  assert [e.name for e in reply.events] == ["Reunión equipo", "Reunión cliente"]


async def test_time_filters(agent, agenda, classifier):
  classifier.script["qué tengo el 10 a las 9:30"] = recognized(
      "query", date="10 de marzo", start_time="9:30")
  classifier.script["qué termina a las 4pm"] = recognized(
      "query", date="10 de marzo", end_time="4pm")
  during = await agent.handle_message("u1", "qué tengo el 10 a las 9:30")
  assert [e.name for e in during.events] == ["Reunión equipo"]
  ending = await agent.handle_message("u1", "qué termina a las 4pm")
  assert [e.name for e in ending.events] == ["Dentista"]


async def test_keyword_routed_query_reads_date_from_text(agent, agenda):
  reply = await agent.handle_message("u1", "muéstrame mi agenda de mañana")
  assert reply.status == "success"
  assert [e.name for e in reply.events] == ["Reunión equipo", "Dentista"]


async def test_no_results(agent, agenda):
  replies = await send_all(agent, "u1", ["qué tengo", "Yoga"])
  assert replies[-1].status == "success"
  assert replies[-1].events == []
  assert "No encontré eventos" in replies[-1].message


async def test_blank_answers_count_as_failures(agent, agenda, session_store):
  replies = await send_all(agent, "u1", ["qué tengo", "?", "¿?", "."])
  assert [r.status for r in replies[1:]] == ["error", "error", "error"]
  assert "Demasiados intentos" in replies[-1].message
  assert session_store.get_session("u1").is_idle


async def test_answer_naming_an_event_with_a_date_word_searches_by_name(agent, agenda):
  await agenda.create("Cena de mañana", "2025-03-14", "20:00", "22:00")
  by_name = (await send_all(agent, "u1", ["qué tengo", "cena de mañana"]))[-1]
  assert [e.name for e in by_name.events] == ["Cena de mañana"]

  by_date = (await send_all(agent, "u1", ["qué tengo", "mañana"]))[-1]
  assert [e.name for e in by_date.events] == ["Reunión equipo", "Dentista"]
