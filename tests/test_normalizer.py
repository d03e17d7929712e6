from __future__ import annotations

from datetime import date

import pytest

from sofia.agent.normalizer import (DateRange, add_hours, is_date_phrase,
                                    normalize_date, normalize_duration,
                                    normalize_single_date, normalize_time,
                                    parse_duration_hours)

TODAY = date(2025, 3, 9)


@pytest.mark.parametrize("text,expected", [
    ("hoy", "2025-03-09"),
    ("today", "2025-03-09"),
    ("mañana", "2025-03-10"),
    ("Mañana por favor", "2025-03-10"),
    ("pasado mañana", "2025-03-11"),
    ("19/03/2025", "2025-03-19"),
    ("19-03-2025", "2025-03-19"),
    ("19.03.2025", "2025-03-19"),
    ("5/4/25", "2025-04-05"),
    ("19 de marzo", "2025-03-19"),
    ("19 de marzo de 2026", "2026-03-19"),
    ("el 1 de septiembre", "2025-09-01"),
    ("2025-12-31", "2025-12-31"),
    ("mañana a las 10 de la mañana", "2025-03-10"),
])
def test_normalize_date_single(text, expected):
  assert normalize_date(text, today=TODAY) == expected


def test_normalize_date_range_shares_month_and_year():
  value = normalize_date("del 10 al 15 de marzo", today=TODAY)
  assert value == DateRange(start="2025-03-10", end="2025-03-15")
  value = normalize_date("del 1 al 3 de abril de 2026", today=TODAY)
  assert value == DateRange(start="2026-04-01", end="2026-04-03")


@pytest.mark.parametrize("text", [
    "", "algún día", "31/02/2025", "30 de febrerito", "del 15 al 10 de marzo",
    "a las 10 de la mañana", None,
])
def test_normalize_date_unparseable_returns_none(text):
  assert normalize_date(text, today=TODAY) is None


@pytest.mark.parametrize("text", [
    "hoy", "mañana", "19/03/2025", "19 de marzo", "2025-03-19",
])
def test_normalize_date_is_idempotent_on_its_output(text):
  first = normalize_date(text, today=TODAY)
  assert normalize_date(first, today=TODAY) == first


def test_normalize_single_date_rejects_ranges():
  assert normalize_single_date("del 10 al 15 de marzo", today=TODAY) is None
  assert normalize_single_date("mañana", today=TODAY) == "2025-03-10"


@pytest.mark.parametrize("text,expected", [
    ("mañana", True),
    ("el 19 de marzo", True),
    ("¿qué tengo pasado mañana?", True),
    ("del 10 al 15 de marzo", True),
    ("10/03/2025", True),
    ("Cena de mañana", False),
    ("reunión de hoy", False),
    ("dentista", False),
])
def test_is_date_phrase(text, expected):
  assert is_date_phrase(text, today=TODAY) is expected


@pytest.mark.parametrize("text,expected", [
    ("2pm", "14:00"),
    ("12am", "00:00"),
    ("12pm", "12:00"),
    ("9", "09:00"),
    ("14:30", "14:30"),
    ("10:00", "10:00"),
    ("3:15 p.m.", "15:15"),
    ("a las 9", "09:00"),
    ("a las 3 de la tarde", "15:00"),
    ("8 de la noche", "20:00"),
    ("9 de la mañana", "09:00"),
    ("18 hrs", "18:00"),
])
def test_normalize_time(text, expected):
  assert normalize_time(text) == expected


@pytest.mark.parametrize("text", ["25:00", "10:75", "hola", "", "sí", None])
def test_normalize_time_unparseable_returns_none(text):
  assert normalize_time(text) is None


@pytest.mark.parametrize("text,expected", [
    ("2 horas", 2),
    ("3h", 3),
    ("1 hora", 1),
    ("dos horas", 2),
    ("dura una hora", 1),
])
def test_parse_duration_hours(text, expected):
  assert parse_duration_hours(text) == expected


def test_normalize_duration_defaults_to_one_hour():
  assert normalize_duration("no sé") == 1
  assert normalize_duration("") == 1
  assert normalize_duration("4 horas") == 4


def test_add_hours_clamps_to_end_of_day():
  assert add_hours("10:00", 2) == "12:00"
  assert add_hours("09:30", 1) == "10:30"
  assert add_hours("23:00", 2) == "23:59"
