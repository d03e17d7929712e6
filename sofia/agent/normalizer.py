from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from ..config import AGENDA_TIMEZONE_NAME, DEFAULT_DURATION_HOURS
from ..utils import fold_text

MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

NUMBER_WORDS = {
    "una": 1, "un": 1, "uno": 1, "dos": 2, "tres": 3, "cuatro": 4,
    "cinco": 5, "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10,
    "once": 11, "doce": 12,
}

_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})\b")
_YEAR_SUFFIX = r"(?:\s*,?\s*(?:de|del)?\s*(\d{4}))?"
_RANGE_RE = re.compile(
    r"\bdel?\s+(\d{1,2})\s+al?\s+(\d{1,2})\s+de\s+([a-z]+)" + _YEAR_SUFFIX)
_DAY_MONTH_RE = re.compile(r"\b(\d{1,2})\s+de\s+([a-z]+)" + _YEAR_SUFFIX)
_DAY_AFTER_TOMORROW_RE = re.compile(r"\bpasado\s+manana\b")
_TOMORROW_RE = re.compile(r"\b(?:manana|tomorrow)\b")
_TODAY_RE = re.compile(r"\b(?:hoy|today)\b")
_MORNING_RE = re.compile(r"\b(?:de|en|por)\s+la\s+manana\b")

_DATE_PHRASE_PATTERNS = (_ISO_DATE_RE, _RANGE_RE, _NUMERIC_DATE_RE, _DAY_MONTH_RE,
                         _DAY_AFTER_TOMORROW_RE, _TOMORROW_RE, _TODAY_RE)
_DATE_FILLER_WORDS = frozenset((
    "el", "la", "los", "las", "de", "del", "al", "a", "en", "para", "por",
    "que", "hay", "tengo", "dia", "fecha", "evento", "eventos", "mi", "mis",
    "agenda", "es", "y", "favor",
))

_TIME_PREFIX_RE = re.compile(r"^(?:a\s+las?|a\s+la|las?|at)\s+")
_TIME_RE = re.compile(
    r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.\s?m\.?|p\.\s?m\.?)?"
    r"(?:\s*hrs?)?"
    r"(?:\s+de\s+la\s+(manana|tarde|noche))?$")
_DURATION_RE = re.compile(r"\b(\d+|[a-z]+)\s*(?:horas?|hrs?|h)\b")


class DateRange(BaseModel):
  """Inclusive date span, both ends as ``YYYY-MM-DD``."""
  model_config = ConfigDict(frozen=True)

  start: str
  end: str


DateValue = Union[str, DateRange]


def today_in_timezone(timezone_name: Optional[str] = None) -> date:
  return datetime.now(ZoneInfo(timezone_name or AGENDA_TIMEZONE_NAME)).date()


def _build_date(year: int, month: int, day: int) -> Optional[str]:
  try:
    return date(year, month, day).isoformat()
  except ValueError:
    return None


def _expand_year(raw: str) -> int:
  # Two-digit years are always read as 20YY.
  value = int(raw)
  return 2000 + value if len(raw) == 2 else value


def normalize_date(text: Any, today: Optional[date] = None) -> Optional[DateValue]:
  """Turn a natural-language date into ``YYYY-MM-DD`` or a ``DateRange``.

  Recognized, in order: ISO dates, "del 10 al 15 de marzo [de 2025]",
  D/M/Y with ``/``, ``-`` or ``.`` separators, "19 de marzo [2025]", and the
  relative terms hoy/mañana/pasado mañana. Anything else yields ``None``.
  """
  if not isinstance(text, str):
    return None
  folded = fold_text(text)
  if not folded:
    return None
  base = today or today_in_timezone()

  match = _ISO_DATE_RE.search(folded)
  if match:
    return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

  match = _RANGE_RE.search(folded)
  if match:
    month = MONTHS.get(match.group(3))
    if month is None:
      return None
    year = int(match.group(4)) if match.group(4) else base.year
    start = _build_date(year, month, int(match.group(1)))
    end = _build_date(year, month, int(match.group(2)))
    if start is None or end is None or end < start:
      return None
    return DateRange(start=start, end=end)

  match = _NUMERIC_DATE_RE.search(folded)
  if match:
    return _build_date(_expand_year(match.group(3)), int(match.group(2)),
                       int(match.group(1)))

  # "10 de la tarde" also fits the shape; only real month names count.
  for match in _DAY_MONTH_RE.finditer(folded):
    month = MONTHS.get(match.group(2))
    if month is None:
      continue
    year = int(match.group(3)) if match.group(3) else base.year
    return _build_date(year, month, int(match.group(1)))

  relative = _MORNING_RE.sub(" ", folded)
  if _DAY_AFTER_TOMORROW_RE.search(relative):
    return (base + timedelta(days=2)).isoformat()
  if _TOMORROW_RE.search(relative):
    return (base + timedelta(days=1)).isoformat()
  if _TODAY_RE.search(relative):
    return base.isoformat()
  return None


def is_date_phrase(text: Any, today: Optional[date] = None) -> bool:
  """True when ``text`` is a date and nothing else.

  "el 19 de marzo" or "qué tengo mañana" qualify; "Cena de mañana" does not,
  since "cena" is left over once the date words are removed.
  """
  if normalize_date(text, today=today) is None:
    return False
  rest = fold_text(text)
  for pattern in _DATE_PHRASE_PATTERNS:
    rest = pattern.sub(" ", rest)
  return all(word in _DATE_FILLER_WORDS for word in re.findall(r"[a-z0-9]+", rest))


def normalize_single_date(text: Any, today: Optional[date] = None) -> Optional[str]:
  value = normalize_date(text, today=today)
  if isinstance(value, str):
    return value
  return None


def normalize_time(text: Any) -> Optional[str]:
  """Convert "14:30", "2pm", "12:15 am", "a las 9" or "9" into ``HH:MM``."""
  if not isinstance(text, str):
    return None
  folded = fold_text(text).rstrip(".")
  folded = _TIME_PREFIX_RE.sub("", folded).strip()
  match = _TIME_RE.match(folded)
  if not match:
    return None

  hour = int(match.group(1))
  minutes = int(match.group(2)) if match.group(2) else 0
  meridiem = (match.group(3) or "").replace(".", "").replace(" ", "")
  part_of_day = match.group(4)
  if not meridiem and part_of_day:
    meridiem = "am" if part_of_day == "manana" else "pm"

  if meridiem == "pm" and hour < 12:
    hour += 12
  elif meridiem == "am" and hour == 12:
    hour = 0
  if hour > 23 or minutes > 59:
    return None
  return f"{hour:02d}:{minutes:02d}"


def parse_duration_hours(text: Any) -> Optional[int]:
  if not isinstance(text, str):
    return None
  for match in _DURATION_RE.finditer(fold_text(text)):
    raw = match.group(1)
    hours = int(raw) if raw.isdigit() else NUMBER_WORDS.get(raw)
    if hours:
      return hours
  return None


def normalize_duration(text: Any) -> int:
  """Whole hours from "2 horas" / "3h"; defaults to one hour."""
  hours = parse_duration_hours(text)
  return hours if hours is not None else DEFAULT_DURATION_HOURS


def add_hours(start_time: str, hours: int) -> str:
  """``start_time`` + ``hours``, clamped to 23:59 on the same day."""
  hour, minute = (int(part) for part in start_time.split(":"))
  total = hour * 60 + minute + hours * 60
  if total > 23 * 60 + 59:
    return "23:59"
  return f"{total // 60:02d}:{total % 60:02d}"
