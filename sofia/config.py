from __future__ import annotations

import os
import pathlib
import re
from zoneinfo import ZoneInfo

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"

AGENDA_TIMEZONE_NAME = os.getenv("AGENDA_TIMEZONE", "America/Mexico_City").strip() or "America/Mexico_City"
AGENDA_TZ = ZoneInfo(AGENDA_TIMEZONE_NAME)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM_RE = re.compile(r"^\d{2}:\d{2}$")

# -------------------------
# Event store
# -------------------------
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
EVENTS_DATA_FILE = pathlib.Path(
    os.getenv("EVENTS_DATA_FILE", str(BASE_DIR / "events_data.json")))
SEED_DEMO_EVENTS = os.getenv("SEED_DEMO_EVENTS", "0") == "1"
DEMO_EVENTS = [
    {"name": "Llamada con cliente", "date": "2025-03-10",
     "start_time": "13:30", "end_time": "14:30"},
    {"name": "Revisión de código", "date": "2025-03-10",
     "start_time": "15:00", "end_time": "16:00"},
]

# -------------------------
# External call limits
# -------------------------
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "20"))
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

# -------------------------
# Dialogue limits/defaults
# -------------------------
HISTORY_LIMIT = 10
CLASSIFIER_HISTORY_WINDOW = 3
SMALL_TALK_HISTORY_WINDOW = 5
DISAMBIGUATION_LIMIT = 5
MAX_FAILED_ATTEMPTS = 3
DEFAULT_DURATION_HOURS = 1
GREETING_TEXT = "¡Hola! Soy Sofía 😊. "
