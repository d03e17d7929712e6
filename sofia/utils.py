from __future__ import annotations

import re
import unicodedata
from datetime import datetime

from .config import LLM_DEBUG, AGENDA_TZ


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def _now_iso_minute() -> str:
    return datetime.now(AGENDA_TZ).strftime("%Y-%m-%dT%H:%M")


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = re.sub(r"\s+", " ", t)
    return t


def remove_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def fold_text(text: str) -> str:
    """Lowercase, accent-free and whitespace-collapsed form used for matching."""
    return remove_accents(normalize_text(text)).lower()
