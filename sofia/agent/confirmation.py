from __future__ import annotations

import re
from typing import Iterable

from ..utils import fold_text

# Matched against accent-free, lowercased text.
AFFIRMATIONS = (
    "si", "claro", "ok", "okay", "vale", "por supuesto", "afirmativo",
    "correcto", "exacto", "seguro", "confirmo", "confirmar", "de acuerdo",
    "adelante", "dale", "yes",
)
NEGATIONS = (
    "no", "nope", "negativo", "nunca", "jamas", "cancelar", "cancelado",
    "cancela", "detener", "mejor no",
)
CANCEL_REQUESTS = ("cancelar", "cancela", "olvidalo", "olvidelo", "salir")
THANKS = ("gracias", "muchas gracias", "mil gracias")


def _contains_phrase(text: str, phrases: Iterable[str]) -> bool:
  for phrase in phrases:
    if re.search(rf"\b{re.escape(phrase)}\b", text):
      return True
  return False


def is_negation(text: str) -> bool:
  return _contains_phrase(fold_text(text), NEGATIONS)


def is_affirmation(text: str) -> bool:
  """True for "sí", "claro", "ok"...; a reply that also negates is not one."""
  folded = fold_text(text)
  if _contains_phrase(folded, NEGATIONS):
    return False
  return _contains_phrase(folded, AFFIRMATIONS)


def is_cancel_request(text: str) -> bool:
  folded = fold_text(text).strip(" .!¡")
  return folded in CANCEL_REQUESTS


def is_thanks(text: str) -> bool:
  return _contains_phrase(fold_text(text), THANKS)
