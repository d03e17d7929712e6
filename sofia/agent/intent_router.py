from __future__ import annotations

import os
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from ..config import CLASSIFIER_HISTORY_WINDOW
from ..utils import _log_debug, fold_text
from .llm_provider import get_agent_llm_settings, run_structured_completion
from .normalizer import today_in_timezone
from .schemas import (ClassifierOutput, ClassifierParameters, IntentResult,
                      RecognizedIntent, UnrecognizedIntent)

INTENT_ROUTER_MODEL = os.getenv("AGENT_INTENT_ROUTER_MODEL", "gemini-2.0-flash").strip() or "gemini-2.0-flash"
_SETTINGS = get_agent_llm_settings("INTENT_ROUTER")

INTENT_ROUTER_SYSTEM_PROMPT = """Eres el clasificador de intenciones de Sofía, una asistente de agenda.
Devuelve solo JSON. Sin markdown.
Fecha actual: {today}.
Clasifica el mensaje del usuario en una acción:
- query: ver, mostrar o buscar eventos
- create: crear, añadir o agendar un evento nuevo
- edit: modificar o mover un evento existente
- delete: eliminar o cancelar un evento existente
- none: el mensaje no es sobre la agenda
"""

INTENT_ROUTER_DEVELOPER_PROMPT = """Input: message, today, history (últimos turnos).

Output: {"action": "query|create|edit|delete|none", "parameters": {"name", "date", "end_date", "start_time", "end_time", "id"}, "explanation"}

Reglas:
1) Copia las fechas y horas tal como las dijo el usuario ("mañana", "19 de marzo", "3pm"); no las conviertas.
2) Usa null para cualquier parámetro ausente. No inventes valores.
3) name es el título del evento, sin verbos ni fechas.
4) id solo cuando el usuario menciona un identificador explícito.
5) Un rango "del 10 al 15 de marzo" va completo en date.

Ejemplos:

Mensaje: "agenda una reunión con Ana mañana a las 3pm"
{"action":"create","parameters":{"name":"reunión con Ana","date":"mañana","start_time":"3pm"},"explanation":"Crear evento nuevo."}

Mensaje: "¿qué tengo el 19 de marzo?"
{"action":"query","parameters":{"date":"19 de marzo"},"explanation":"Consulta por fecha."}

Mensaje: "borra el dentista"
{"action":"delete","parameters":{"name":"dentista"},"explanation":"Eliminar por nombre."}

Mensaje: "¿cómo estás?"
{"action":"none","parameters":{},"explanation":"Conversación general."}
"""

# Spanish labels the model sometimes answers with.
ACTION_ALIASES: Dict[str, str] = {
    "query": "query",
    "consultar": "query",
    "consulta": "query",
    "create": "create",
    "agregar": "create",
    "crear": "create",
    "agendar": "create",
    "edit": "edit",
    "editar": "edit",
    "modificar": "edit",
    "delete": "delete",
    "borrar": "delete",
    "eliminar": "delete",
    "none": "none",
    "ninguna": "none",
    "ninguno": "none",
}

# Word-prefix match on folded text; the stem that appears first wins, ties go
# to the earlier action in this table.
KEYWORD_INTENTS = (
    ("query", ("consult", "ver ", "revis", "muestra", "mostrar", "lista",
               "que tengo", "que hay", "cuales son", "busca")),
    ("edit", ("edit", "modific", "cambi", "actualiz", "mueve", "mover",
              "ajust", "corrig", "reprogram")),
    ("delete", ("borr", "elimin", "quit", "suprim", "cancel", "descart",
                "remov")),
    ("create", ("agreg", "anad", "crea", "nuevo", "nueva", "program",
                "agend", "planea", "fija", "registr")),
)


def detect_intent_by_keywords(text: str) -> Optional[str]:
  """Coarse intent from Spanish synonym lists, or ``None``.

  The verb usually leads the sentence, so the earliest matching stem decides:
  "elimina la revisión" is a delete even though "revis" is a query stem.
  """
  folded = fold_text(text) + " "
  best: Optional[Tuple[int, int, str]] = None
  for rank, (action, stems) in enumerate(KEYWORD_INTENTS):
    for stem in stems:
      match = re.search(rf"\b{re.escape(stem)}", folded)
      if match and (best is None or (match.start(), rank) < best[:2]):
        best = (match.start(), rank, action)
  return best[2] if best else None


def _keyword_fallback(text: str, reason: str, raw_output: str = "") -> IntentResult:
  action = detect_intent_by_keywords(text)
  if action is None:
    return UnrecognizedIntent(reason=reason, raw_output=raw_output)
  _log_debug(f"[INTENT_ROUTER] keyword fallback action={action} reason={reason}")
  return RecognizedIntent(action=action, parameters=ClassifierParameters(),
                          source="keywords")


def _unavailable_reason(llm_meta: Dict[str, Any], raw_text: str) -> str:
  if llm_meta.get("llm_available") is False:
    unavailable_reason = str(llm_meta.get("unavailable_reason") or "").strip()
    if unavailable_reason == "gemini_api_key_missing":
      return "GEMINI_API_KEY is missing."
    return "LLM provider is unavailable."
  if llm_meta.get("llm_output_empty_or_error"):
    llm_error = str(llm_meta.get("llm_error") or "").strip()
    if llm_error:
      return f"LLM call failed: {llm_error[:220]}"
  if isinstance(raw_text, str) and raw_text.strip():
    return "Structured parse failed: model returned non-JSON output."
  return "Structured model response was empty."


class IntentClassifier:
  """Maps one user message to a recognized intent or an explicit miss.

  ``model=None`` skips the model call and uses keyword matching only.
  """

  def __init__(self,
               model: Optional[str] = INTENT_ROUTER_MODEL,
               history_window: int = CLASSIFIER_HISTORY_WINDOW) -> None:
    self.model = model
    self.history_window = history_window

  def _build_payload(self, text: str, history: List[Dict[str, str]],
                     today: date) -> Dict[str, Any]:
    window = history[-self.history_window:] if self.history_window else []
    return {
        "message": text,
        "today": today.isoformat(),
        "history": window,
    }

  async def classify(self,
                     text: str,
                     history: Optional[List[Dict[str, str]]] = None,
                     today: Optional[date] = None) -> IntentResult:
    cleaned = (text or "").strip()
    if not cleaned:
      return UnrecognizedIntent(reason="empty message")
    if not self.model:
      return _keyword_fallback(cleaned, "classifier model disabled")

    current = today or today_in_timezone()
    payload = self._build_payload(cleaned, list(history or []), current)
    parsed, raw_text, llm_meta = await run_structured_completion(
        model=self.model,
        system_prompt=INTENT_ROUTER_SYSTEM_PROMPT.format(today=current.isoformat()),
        developer_prompt=INTENT_ROUTER_DEVELOPER_PROMPT,
        user_payload=payload,
        response_model=ClassifierOutput,
        reasoning_effort=_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=1000,
    )
    if parsed is None:
      return _keyword_fallback(cleaned, _unavailable_reason(llm_meta, raw_text),
                               raw_text)

    action = ACTION_ALIASES.get(fold_text(parsed.action))
    if action is None:
      return _keyword_fallback(cleaned, f"unknown action {parsed.action!r}",
                               raw_text)
    if action == "none":
      return UnrecognizedIntent(reason=parsed.explanation or "none",
                                raw_output=raw_text)
    return RecognizedIntent(action=action, parameters=parsed.parameters,
                            source="llm")
