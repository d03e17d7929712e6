from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from ..config import SMALL_TALK_HISTORY_WINDOW
from .llm_provider import get_agent_llm_settings, run_text_completion

RESPONSE_AGENT_MODEL = os.getenv("AGENT_RESPONSE_MODEL", "gemini-2.0-flash").strip() or "gemini-2.0-flash"
_SETTINGS = get_agent_llm_settings("RESPONSE")

GENERAL_FALLBACK_TEXT = ("No he entendido qué deseas hacer con tu agenda. "
                         "¿Quieres consultar, agregar, editar o borrar algún evento?")

RESPONSE_AGENT_SYSTEM_PROMPT = """Eres Sofía, una asistente virtual que gestiona una agenda.
Escribe una respuesta breve en español, en texto plano (sin JSON ni markdown).

Reglas:
- Describe solo lo que aparece en result; nunca inventes eventos, fechas ni horas.
- No muestres identificadores internos salvo que el resultado liste varios eventos.
- Si result no contiene eventos, dilo claramente.
- Tono cálido y profesional, una o dos frases (más una lista si hay varios eventos).
"""

RESPONSE_AGENT_DEVELOPER_PROMPT = """Input fields:
- action: query | create | edit | delete
- result: datos reales devueltos por la agenda
- parameters: lo que pidió el usuario

Devuelve el mensaje final para el usuario.
"""

SMALL_TALK_SYSTEM_PROMPT = """Eres Sofía, una asistente virtual especializada en gestionar una agenda.
Mantén una conversación amigable cuando el usuario no hace una solicitud concreta sobre su agenda.
Responde de forma concisa, amable y profesional, en español.
Si parece que quiere consultar, agregar, editar o eliminar eventos, recuérdale que puede pedirlo de forma clara.
No inventes información sobre eventos que no se hayan mencionado.
"""


def format_event_line(event: Dict[str, Any]) -> str:
  return (f"{event.get('name')} ({event.get('date')} "
          f"{event.get('start_time')}-{event.get('end_time')})")


def _query_fallback(result: Dict[str, Any]) -> str:
  events = result.get("events") if isinstance(result.get("events"), list) else []
  criteria = str(result.get("criteria") or "").strip()
  suffix = f" {criteria}" if criteria else ""
  if not events:
    return f"No encontré eventos{suffix}."
  noun = "evento" if len(events) == 1 else "eventos"
  lines = [f"Encontré {len(events)} {noun}{suffix}:"]
  for event in events:
    lines.append(f"- {format_event_line(event)}")
  return "\n".join(lines)


def fallback_response_text(action: str, result: Optional[Dict[str, Any]]) -> str:
  """Fixed Spanish sentence per action, used whenever the model is unavailable."""
  safe_result = result if isinstance(result, dict) else {}
  event = safe_result.get("event") if isinstance(safe_result.get("event"), dict) else {}

  if action == "query":
    return _query_fallback(safe_result)
  if action == "create" and event:
    return (f"✅ Listo, agendé \"{event.get('name')}\" el {event.get('date')} "
            f"de {event.get('start_time')} a {event.get('end_time')}.")
  if action == "edit" and event:
    return (f"✅ Actualicé el evento: {format_event_line(event)}.")
  if action == "delete" and event:
    return f"🗑️ Eliminé el evento \"{event.get('name')}\" del {event.get('date')}."
  return "Solicitud procesada."


class ResponseComposer:
  """Turns structured flow results into the reply text.

  ``model=None`` disables the model and always answers from templates.
  """

  def __init__(self, model: Optional[str] = RESPONSE_AGENT_MODEL) -> None:
    self.model = model

  async def compose(self,
                    action: str,
                    result: Dict[str, Any],
                    parameters: Optional[Dict[str, Any]] = None) -> str:
    fallback = fallback_response_text(action, result)
    if not self.model:
      return fallback
    text, _meta = await run_text_completion(
        model=self.model,
        system_prompt=RESPONSE_AGENT_SYSTEM_PROMPT,
        developer_prompt=RESPONSE_AGENT_DEVELOPER_PROMPT,
        user_payload={
            "action": action,
            "result": result,
            "parameters": parameters or {},
        },
        reasoning_effort=_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=600,
    )
    candidate = str(text or "").strip()
    return candidate or fallback

  async def small_talk(self, text: str,
                       history: Optional[List[Dict[str, str]]] = None) -> str:
    if not self.model:
      return GENERAL_FALLBACK_TEXT
    reply, _meta = await run_text_completion(
        model=self.model,
        system_prompt=SMALL_TALK_SYSTEM_PROMPT,
        developer_prompt=None,
        user_payload={
            "message": text,
            "history": list(history or [])[-SMALL_TALK_HISTORY_WINDOW:],
        },
        reasoning_effort=_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=250,
    )
    candidate = str(reply or "").strip()
    return candidate or GENERAL_FALLBACK_TEXT
