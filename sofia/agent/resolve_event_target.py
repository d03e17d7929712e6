from __future__ import annotations

import re
from typing import List, Optional

from ..config import DISAMBIGUATION_LIMIT
from ..models import Event
from ..utils import _log_debug, fold_text
from .state import DISAMBIGUATION_STEPS, PendingAction, Session

EXPLICIT_ID_RE = re.compile(r"^(?:id\b\s*[:#]?|#)\s*(\S+)$")
_INDEX_RE = re.compile(r"^(?:el|la|opcion|numero|num\.?)?\s*(\d+)\s*[.)]?$")

_PURPOSE_VERBS = {
    PendingAction.EDIT: "editar",
    PendingAction.DELETE: "eliminar",
}


def parse_explicit_id(text: str) -> Optional[str]:
  """``"id 7"`` / ``"#7"`` / ``"id: 7"`` -> ``"7"``."""
  match = EXPLICIT_ID_RE.match(fold_text(text))
  return match.group(1) if match else None


def format_candidate_list(candidates: List[Event]) -> str:
  return "\n".join(
      f"{index}. {event.name} ({event.date} {event.start_time}-{event.end_time})"
      for index, event in enumerate(candidates, start=1))


class DisambiguationResolver:
  """Parks the owning flow on a numbered candidate list and reads the pick."""

  def __init__(self, limit: int = DISAMBIGUATION_LIMIT) -> None:
    self.limit = limit

  def shown(self, session: Session) -> List[Event]:
    return session.candidates[:self.limit]

  def resolve(self, session: Session, candidates: List[Event],
              purpose: PendingAction) -> str:
    """Store ``candidates`` on the session, move the flow to its
    disambiguation step and return the prompt listing the first entries."""
    purpose = PendingAction(purpose)
    if purpose not in DISAMBIGUATION_STEPS:
      raise ValueError(f"disambiguation is not supported for {purpose.value}")
    session.pending_action = purpose
    session.step = DISAMBIGUATION_STEPS[purpose]
    session.candidates = list(candidates)
    session.selected_event_id = None
    return self.prompt(session)

  def prompt(self, session: Session) -> str:
    visible = self.shown(session)
    verb = _PURPOSE_VERBS.get(session.pending_action, "usar")
    header = (f"Encontré {len(session.candidates)} eventos que coinciden. "
              f"¿Cuál quieres {verb}?")
    if len(session.candidates) > len(visible):
      header += f" (muestro los primeros {len(visible)})"
    return (f"{header}\n{format_candidate_list(visible)}\n"
            "Responde con el número de la lista o con el id del evento.")

  def select(self, session: Session, text: str) -> Optional[Event]:
    """Pick by 1-based position in the shown list, else by id.

    Returns ``None`` and leaves the session untouched when nothing matches.
    """
    visible = self.shown(session)
    folded = fold_text(text).strip(" ¿?¡!")
    chosen: Optional[Event] = None

    explicit_id = parse_explicit_id(folded)
    if explicit_id is not None:
      chosen = self._by_id(session, explicit_id)
    else:
      match = _INDEX_RE.match(folded)
      if match:
        position = int(match.group(1))
        if 1 <= position <= len(visible):
          chosen = visible[position - 1]
        else:
          chosen = self._by_id(session, match.group(1))
      else:
        chosen = self._by_id(session, folded)

    if chosen is None:
      _log_debug(f"[DISAMBIGUATION] no candidate for {text!r}")
      return None
    session.selected_event_id = chosen.id
    session.candidates = []
    return chosen

  @staticmethod
  def _by_id(session: Session, event_id: str) -> Optional[Event]:
    for event in session.candidates:
      if fold_text(event.id) == fold_text(event_id):
        return event
    return None
