from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..config import HISTORY_LIMIT
from ..models import Event


class PendingAction(str, Enum):
  NONE = "none"
  QUERY = "query"
  CREATE = "create"
  EDIT = "edit"
  DELETE = "delete"


class QueryStep(IntEnum):
  AWAITING_IDENTIFIER = 1


class CreateStep(IntEnum):
  AWAITING_NAME = 1
  AWAITING_DATE = 2
  AWAITING_START_TIME = 3
  AWAITING_DURATION = 4
  AWAITING_CONFIRMATION = 5


class EditStep(IntEnum):
  AWAITING_IDENTIFIER = 1
  DISAMBIGUATING = 2
  AWAITING_FIELD_CHOICE = 3
  AWAITING_NEW_VALUE = 4
  AWAITING_CONFIRMATION = 5


class DeleteStep(IntEnum):
  AWAITING_IDENTIFIER = 1
  DISAMBIGUATING = 2
  AWAITING_CONFIRMATION = 3


# Step each purpose parks in while the user picks from a candidate list.
DISAMBIGUATION_STEPS = {
    PendingAction.EDIT: EditStep.DISAMBIGUATING,
    PendingAction.DELETE: DeleteStep.DISAMBIGUATING,
}


class HistoryEntry(BaseModel):
  model_config = ConfigDict(extra="ignore")

  role: Literal["user", "assistant"]
  content: str


class Session(BaseModel):
  """Per-user conversation state. ``step`` is scoped to ``pending_action``."""
  model_config = ConfigDict(extra="ignore", validate_assignment=True)

  greeted: bool = False
  history: List[HistoryEntry] = Field(default_factory=list)
  pending_action: PendingAction = PendingAction.NONE
  step: int = 0
  slots: Dict[str, Any] = Field(default_factory=dict)
  candidates: List[Event] = Field(default_factory=list)
  selected_event_id: Optional[str] = None
  failed_attempts: int = 0

  def append_history(self, role: str, content: str) -> None:
    self.history = [*self.history, HistoryEntry(role=role, content=content)][-HISTORY_LIMIT:]

  def recent_history(self, limit: int) -> List[Dict[str, str]]:
    return [entry.model_dump() for entry in self.history[-limit:]]

  def start_action(self, action: PendingAction, step: int) -> None:
    self.reset_action()
    self.pending_action = action
    self.step = step

  def reset_action(self) -> None:
    """Drop everything tied to the active action; greeting and history survive."""
    self.pending_action = PendingAction.NONE
    self.step = 0
    self.slots = {}
    self.candidates = []
    self.selected_event_id = None
    self.failed_attempts = 0

  @property
  def is_idle(self) -> bool:
    return self.pending_action == PendingAction.NONE


class SessionStore(Protocol):

  def get_session(self, user_id: str) -> Session: ...

  def update_session(self, user_id: str, partial: Dict[str, Any]) -> Session: ...

  def clear_session(self, user_id: str) -> None: ...


class InMemorySessionStore:
  """Process-lifetime session map. Callers get copies; writes go through
  ``update_session``. No locking: one message per user is processed at a time."""

  def __init__(self) -> None:
    self._sessions: Dict[str, Session] = {}

  def get_session(self, user_id: str) -> Session:
    stored = self._sessions.get(user_id)
    if stored is None:
      stored = Session()
      self._sessions[user_id] = stored
    return stored.model_copy(deep=True)

  def update_session(self, user_id: str, partial: Dict[str, Any]) -> Session:
    current = self._sessions.get(user_id) or Session()
    merged = current.model_dump()
    merged.update(partial or {})
    updated = Session.model_validate(merged)
    self._sessions[user_id] = updated
    return updated.model_copy(deep=True)

  def clear_session(self, user_id: str) -> None:
    if not user_id:
      return
    self._sessions[user_id] = Session()

  def __contains__(self, user_id: object) -> bool:
    return user_id in self._sessions
