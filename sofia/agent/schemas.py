from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import ErrorKind
from ..models import Event

ActionName = Literal["query", "create", "edit", "delete"]
ReplyStatus = Literal["success", "error", "info", "pending"]


# ---------------------------------------------------------------------------
#  Intent classifier schemas
# ---------------------------------------------------------------------------

class ClassifierParameters(BaseModel):
  """Slots the classifier may pull out of a single message."""
  model_config = ConfigDict(extra="ignore")

  name: Optional[str] = None
  date: Optional[str] = None
  end_date: Optional[str] = None
  start_time: Optional[str] = None
  end_time: Optional[str] = None
  id: Optional[str] = None

  @field_validator("*", mode="before")
  @classmethod
  def _blank_to_none(cls, value: Any) -> Any:
    if value is None:
      return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
      return str(value)
    if isinstance(value, str):
      cleaned = value.strip()
      if not cleaned or cleaned.lower() in ("null", "none", "n/a"):
        return None
      return cleaned
    return None

  def is_empty(self) -> bool:
    return not self.model_dump(exclude_none=True)


class ClassifierOutput(BaseModel):
  """Raw classifier LLM output before validation of ``action``."""
  model_config = ConfigDict(extra="ignore")

  action: str = "none"
  parameters: ClassifierParameters = Field(default_factory=ClassifierParameters)
  explanation: Optional[str] = None

  @field_validator("parameters", mode="before")
  @classmethod
  def _parameters_object(cls, value: Any) -> Any:
    return value if isinstance(value, dict) else {}


class RecognizedIntent(BaseModel):
  kind: Literal["recognized"] = "recognized"
  action: ActionName
  parameters: ClassifierParameters = Field(default_factory=ClassifierParameters)
  source: Literal["llm", "keywords"] = "llm"


class UnrecognizedIntent(BaseModel):
  kind: Literal["unrecognized"] = "unrecognized"
  reason: str = ""
  raw_output: str = ""


IntentResult = Annotated[Union[RecognizedIntent, UnrecognizedIntent],
                         Field(discriminator="kind")]


# ---------------------------------------------------------------------------
#  Turn reply
# ---------------------------------------------------------------------------

class AgentReply(BaseModel):
  model_config = ConfigDict(extra="forbid")

  status: ReplyStatus
  message: str
  events: Optional[List[Event]] = None
  # Set on error replies only.
  error: Optional[ErrorKind] = None
