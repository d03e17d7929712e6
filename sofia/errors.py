from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    PARSE = "parse"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXTERNAL = "external"
    TOO_MANY_ATTEMPTS = "too_many_attempts"


ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.PARSE: 422,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXTERNAL: 500,
    ErrorKind.TOO_MANY_ATTEMPTS: 429,
}

# Per-action apology used when the event store fails mid-turn.
ACTION_ERROR_MESSAGES: Dict[str, str] = {
    "query": "Error al consultar la agenda",
    "create": "Error al crear el evento",
    "edit": "Error al actualizar el evento",
    "delete": "Error al eliminar el evento",
    "general": "Error al procesar la solicitud",
}


class AgendaError(Exception):
    """Error carrying an HTTP-style status code and a user-safe detail.

    The code defaults to the one registered for ``kind``.
    """

    def __init__(self,
                 detail: Any,
                 kind: ErrorKind = ErrorKind.EXTERNAL,
                 status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.kind = kind
        self.status_code = (status_code if status_code is not None
                            else ERROR_STATUS_CODES[kind])


class EventStoreError(AgendaError):
    """The event store failed or timed out; the turn is retried by the user."""


def apology_for(action: Optional[str]) -> str:
    base = ACTION_ERROR_MESSAGES.get(action or "general",
                                     ACTION_ERROR_MESSAGES["general"])
    return f"⚠️ {base}. Por favor inténtalo de nuevo."
