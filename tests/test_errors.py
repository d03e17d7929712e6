from __future__ import annotations

from sofia.errors import (AgendaError, ErrorKind, EventStoreError,
                          apology_for)


def test_error_kinds_carry_http_style_codes():
  assert AgendaError("x", ErrorKind.VALIDATION).status_code == 400
  assert AgendaError("x", ErrorKind.NOT_FOUND).status_code == 404
  assert AgendaError("x", ErrorKind.CONFLICT).status_code == 409
  assert AgendaError("x", ErrorKind.CONFLICT, status_code=418).status_code == 418
  store_error = EventStoreError("down")
  assert store_error.status_code == 500
  assert store_error.kind == ErrorKind.EXTERNAL
  assert store_error.detail == "down"


def test_apology_per_action():
  assert apology_for("create") == "⚠️ Error al crear el evento. Por favor inténtalo de nuevo."
  assert apology_for("query").startswith("⚠️ Error al consultar la agenda")
  assert apology_for(None) == "⚠️ Error al procesar la solicitud. Por favor inténtalo de nuevo."
