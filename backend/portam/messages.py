"""
Message catalog for validation outcomes.

Every outcome kind maps to one static record holding the success flag,
the numeric (HTTP) code, the machine-readable status tag and the
human-readable text in each supported locale.
"""

from enum import Enum
from typing import Any, Dict, NamedTuple


class OutcomeKind(str, Enum):
    """Closed set of outcomes the validation service can produce."""

    VALIDATION_SUCCESS = "VALIDATION_SUCCESS"
    HISTORY_FETCH_SUCCESS = "HISTORY_FETCH_SUCCESS"

    SUPPORT_NOT_FOUND = "ERROR_SUPORT_NOT_FOUND"
    SUPPORT_INACTIVE = "ERROR_SUPORT_INACTIVE"
    STATION_UNAVAILABLE = "ERROR_STATION_NOT_AVAILABLE"
    NO_ACTIVE_TITLE = "ERROR_NO_USER_TITLE_ACTIVE"
    TITLE_EXPIRED = "ERROR_USER_TITLE_EXPIRED"
    CANNOT_INITIALIZE = "ERROR_CANNOT_INITIALIZE_USER_TITLE"
    REENTRY_TOO_SOON = "ERROR_REENTRY_TIME_NOT_PASSED"
    NOT_VALID_FOR_ZONE = "ERROR_USER_TITLE_NOT_VALID_FOR_ZONE"
    NO_USES_LEFT = "ERROR_NO_USES_LEFT"

    MISSING_PARAMETERS = "ERROR_MISSING_PARAMETERS"
    INTERNAL_ERROR = "ERROR_INTERNAL_SERVER"


DOMAIN_DENIALS = (
    OutcomeKind.SUPPORT_NOT_FOUND,
    OutcomeKind.SUPPORT_INACTIVE,
    OutcomeKind.STATION_UNAVAILABLE,
    OutcomeKind.NO_ACTIVE_TITLE,
    OutcomeKind.TITLE_EXPIRED,
    OutcomeKind.CANNOT_INITIALIZE,
    OutcomeKind.REENTRY_TOO_SOON,
    OutcomeKind.NOT_VALID_FOR_ZONE,
    OutcomeKind.NO_USES_LEFT,
)


class MessageRecord(NamedTuple):
    success: bool
    code: int
    status: str
    msg: Dict[str, str]


def _record(kind: OutcomeKind, success: bool, code: int, ca: str, en: str, es: str) -> MessageRecord:
    return MessageRecord(success, code, kind.value, {"ca": ca, "en": en, "es": es})


MESSAGES: Dict[OutcomeKind, MessageRecord] = {
    # Success messages
    OutcomeKind.VALIDATION_SUCCESS: _record(
        OutcomeKind.VALIDATION_SUCCESS, True, 200,
        ca="Validació correcta",
        en="Validation successful",
        es="Validación correcta",
    ),
    OutcomeKind.HISTORY_FETCH_SUCCESS: _record(
        OutcomeKind.HISTORY_FETCH_SUCCESS, True, 200,
        ca="Historial de validacions obtingut correctament",
        en="Validation history fetched successfully",
        es="Historial de validaciones obtenido correctamente",
    ),

    # Client errors (4xx)
    OutcomeKind.SUPPORT_NOT_FOUND: _record(
        OutcomeKind.SUPPORT_NOT_FOUND, False, 404,
        ca="Suport no trobat",
        en="Support not found",
        es="Soporte no encontrado",
    ),
    OutcomeKind.SUPPORT_INACTIVE: _record(
        OutcomeKind.SUPPORT_INACTIVE, False, 403,
        ca="Suport inactiu",
        en="Support inactive",
        es="Soporte inactivo",
    ),
    OutcomeKind.STATION_UNAVAILABLE: _record(
        OutcomeKind.STATION_UNAVAILABLE, False, 404,
        ca="Estació no disponible",
        en="Station not available",
        es="Estación no disponible",
    ),
    OutcomeKind.NO_ACTIVE_TITLE: _record(
        OutcomeKind.NO_ACTIVE_TITLE, False, 404,
        ca="No tens cap títol actiu",
        en="You have no active title",
        es="No tienes ningún título activo",
    ),
    OutcomeKind.TITLE_EXPIRED: _record(
        OutcomeKind.TITLE_EXPIRED, False, 410,
        ca="El teu títol ha caducat",
        en="Your title has expired",
        es="Tu título ha caducado",
    ),
    OutcomeKind.CANNOT_INITIALIZE: _record(
        OutcomeKind.CANNOT_INITIALIZE, False, 403,
        ca="No pots inicialitzar el títol en aquesta estació",
        en="You cannot initialize the title at this station",
        es="No puedes inicializar el título en esta estación",
    ),
    OutcomeKind.REENTRY_TOO_SOON: _record(
        OutcomeKind.REENTRY_TOO_SOON, False, 429,
        ca="No pots tornar a validar a la mateixa estació encara",
        en="You cannot validate at the same station yet",
        es="No puedes volver a validar en la misma estación todavía",
    ),
    OutcomeKind.NOT_VALID_FOR_ZONE: _record(
        OutcomeKind.NOT_VALID_FOR_ZONE, False, 403,
        ca="El teu títol no és vàlid per aquesta zona",
        en="Your title is not valid for this zone",
        es="Tu título no es válido para esta zona",
    ),
    OutcomeKind.NO_USES_LEFT: _record(
        OutcomeKind.NO_USES_LEFT, False, 410,
        ca="No et queden viatges disponibles",
        en="You have no trips left",
        es="No te quedan viajes disponibles",
    ),
    OutcomeKind.MISSING_PARAMETERS: _record(
        OutcomeKind.MISSING_PARAMETERS, False, 400,
        ca="Falten paràmetres requerits",
        en="Missing required parameters",
        es="Faltan parámetros requeridos",
    ),

    # Server errors (5xx)
    OutcomeKind.INTERNAL_ERROR: _record(
        OutcomeKind.INTERNAL_ERROR, False, 500,
        ca="Error intern del servidor",
        en="Internal server error",
        es="Error interno del servidor",
    ),
}


def get_message(kind: OutcomeKind) -> MessageRecord:
    """Look up the catalog record for an outcome kind."""
    return MESSAGES[kind]


def render(kind: OutcomeKind, locale: str, **data: Any) -> Dict[str, Any]:
    """
    Build a response body for an outcome.

    Args:
        kind: Outcome to render
        locale: Locale of the human-readable text; unknown locales use English
        **data: Extra fields merged into the body (validation id, uses left...)

    Returns:
        Dictionary with success, code, status, msg and any extra fields
    """
    record = get_message(kind)
    body: Dict[str, Any] = {
        "success": record.success,
        "code": record.code,
        "status": record.status,
        "msg": record.msg.get(locale, record.msg["en"]),
    }
    body.update(data)
    return body
