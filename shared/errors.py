"""
Shared error handling for the Cédula lookup service.

Every domain failure carries a stable result code and the HTTP status the
boundary should answer with. Codes are part of the public contract and must
not change.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CedulaServiceError(Exception):
    """Base exception for the lookup service."""

    code = "ERROR_INTERNO"
    http_status = 500
    default_message = "Error interno del servicio"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidIdentifierError(CedulaServiceError):
    """The national id does not have 11 digits."""

    code = "CEDULA_INVALIDA"
    http_status = 400
    default_message = "La cédula proporcionada no tiene un formato válido"

    def __init__(self, raw: Optional[str], digits: str, message: Optional[str] = None):
        self.raw = raw
        self.digits = digits
        super().__init__(message, {"digits": len(digits)})


class UnsupportedViewError(CedulaServiceError):
    """Requested response view is not one of the known projections."""

    code = "FORMATO_NO_SOPORTADO"
    http_status = 400
    default_message = "El formato solicitado no está soportado"

    def __init__(self, view: str, supported: tuple):
        self.view = view
        super().__init__(
            f"El formato '{view}' no está soportado",
            {"formatos_validos": list(supported)}
        )


class InvalidParametersError(CedulaServiceError):
    """Request body or query parameters failed validation."""

    code = "PARAMETROS_INVALIDOS"
    http_status = 400
    default_message = "Los parámetros de la petición son inválidos"


class RateLimitError(CedulaServiceError):
    """Admission denied for the calling client."""

    code = "RATE_LIMIT_EXCEDIDO"
    http_status = 429
    default_message = "Se ha excedido el límite de peticiones permitidas"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"Límite de peticiones excedido. Intente nuevamente en {retry_after} segundos.",
            {"retry_after": retry_after}
        )


class SubjectNotFoundError(CedulaServiceError):
    """Upstream answered well-formed but without a citizen."""

    code = "CIUDADANO_NO_ENCONTRADO"
    http_status = 404
    default_message = "No se encontraron datos para la cédula consultada"


class UpstreamError(CedulaServiceError):
    """Base class for failures talking to the registry."""

    http_status = 502


class UpstreamUnavailableError(UpstreamError):
    """Registry unreachable, failing with 5xx, or circuit open."""

    code = "JCE_NO_DISPONIBLE"
    http_status = 503
    default_message = "Error de conexión con el portal JCE - Servicio temporalmente no disponible"


class UpstreamTimeoutError(UpstreamError):
    """Registry did not answer within the overall deadline."""

    code = "JCE_TIMEOUT"
    http_status = 504
    default_message = "Timeout consultando el portal JCE - El servicio tardó demasiado en responder"


class UpstreamBadResponseError(UpstreamError):
    """Registry answered with a rejected status or an unusable payload."""

    code = "ERROR_PROCESAMIENTO"
    http_status = 502
    default_message = "Error procesando la consulta en el portal JCE"


class InternalError(CedulaServiceError):
    """Unexpected failure; details stay in the logs."""

    code = "ERROR_INTERNO"
    http_status = 500
