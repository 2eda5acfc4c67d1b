"""
Excepciones del motor de sincronizacion.

Taxonomia:
- Errores transitorios de infraestructura (SourceUnavailableError, SinkApiError):
  se reintentan con espera fija; al agotar reintentos se abandona la unidad
  (fila, lote o consulta) solo para esta pasada.
- Errores de datos (TransformError, ReconciliationError): se salta el registro
  y se cuenta; nunca abortan la pasada.
- Errores de configuracion (ConfigurationError): fatales al arrancar.
- Errores de watermark (WatermarkError): fatales para la pasada actual; el
  watermark almacenado queda intacto.
"""
from typing import Any, Optional

from jdy_sync.shared.exceptions.base import AppException


class SyncException(AppException):
    """Excepción base para errores del sync."""

    def __init__(self, message: str, error_code: str = "SYNC_ERROR", details=None):
        super().__init__(message=message, error_code=error_code, details=details)


class ConfigurationError(SyncException):
    """Configuracion faltante o invalida (mapeos, credenciales, conexion)."""

    def __init__(self, message: str, setting: Optional[str] = None):
        details = {"setting": setting} if setting else None
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details)


class SourceUnavailableError(SyncException):
    """La base de datos origen no respondio (conexion caida, timeout)."""

    def __init__(self, message: str):
        super().__init__(message, error_code="SOURCE_UNAVAILABLE")


class SinkApiError(SyncException):
    """Fallo de transporte o respuesta malformada de Jiandaoyun."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, error_code="SINK_API_ERROR", details=details)
        self.status_code = status_code


class TransformError(SyncException):
    """Un registro no pudo proyectarse al formato de Jiandaoyun."""

    def __init__(self, record_id: Any, reason: str):
        super().__init__(
            f"No se pudo transformar el registro {record_id}: {reason}",
            error_code="TRANSFORM_ERROR",
            details={"record_id": str(record_id)},
        )
        self.record_id = record_id


class ReconciliationError(SyncException):
    """La consulta de existencia en Jiandaoyun fallo tras agotar reintentos."""

    def __init__(self, natural_key: Any, reason: str):
        super().__init__(
            f"No se pudo reconciliar {natural_key}: {reason}",
            error_code="RECONCILIATION_ERROR",
            details={"natural_key": str(natural_key)},
        )


class WatermarkError(SyncException):
    """No se pudo leer o escribir el watermark de una entidad."""

    def __init__(self, entity: str, reason: str):
        super().__init__(
            f"Error de watermark para '{entity}': {reason}",
            error_code="WATERMARK_ERROR",
            details={"entity": entity},
        )
        self.entity = entity


class RetryExhaustedError(SyncException):
    """Se agotaron los intentos de una operacion reintentable."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        reason = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"{description} fallo tras {attempts} intentos{reason}",
            error_code="RETRY_EXHAUSTED",
            details={"attempts": attempts},
        )
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
