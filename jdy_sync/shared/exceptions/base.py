"""
Excepcion base del sincronizador.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base de todas las excepciones propias.

    - message: texto que va al log y al resumen de la pasada
    - error_code: codigo estable para filtrar logs
    - details: contexto adicional (entidad, clave natural, status HTTP...)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        # Las excepciones anidadas (RetryExhaustedError.last_error) llegan al log con su codigo
        return f"[{self.error_code}] {self.message}"
