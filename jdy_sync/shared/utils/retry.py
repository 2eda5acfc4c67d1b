"""
Politica de reintentos con espera fija.

Reemplaza los bucles "reintentar + sleep" dispersos: el extractor, la
reconciliacion y la entrega usan la misma politica (max intentos + espera fija).
En tests se inyecta `RetryPolicy.immediate(...)` para no dormir.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from loguru import logger

from jdy_sync.shared.exceptions.sync import RetryExhaustedError

T = TypeVar("T")


def _no_sleep(_seconds: float) -> None:
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """
    Politica de reintentos.

    - max_attempts: intentos totales (incluye el primero)
    - delay_s: espera fija entre intentos (no exponencial)
    - retry_on: excepciones consideradas transitorias; el resto se propaga
    - sleep: funcion de espera (inyectable para tests)
    """

    max_attempts: int = 10
    delay_s: float = 5.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts debe ser >= 1")
        if self.delay_s < 0:
            raise ValueError("delay_s no puede ser negativo")

    @classmethod
    def immediate(
        cls,
        max_attempts: int = 3,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> "RetryPolicy":
        """Politica sin espera, pensada para tests."""
        return cls(max_attempts=max_attempts, delay_s=0.0, retry_on=retry_on, sleep=_no_sleep)

    def with_retry_on(self, *exc_types: type[BaseException]) -> "RetryPolicy":
        """Copia de la politica que solo reintenta los tipos indicados."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            delay_s=self.delay_s,
            retry_on=tuple(exc_types),
            sleep=self.sleep,
        )

    def run(
        self,
        operation: Callable[[], T],
        *,
        description: str,
        is_success: Callable[[Any], bool] = bool,
    ) -> T:
        """
        Ejecuta `operation` hasta que tenga exito o se agoten los intentos.

        Un resultado que no pasa `is_success` (por defecto: falsy) cuenta como
        intento fallido, igual que una excepcion de `retry_on`.

        Raises:
            RetryExhaustedError: si ningun intento tuvo exito
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = operation()
            except self.retry_on as e:
                last_error = e
                logger.warning(
                    f"{description}: intento {attempt}/{self.max_attempts} fallo con excepcion: {e}"
                )
            else:
                if is_success(result):
                    return result
                last_error = None
                logger.warning(
                    f"{description}: intento {attempt}/{self.max_attempts} sin exito"
                )

            if attempt < self.max_attempts:
                self.sleep(self.delay_s)

        raise RetryExhaustedError(description, self.max_attempts, last_error)
