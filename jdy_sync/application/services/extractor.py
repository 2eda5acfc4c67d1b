"""
Extractor: lectura acotada de filas nuevas (id > watermark).
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from jdy_sync.domain.entities import RawRecord
from jdy_sync.domain.repositories import IRecordSource
from jdy_sync.shared.exceptions import RetryExhaustedError, SourceUnavailableError
from jdy_sync.shared.utils.retry import RetryPolicy


class Extractor:
    """
    Lee hasta `max_batch` filas con id > last_id, en orden ascendente.

    - Solo reintenta SourceUnavailableError (conectividad).
    - Si un intento falla a mitad, el siguiente continua desde el ultimo id
      ya leido con el limite restante: nunca duplica filas.
    - Al agotar reintentos devuelve lo que ya tenia (posiblemente vacio).
    """

    def __init__(self, source: IRecordSource, retry_policy: RetryPolicy) -> None:
        self._source = source
        self._retry = retry_policy.with_retry_on(SourceUnavailableError)

    def fetch(self, last_id: Optional[int], max_batch: int) -> List[RawRecord]:
        if max_batch <= 0:
            return []

        fetched: List[RawRecord] = []

        def read_remaining() -> bool:
            cursor = fetched[-1].id if fetched else last_id
            rows = self._source.fetch_batch(cursor, max_batch - len(fetched))
            for row in rows:
                # El origen garantiza orden; se filtra igual por seguridad del cursor
                if (cursor is None or row.id > cursor) and len(fetched) < max_batch:
                    fetched.append(row)
                    cursor = row.id
            return True

        try:
            self._retry.run(read_remaining, description="Lectura de origen")
        except RetryExhaustedError as e:
            logger.error(f"{e.message}. Se continua con {len(fetched)} filas ya leidas")

        return fetched
