"""
Repositorio Postgres del watermark por entidad (tabla sync_watermark).

- La fila de cada entidad se inicializa en la primera lectura.
- La escritura es un unico UPSERT + commit; last_id nunca retrocede
  (GREATEST en la base de datos).
- Cualquier error de psycopg se convierte en WatermarkError.
"""

from __future__ import annotations

from typing import Any, Mapping

import psycopg
from psycopg_pool import ConnectionPool

from jdy_sync.domain.entities import Watermark
from jdy_sync.domain.repositories import IWatermarkStore
from jdy_sync.shared.exceptions import WatermarkError

CREATE_WATERMARK_TABLE = """
CREATE TABLE IF NOT EXISTS sync_watermark (
    entity          TEXT        PRIMARY KEY,
    last_id         BIGINT      NULL,
    sync_date       DATE        NULL,
    sequence_count  INTEGER     NOT NULL DEFAULT 0,
    cursor_time     TIMESTAMP   NULL,
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

_SELECT = """
SELECT entity, last_id, sync_date, sequence_count, cursor_time
FROM sync_watermark
WHERE entity = %s
"""

_UPSERT = """
INSERT INTO sync_watermark (entity, last_id, sync_date, sequence_count, cursor_time, updated_at)
VALUES (%s, %s, %s, %s, %s, now())
ON CONFLICT (entity) DO UPDATE
SET last_id        = GREATEST(sync_watermark.last_id, EXCLUDED.last_id),
    sync_date      = EXCLUDED.sync_date,
    sequence_count = EXCLUDED.sequence_count,
    cursor_time    = COALESCE(EXCLUDED.cursor_time, sync_watermark.cursor_time),
    updated_at     = now()
"""


def _row_to_watermark(row: Mapping[str, Any]) -> Watermark:
    return Watermark(
        entity=row["entity"],
        last_id=row["last_id"],
        sync_date=row["sync_date"],
        sequence_count=int(row["sequence_count"] or 0),
        cursor_time=row["cursor_time"],
    )


class PostgresWatermarkStore(IWatermarkStore):
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def ensure_table(self) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(CREATE_WATERMARK_TABLE)
        except psycopg.Error as e:
            raise WatermarkError("*", f"no se pudo crear sync_watermark: {e}") from e

    def get_watermark(self, entity: str) -> Watermark:
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(_SELECT, (entity,))
                    row = cur.fetchone()
                    if row:
                        return _row_to_watermark(row)

                    # Inicializacion explicita: nunca sincronizado
                    cur.execute(
                        "INSERT INTO sync_watermark (entity) VALUES (%s) ON CONFLICT (entity) DO NOTHING",
                        (entity,),
                    )
                    cur.execute(_SELECT, (entity,))
                    row2 = cur.fetchone()
        except psycopg.Error as e:
            raise WatermarkError(entity, f"lectura fallida: {e}") from e

        if not row2:
            raise WatermarkError(entity, "no se pudo inicializar sync_watermark")
        return _row_to_watermark(row2)

    def set_watermark(self, watermark: Watermark) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(
                    _UPSERT,
                    (
                        watermark.entity,
                        watermark.last_id,
                        watermark.sync_date,
                        watermark.sequence_count,
                        watermark.cursor_time,
                    ),
                )
                conn.commit()
        except psycopg.Error as e:
            raise WatermarkError(watermark.entity, f"escritura fallida: {e}") from e
