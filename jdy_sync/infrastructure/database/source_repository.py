"""
Lectura de las tablas origen (psycopg).

Los errores de conectividad (OperationalError / InterfaceError, incluido el
timeout del pool) se convierten en SourceUnavailableError para que el
extractor los reintente; el resto de errores de psycopg se propagan.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import psycopg
from loguru import logger
from psycopg import sql
from psycopg_pool import ConnectionPool

from jdy_sync.domain.entities import RawRecord
from jdy_sync.domain.repositories import IRecordSource
from jdy_sync.shared.exceptions import SourceUnavailableError


def select_list(columns: Optional[Sequence[str]]) -> sql.Composable:
    if not columns:
        return sql.SQL("*")
    cols = list(columns)
    if "id" not in cols:
        cols.insert(0, "id")
    return sql.SQL(", ").join(sql.Identifier(c) for c in cols)


class PostgresRecordSource(IRecordSource):
    """
    Tabla origen de una entidad, leida por rangos de id ascendente.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        table: str,
        columns: Optional[Sequence[str]] = None,
    ) -> None:
        self._pool = pool
        self.table = table
        self._columns = list(columns) if columns else None

    def fetch_batch(self, cursor: Optional[int], limit: int) -> List[RawRecord]:
        query = sql.SQL("SELECT {cols} FROM {table} WHERE id > %s ORDER BY id ASC LIMIT %s").format(
            cols=select_list(self._columns),
            table=sql.Identifier(self.table),
        )
        rows = self._fetch_all(query, (cursor if cursor is not None else -1, limit))
        return [RawRecord.from_row(r) for r in rows]

    def fetch_sub_table(
        self, table: str, foreign_key: str, parent_id: int
    ) -> List[Dict[str, Any]]:
        query = sql.SQL("SELECT * FROM {table} WHERE {fk} = %s ORDER BY id ASC").format(
            table=sql.Identifier(table),
            fk=sql.Identifier(foreign_key),
        )
        return [dict(r) for r in self._fetch_all(query, (parent_id,))]

    def _fetch_all(self, query: sql.Composable, params: tuple) -> List[Dict[str, Any]]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return list(cur.fetchall())
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            logger.warning(f"Origen '{self.table}' no disponible: {e}")
            raise SourceUnavailableError(f"Tabla '{self.table}' no disponible: {e}") from e
