"""
Tabla local con bandera de sincronizacion (dm_order).

Conjunto pendiente: sync_status = 0 AND sync_attempts < max_attempts.
Es a la vez origen (fetch_pending) y ledger de entregas.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool

from jdy_sync.domain.entities import RawRecord
from jdy_sync.domain.repositories import IDeliveryLedger, IPendingRecordSource
from jdy_sync.infrastructure.database.source_repository import PostgresRecordSource, select_list
from jdy_sync.shared.exceptions import SourceUnavailableError

STATUS_PENDING = 0
STATUS_DELIVERED = 1


class PostgresPendingRepository(PostgresRecordSource, IPendingRecordSource, IDeliveryLedger):
    def __init__(
        self,
        pool: ConnectionPool,
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        max_attempts: int = 10,
        error_max_length: int = 500,
    ) -> None:
        super().__init__(pool, table, columns)
        self.max_attempts = max_attempts
        self.error_max_length = error_max_length

    def fetch_pending(self, limit: int) -> List[RawRecord]:
        query = sql.SQL(
            "SELECT {cols} FROM {table} "
            "WHERE sync_status = %s AND sync_attempts < %s "
            "ORDER BY id ASC LIMIT %s"
        ).format(cols=select_list(self._columns), table=sql.Identifier(self.table))
        rows = self._fetch_all(query, (STATUS_PENDING, self.max_attempts, limit))
        return [RawRecord.from_row(r) for r in rows]

    def mark_delivered(self, record_ids: Sequence[int]) -> None:
        if not record_ids:
            return
        query = sql.SQL(
            "UPDATE {table} SET sync_status = %s, sync_error = NULL, "
            "last_sync_time = now(), updated_time = now() WHERE id = ANY(%s)"
        ).format(table=sql.Identifier(self.table))
        self._execute(query, (STATUS_DELIVERED, list(record_ids)))

    def record_failure(self, record_id: int, error: str) -> None:
        query = sql.SQL(
            "UPDATE {table} SET sync_attempts = sync_attempts + 1, sync_error = %s, "
            "updated_time = now() WHERE id = %s"
        ).format(table=sql.Identifier(self.table))
        self._execute(query, (truncate_error(error, self.error_max_length), record_id))

    def _execute(self, query: sql.Composable, params: tuple) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(query, params)
                conn.commit()
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            raise SourceUnavailableError(f"Tabla '{self.table}' no disponible: {e}") from e


def truncate_error(error: str, max_length: int) -> str:
    if error is None:
        return ""
    return error if len(error) <= max_length else error[:max_length]
