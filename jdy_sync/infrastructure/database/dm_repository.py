"""
Repositorios del pull DM: base remota del cliente -> tablas locales.

La base remota expone dm_order / dm_order_detail con las mismas columnas de
negocio que las tablas locales; el `id` remoto se guarda localmente como
`source_id`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool

from jdy_sync.shared.exceptions import SourceUnavailableError

DM_ORDER_COLUMNS: tuple[str, ...] = (
    "order_no",
    "month_settlement",
    "factory",
    "person_in_charge",
    "currency",
    "mark",
    "tax_rate",
    "payment_terms",
    "remarks",
    "in_warehouse",
    "material_warehouse",
    "original_terms",
    "total_quantity",
    "total_tax_amount",
    "department",
    "creator",
    "auditor",
    "approver",
    "submit_time",
    "modify_time",
    "order_status",
)

DM_DETAIL_COLUMNS: tuple[str, ...] = (
    "order_no",
    "line_no",
    "material_code",
    "material_desc",
    "quantity",
    "unit_price",
    "tax_unit_price",
    "tax_amount",
    "price_book",
    "suggested_quantity",
    "source_doc_no",
    "modify_time",
)


class DmRemoteRepository:
    """Lectura incremental de la base remota por modify_time."""

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        order_table: str = "dm_order",
        detail_table: str = "dm_order_detail",
    ) -> None:
        self._pool = pool
        self.order_table = order_table
        self.detail_table = detail_table

    def fetch_orders_modified_after(
        self, cursor_time: Optional[datetime], limit: int
    ) -> List[Dict[str, Any]]:
        if cursor_time is None:
            query = sql.SQL("SELECT * FROM {t} ORDER BY modify_time ASC, id ASC LIMIT %s").format(
                t=sql.Identifier(self.order_table)
            )
            params: tuple = (limit,)
        else:
            query = sql.SQL(
                "SELECT * FROM {t} WHERE modify_time > %s ORDER BY modify_time ASC, id ASC LIMIT %s"
            ).format(t=sql.Identifier(self.order_table))
            params = (cursor_time, limit)
        return self._fetch_all(query, params)

    def fetch_details(self, remote_order_id: int) -> List[Dict[str, Any]]:
        query = sql.SQL("SELECT * FROM {t} WHERE order_id = %s ORDER BY line_no ASC").format(
            t=sql.Identifier(self.detail_table)
        )
        return self._fetch_all(query, (remote_order_id,))

    def _fetch_all(self, query: sql.Composable, params: tuple) -> List[Dict[str, Any]]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return [dict(r) for r in cur.fetchall()]
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            raise SourceUnavailableError(f"Base remota DM no disponible: {e}") from e


class DmLocalRepository:
    """Escritura en dm_order / dm_order_detail locales."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_order_id(self, source_id: Any, order_no: Optional[str]) -> Optional[int]:
        """Busca primero por source_id y, si no, por order_no."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM dm_order WHERE source_id = %s", (source_id,))
                row = cur.fetchone()
                if row:
                    return int(row["id"])
                if order_no:
                    cur.execute("SELECT id FROM dm_order WHERE order_no = %s", (order_no,))
                    row = cur.fetchone()
                    if row:
                        return int(row["id"])
        return None

    def save_order(
        self,
        remote_order: Mapping[str, Any],
        details: Sequence[Mapping[str, Any]],
        existing_id: Optional[int],
    ) -> int:
        """
        Inserta o actualiza la orden y reemplaza sus lineas en una sola
        transaccion. La orden queda pendiente de envio (sync_status = 0).

        Returns:
            int: id local de la orden
        """
        values = [remote_order.get(c) for c in DM_ORDER_COLUMNS]
        source_id = remote_order.get("id")

        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    if existing_id is None:
                        cur.execute(
                            sql.SQL(
                                "INSERT INTO dm_order (source_id, {cols}, sync_status, sync_operation, "
                                "sync_attempts, created_time, updated_time) "
                                "VALUES (%s, {ph}, 0, 'C', 0, now(), now()) RETURNING id"
                            ).format(
                                cols=sql.SQL(", ").join(sql.Identifier(c) for c in DM_ORDER_COLUMNS),
                                ph=sql.SQL(", ").join(sql.Placeholder() * len(DM_ORDER_COLUMNS)),
                            ),
                            (source_id, *values),
                        )
                        order_id = int(cur.fetchone()["id"])
                    else:
                        cur.execute(
                            sql.SQL(
                                "UPDATE dm_order SET source_id = %s, {assign}, sync_status = 0, "
                                "sync_operation = 'U', sync_attempts = 0, sync_error = NULL, "
                                "updated_time = now() WHERE id = %s"
                            ).format(
                                assign=sql.SQL(", ").join(
                                    sql.SQL("{} = %s").format(sql.Identifier(c)) for c in DM_ORDER_COLUMNS
                                )
                            ),
                            (source_id, *values, existing_id),
                        )
                        order_id = existing_id
                        cur.execute("DELETE FROM dm_order_detail WHERE order_id = %s", (order_id,))

                    if details:
                        cur.executemany(
                            sql.SQL(
                                "INSERT INTO dm_order_detail (order_id, {cols}, sync_status, "
                                "created_time, updated_time) VALUES (%s, {ph}, 0, now(), now())"
                            ).format(
                                cols=sql.SQL(", ").join(sql.Identifier(c) for c in DM_DETAIL_COLUMNS),
                                ph=sql.SQL(", ").join(sql.Placeholder() * len(DM_DETAIL_COLUMNS)),
                            ),
                            [(order_id, *[d.get(c) for c in DM_DETAIL_COLUMNS]) for d in details],
                        )
        return order_id
