"""
Pull DM: copia ordenes (y sus lineas) de la base remota del cliente a las
tablas locales dm_order / dm_order_detail.

- Cursor por modify_time, guardado como cursor_time en el watermark "dm_pull".
- Orden existente: se busca por source_id y luego por order_no; un update
  reemplaza todas sus lineas.
- Toda orden tocada queda pendiente de envio (la recoge el pipeline dm_push).
- El cursor solo avanza si al menos una orden se proceso.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import psycopg
from loguru import logger

from jdy_sync.domain.repositories import IWatermarkStore
from jdy_sync.infrastructure.database.dm_repository import DmLocalRepository, DmRemoteRepository
from jdy_sync.shared.exceptions import RetryExhaustedError, SourceUnavailableError, WatermarkError
from jdy_sync.shared.utils.retry import RetryPolicy

DM_PULL_ENTITY = "dm_pull"


@dataclass
class PullSummary:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    cursor_time: Optional[datetime] = None
    cursor_advanced: bool = False

    def log_line(self) -> str:
        return (
            f"Pull DM completado: total={self.total}, nuevos={self.inserted}, "
            f"actualizados={self.updated}, fallidos={self.failed}, "
            f"cursor={self.cursor_time}, cursor_avanzado={self.cursor_advanced}"
        )


class DmPullUseCase:
    def __init__(
        self,
        *,
        remote: DmRemoteRepository,
        local: DmLocalRepository,
        watermark_store: IWatermarkStore,
        retry_policy: RetryPolicy,
        batch_size: int = 50,
    ) -> None:
        self._remote = remote
        self._local = local
        self._store = watermark_store
        self._retry = retry_policy.with_retry_on(SourceUnavailableError)
        self._batch_size = batch_size
        self.log = logger.bind(entity=DM_PULL_ENTITY)

    def run_once(self) -> PullSummary:
        summary = PullSummary()
        try:
            watermark = self._store.get_watermark(DM_PULL_ENTITY)
        except WatermarkError as e:
            self.log.error(f"{e.message}. Se omite el pull")
            return summary

        cursor = watermark.cursor_time
        summary.cursor_time = cursor
        try:
            orders = self._retry.run(
                lambda: self._remote.fetch_orders_modified_after(cursor, self._batch_size),
                description="Lectura de ordenes DM remotas",
                is_success=lambda _rows: True,
            )
        except RetryExhaustedError as e:
            self.log.error(e.message)
            return summary

        if not orders:
            self.log.debug("Pull DM sin datos nuevos")
            return summary

        summary.total = len(orders)
        self.log.info(f"{len(orders)} ordenes DM modificadas desde {cursor}")
        max_modify = cursor

        for order in orders:
            order_no = order.get("order_no")
            try:
                details = self._remote.fetch_details(order["id"])
                existing_id = self._local.find_order_id(order["id"], order_no)
                local_id = self._local.save_order(order, details, existing_id)
            except (SourceUnavailableError, psycopg.Error) as e:
                summary.failed += 1
                self.log.error(f"No se pudo copiar la orden DM {order_no}: {e}")
                continue

            if existing_id is None:
                summary.inserted += 1
                self.log.info(f"Orden DM nueva: {order_no} (id local={local_id}, lineas={len(details)})")
            else:
                summary.updated += 1
                self.log.info(f"Orden DM actualizada: {order_no} (id local={local_id}, lineas={len(details)})")

            modify_time = order.get("modify_time")
            if modify_time is not None and (max_modify is None or modify_time > max_modify):
                max_modify = modify_time

        if summary.inserted + summary.updated > 0 and max_modify is not None:
            try:
                self._store.set_watermark(replace(watermark, cursor_time=max_modify))
            except WatermarkError as e:
                self.log.error(e.message)
            else:
                summary.cursor_time = max_modify
                summary.cursor_advanced = True

        self.log.info(summary.log_line())
        return summary
