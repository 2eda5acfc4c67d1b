"""
Drivers de sincronizacion: orquestan una pasada completa.

IDLE -> EXTRACTING -> DEDUPING -> TRANSFORMING -> RECONCILING -> DELIVERING
     -> ADVANCING_WATERMARK -> IDLE

- Una pasada sin filas vuelve de EXTRACTING a IDLE sin tocar el watermark.
- El watermark avanza al mayor id extraido (no solo al de los entregados):
  un registro que falla definitivamente no se vuelve a extraer. La excepcion
  son las filas cuya reconciliacion fallo: el watermark se detiene antes de la
  primera de ellas y la proxima pasada las repite.
- Cada pasada con filas emite una sola linea de resumen.
"""

from __future__ import annotations

import time
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from jdy_sync.application.services.deduplicator import Deduplicator
from jdy_sync.application.services.delivery import DeliveryEngine
from jdy_sync.application.services.extractor import Extractor
from jdy_sync.application.services.reconciler import Reconciler
from jdy_sync.application.services.transformer import SEQUENCE_ALPHABET, SequenceCounter, Transformer
from jdy_sync.domain.entities import RawRecord, SyncSummary, TransformedRecord, describe_key
from jdy_sync.domain.repositories import IDeliveryLedger, IPendingRecordSource, IWatermarkStore
from jdy_sync.shared.exceptions import (
    ReconciliationError,
    RetryExhaustedError,
    SourceUnavailableError,
    SyncException,
    WatermarkError,
)
from jdy_sync.shared.utils.retry import RetryPolicy


class SyncPhase(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    DEDUPING = "deduping"
    TRANSFORMING = "transforming"
    RECONCILING = "reconciling"
    DELIVERING = "delivering"
    ADVANCING_WATERMARK = "advancing_watermark"


class BaseSyncDriver:
    """
    Etapas comunes: dedupe -> transform -> reconcile -> deliver.
    Las subclases deciden de donde salen las filas y que se persiste al final.
    """

    def __init__(
        self,
        entity: str,
        *,
        deduplicator: Deduplicator,
        transformer: Transformer,
        reconciler: Reconciler,
        delivery: DeliveryEngine,
        max_batch_size: int = 50,
        delayed_update_wait_s: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.entity = entity
        self._dedup = deduplicator
        self._transformer = transformer
        self._reconciler = reconciler
        self._delivery = delivery
        self.max_batch_size = max_batch_size
        self._delayed_wait_s = delayed_update_wait_s
        self._sleep = sleep
        self._today = today
        self.phase = SyncPhase.IDLE
        self.log = logger.bind(entity=entity)

    def run_once(self) -> SyncSummary:
        raise NotImplementedError

    def _enter(self, phase: SyncPhase) -> None:
        self.phase = phase
        self.log.debug(f"Fase: {phase.value}")

    def _on_record_failed(self, record_id: int, reason: str) -> None:
        """Fallo de datos de un registro (invalido o sin transformar)."""
        return None

    def _new_counter(self, start: int) -> SequenceCounter:
        rule = self._transformer.release_rule
        return SequenceCounter(start, rule.alphabet if rule else SEQUENCE_ALPHABET)

    def _process(
        self, records: Sequence[RawRecord], summary: SyncSummary, counter: SequenceCounter
    ) -> List[int]:
        """
        Ejecuta dedupe, transform, reconcile y deliver sobre `records`.

        Returns:
            ids cuya reconciliacion fallo (se repiten en la proxima pasada)
        """
        self._enter(SyncPhase.DEDUPING)
        fold = self._dedup.content_fold(records)
        summary.duplicates = fold.duplicates
        primary, delayed = self._dedup.business_fold(fold.kept)

        self._enter(SyncPhase.TRANSFORMING)
        ready = self._transform_all(primary, summary)
        ready_delayed = self._transform_all(delayed, summary)

        self._enter(SyncPhase.RECONCILING)
        creates: List[TransformedRecord] = []
        updates: List[Tuple[TransformedRecord, str]] = []
        unreconciled: List[int] = []
        for record in ready:
            try:
                decision = self._reconciler.reconcile(record.natural_key)
            except ReconciliationError as e:
                # Ni create ni update: se reintenta en otra pasada
                self.log.error(e.message)
                summary.failed += 1
                summary.errors.append(e.message)
                unreconciled.append(record.source_id)
                self._on_record_failed(record.source_id, e.message)
                continue
            if decision.is_create:
                creates.append(self._transformer.for_create(record, counter))
            else:
                summary.existing += 1
                updates.append((self._transformer.for_update(record), decision.external_id))

        self._enter(SyncPhase.DELIVERING)
        if creates:
            self.log.info(f"Creando {len(creates)} registros nuevos")
            outcome = self._delivery.deliver_creates(creates)
            summary.created += len(outcome.delivered)
            summary.failed += len(outcome.failed)
        if updates:
            self.log.info(f"Actualizando {len(updates)} registros existentes")
            for record, external_id in updates:
                if self._delivery.deliver_update(record, external_id):
                    summary.updated += 1
                else:
                    summary.failed += 1

        if ready_delayed:
            unreconciled.extend(self._deliver_delayed(ready_delayed, summary))
        return unreconciled

    def _deliver_delayed(self, records: Sequence[TransformedRecord], summary: SyncSummary) -> List[int]:
        """
        Updates diferidos: se procesan despues de los creates de la pasada,
        tras una espera, y nunca crean.
        """
        self.log.info(
            f"Procesando {len(records)} updates diferidos tras esperar {self._delayed_wait_s}s"
        )
        self._sleep(self._delayed_wait_s)

        unreconciled: List[int] = []
        for record in records:
            self._enter(SyncPhase.RECONCILING)
            try:
                external_id = self._reconciler.find_external_id(record.natural_key)
            except ReconciliationError as e:
                self.log.error(e.message)
                summary.failed += 1
                summary.errors.append(e.message)
                self._on_record_failed(record.source_id, e.message)
                unreconciled.append(record.source_id)
                continue

            if external_id is None:
                message = (
                    f"Update diferido del registro {record.source_id} sin registro existente "
                    f"[{describe_key(record.natural_key)}]; no se crea"
                )
                self.log.warning(message)
                summary.failed += 1
                summary.errors.append(message)
                self._on_record_failed(record.source_id, message)
                continue

            summary.existing += 1
            self._enter(SyncPhase.DELIVERING)
            if self._delivery.deliver_update(self._transformer.for_update(record), external_id):
                summary.updated += 1
            else:
                summary.failed += 1
        return unreconciled

    def _transform_all(self, records: Sequence[RawRecord], summary: SyncSummary) -> List[TransformedRecord]:
        out: List[TransformedRecord] = []
        for record in records:
            if not self._transformer.is_valid(record):
                reason = f"Registro {record.id} sin clave natural completa"
                self.log.warning(reason)
                summary.failed += 1
                self._on_record_failed(record.id, reason)
                continue
            summary.valid += 1

            transformed = self._transformer.transform(record)
            if transformed is None:
                reason = f"Registro {record.id} no se pudo transformar"
                summary.failed += 1
                summary.errors.append(reason)
                self._on_record_failed(record.id, reason)
                continue
            out.append(transformed)
        return out


class IncrementalSyncDriver(BaseSyncDriver):
    """
    Pasada por watermark (ordenes, items, avisos de entrega).
    """

    def __init__(
        self,
        entity: str,
        *,
        watermark_store: IWatermarkStore,
        extractor: Extractor,
        **kwargs,
    ) -> None:
        super().__init__(entity, **kwargs)
        self._store = watermark_store
        self._extractor = extractor

    def _advance_target(self, records: Sequence[RawRecord], unreconciled: Sequence[int]) -> Optional[int]:
        """
        Mayor id que puede quedar como last_id.

        Una fila sin reconciliar se vuelve a extraer en la proxima pasada, asi
        que el watermark se detiene justo antes de la primera. None = no mover.
        """
        if not unreconciled:
            return max(r.id for r in records)
        target = min(unreconciled) - 1
        self.log.warning(
            f"{len(unreconciled)} registros sin reconciliar; el watermark se limita a {target}"
        )
        if target < min(r.id for r in records):
            return None
        return target

    def run_once(self) -> SyncSummary:
        summary = SyncSummary(entity=self.entity)
        try:
            self._enter(SyncPhase.EXTRACTING)
            try:
                watermark = self._store.get_watermark(self.entity)
            except WatermarkError as e:
                self.log.error(f"{e.message}. Se omite la pasada")
                summary.errors.append(e.message)
                return summary

            today = self._today()
            watermark = watermark.for_day(today)
            records = self._extractor.fetch(watermark.last_id, self.max_batch_size)
            if not records:
                self.log.debug(f"Sin filas nuevas (last_id={watermark.last_id})")
                return summary

            summary.total = len(records)
            self.log.info(f"{len(records)} filas nuevas desde id {watermark.last_id}")
            counter = self._new_counter(watermark.sequence_count)
            unreconciled = self._process(records, summary, counter)

            self._enter(SyncPhase.ADVANCING_WATERMARK)
            advanced = watermark.advanced_to(
                self._advance_target(records, unreconciled), counter.count, today
            )
            try:
                self._store.set_watermark(advanced)
            except WatermarkError as e:
                # El watermark guardado queda intacto: la proxima pasada repite el rango
                self.log.error(e.message)
                summary.errors.append(e.message)
            else:
                summary.watermark_advanced = advanced.last_id != watermark.last_id
                summary.last_id = advanced.last_id

            self.log.info(summary.log_line())
            return summary
        finally:
            self.phase = SyncPhase.IDLE


class PendingSyncDriver(BaseSyncDriver):
    """
    Envio de filas pendientes (dm_order -> Jiandaoyun).

    No usa watermark: el conjunto de trabajo es sync_status = 0 con intentos
    disponibles, y el ledger registra cada resultado.
    """

    def __init__(
        self,
        entity: str,
        *,
        source: IPendingRecordSource,
        ledger: IDeliveryLedger,
        retry_policy: RetryPolicy,
        **kwargs,
    ) -> None:
        super().__init__(entity, **kwargs)
        self._source = source
        self._ledger = ledger
        self._retry = retry_policy.with_retry_on(SourceUnavailableError)

    def _on_record_failed(self, record_id: int, reason: str) -> None:
        try:
            self._ledger.record_failure(record_id, reason)
        except SyncException as e:
            self.log.error(f"No se pudo registrar el fallo del registro {record_id}: {e.message}")

    def _fetch_pending(self) -> List[RawRecord]:
        try:
            return self._retry.run(
                lambda: self._source.fetch_pending(self.max_batch_size),
                description="Lectura de pendientes",
                is_success=lambda _rows: True,
            )
        except RetryExhaustedError as e:
            self.log.error(e.message)
            return []

    def run_once(self) -> SyncSummary:
        summary = SyncSummary(entity=self.entity)
        try:
            self._enter(SyncPhase.EXTRACTING)
            records = self._fetch_pending()
            if not records:
                self.log.debug("Sin registros pendientes")
                return summary

            summary.total = len(records)
            summary.last_id = max(r.id for r in records)
            self.log.info(f"{len(records)} registros pendientes de envio")
            self._process(records, summary, self._new_counter(0))
            self.log.info(summary.log_line())
            return summary
        finally:
            self.phase = SyncPhase.IDLE
