"""
Delivery Engine: envio de creates por lotes y updates uno a uno.

Creates, por lote:
    PENDING -> SUCCESS             (se marca todo el lote como entregado)
    PENDING -> RETRY (x max)       (espera fija entre intentos)
    RETRY agotado -> SINGLETON_FALLBACK
                                   (cada registro en su propio create; exito
                                    o fallo independiente, sin reintento)
Updates: cada uno es una unidad reintentable con la misma politica; al
agotarse se registra el fallo en el ledger y el registro sigue pendiente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from loguru import logger

from jdy_sync.domain.entities import TransformedRecord
from jdy_sync.domain.repositories import IDeliveryLedger, IExternalSink, NullDeliveryLedger
from jdy_sync.shared.exceptions import RetryExhaustedError, SinkApiError, SyncException
from jdy_sync.shared.utils.retry import RetryPolicy


class BatchState(str, Enum):
    PENDING = "pending"
    RETRY = "retry"
    SUCCESS = "success"
    SINGLETON_FALLBACK = "singleton_fallback"


@dataclass
class DeliveryOutcome:
    delivered: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def merge(self, other: "DeliveryOutcome") -> "DeliveryOutcome":
        self.delivered.extend(other.delivered)
        self.failed.extend(other.failed)
        return self


def chunked(records: Sequence[TransformedRecord], size: int) -> List[Sequence[TransformedRecord]]:
    if size <= 0:
        raise ValueError("El tamano de lote debe ser > 0")
    return [records[i:i + size] for i in range(0, len(records), size)]


class DeliveryEngine:
    def __init__(
        self,
        sink: IExternalSink,
        retry_policy: RetryPolicy,
        *,
        ledger: Optional[IDeliveryLedger] = None,
        create_batch_size: int = 100,
    ) -> None:
        self._sink = sink
        self._retry = retry_policy.with_retry_on(SinkApiError)
        self._ledger = ledger or NullDeliveryLedger()
        self._batch_size = create_batch_size
        self.last_batch_states: List[BatchState] = []

    def deliver_creates(self, records: Sequence[TransformedRecord]) -> DeliveryOutcome:
        outcome = DeliveryOutcome()
        self.last_batch_states = []
        for batch in chunked(list(records), self._batch_size):
            state, batch_outcome = self._deliver_batch(batch)
            self.last_batch_states.append(state)
            outcome.merge(batch_outcome)
        return outcome

    def deliver_update(self, record: TransformedRecord, external_id: str) -> bool:
        payload = record.payload()
        try:
            self._retry.run(
                lambda: self._sink.update(external_id, payload),
                description=f"Update de registro {record.source_id} (data_id={external_id})",
            )
        except RetryExhaustedError as e:
            logger.error(e.message)
            self._ledger_call(lambda: self._ledger.record_failure(record.source_id, e.message))
            return False

        self._ledger_call(lambda: self._ledger.mark_delivered([record.source_id]))
        return True

    def _deliver_batch(self, batch: Sequence[TransformedRecord]) -> tuple[BatchState, DeliveryOutcome]:
        ids = [r.source_id for r in batch]
        payloads = [r.payload() for r in batch]
        try:
            self._retry.run(
                lambda: self._sink.create(payloads),
                description=f"Create por lote ({len(batch)} registros)",
            )
        except RetryExhaustedError as e:
            logger.warning(f"{e.message}. Se reenvian {len(batch)} registros de forma individual")
            return BatchState.SINGLETON_FALLBACK, self._deliver_singletons(batch)

        self._ledger_call(lambda: self._ledger.mark_delivered(ids))
        logger.info(f"Lote de {len(batch)} registros creado")
        return BatchState.SUCCESS, DeliveryOutcome(delivered=ids)

    def _deliver_singletons(self, batch: Sequence[TransformedRecord]) -> DeliveryOutcome:
        outcome = DeliveryOutcome()
        for record in batch:
            error = "create individual sin exito"
            try:
                ok = self._sink.create([record.payload()])
            except SinkApiError as e:
                ok = False
                error = e.message

            if ok:
                self._ledger_call(lambda: self._ledger.mark_delivered([record.source_id]))
                outcome.delivered.append(record.source_id)
            else:
                logger.error(f"Create individual fallido para registro {record.source_id}: {error}")
                self._ledger_call(lambda: self._ledger.record_failure(record.source_id, error))
                outcome.failed.append(record.source_id)
        return outcome

    def _ledger_call(self, operation: Callable[[], None]) -> None:
        # La entrega ya ocurrio; un fallo del ledger no la deshace
        try:
            operation()
        except SyncException as e:
            logger.error(f"No se pudo registrar el resultado de la entrega: {e.message}")
