"""
Fakes en memoria para los tests.

Ningun test toca red ni base de datos: el origen, el sink de Jiandaoyun,
el ledger y el almacen de watermarks se reemplazan por estas clases.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from jdy_sync.domain.entities import KeyCondition, RawRecord, Watermark
from jdy_sync.domain.repositories import (
    IDeliveryLedger,
    IExternalSink,
    IPendingRecordSource,
    IWatermarkStore,
)
from jdy_sync.infrastructure.config.field_mapping import FieldMapping
from jdy_sync.shared.exceptions import SinkApiError, WatermarkError


def make_record(record_id: int, **values: Any) -> RawRecord:
    return RawRecord(id=record_id, values=values)


class FakeSource(IPendingRecordSource):
    """Tabla origen en memoria; tambien sirve como origen de pendientes."""

    def __init__(
        self,
        records: Iterable[RawRecord] = (),
        sub_rows: Optional[Dict[Tuple[str, int], List[Dict[str, Any]]]] = None,
    ) -> None:
        self.records = sorted(records, key=lambda r: r.id)
        self.sub_rows = sub_rows or {}
        self.batch_calls: List[Tuple[Optional[int], int]] = []
        self.sub_table_error: Optional[Exception] = None

    def fetch_batch(self, cursor: Optional[int], limit: int) -> List[RawRecord]:
        self.batch_calls.append((cursor, limit))
        rows = [r for r in self.records if cursor is None or r.id > cursor]
        return rows[:limit]

    def fetch_sub_table(self, table: str, foreign_key: str, parent_id: int) -> List[Dict[str, Any]]:
        if self.sub_table_error is not None:
            raise self.sub_table_error
        return list(self.sub_rows.get((table, parent_id), []))

    def fetch_pending(self, limit: int) -> List[RawRecord]:
        return self.records[:limit]


class FakeSink(IExternalSink):
    """
    Formulario de Jiandaoyun en memoria.

    - `reject(payload)` decide si un registro hace fallar la llamada de create
    - `query_errors` consultas que fallan con SinkApiError antes de responder
    - `unreachable_values` valores de clave cuya consulta falla siempre
    - `extra_candidates` registros que la consulta devuelve aunque no coincidan
    """

    def __init__(self, reject: Optional[Callable[[Mapping[str, Any]], bool]] = None) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.reject = reject or (lambda _payload: False)
        self.create_calls: List[int] = []
        self.update_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.query_calls = 0
        self.query_errors = 0
        self.unreachable_values: set[str] = set()
        self.update_fails = False
        self.extra_candidates: List[Dict[str, Any]] = []
        self._next_id = 1

    def seed(self, **fields: Any) -> str:
        """Agrega un registro existente; los valores van sin envolver."""
        external_id = f"ext-{self._next_id}"
        self._next_id += 1
        self.rows[external_id] = {k: {"value": v} for k, v in fields.items()}
        return external_id

    def create(self, records: Sequence[Mapping[str, Any]]) -> bool:
        self.create_calls.append(len(records))
        if any(self.reject(r) for r in records):
            return False
        for record in records:
            self.rows[f"ext-{self._next_id}"] = {k: dict(v) for k, v in record.items()}
            self._next_id += 1
        return True

    def query_by_fields(self, conditions: Sequence[KeyCondition]) -> List[Dict[str, Any]]:
        self.query_calls += 1
        if self.query_errors > 0:
            self.query_errors -= 1
            raise SinkApiError("Jiandaoyun 503", status_code=503)
        if any(c.value in self.unreachable_values for c in conditions):
            raise SinkApiError("Jiandaoyun 503", status_code=503)
        found = [dict(c) for c in self.extra_candidates]
        for external_id, fields in self.rows.items():
            flat = {k: v.get("value") for k, v in fields.items()}
            if all(str(flat.get(c.field_id)) == c.value for c in conditions):
                found.append({"_id": external_id, **flat})
        return found

    def update(self, external_id: str, fields: Mapping[str, Any]) -> bool:
        self.update_calls.append((external_id, {k: dict(v) for k, v in fields.items()}))
        if self.update_fails:
            return False
        self.rows.setdefault(external_id, {}).update({k: dict(v) for k, v in fields.items()})
        return True


class FakeLedger(IDeliveryLedger):
    def __init__(self) -> None:
        self.delivered: List[int] = []
        self.failures: List[Tuple[int, str]] = []

    def mark_delivered(self, record_ids: Sequence[int]) -> None:
        self.delivered.extend(record_ids)

    def record_failure(self, record_id: int, error: str) -> None:
        self.failures.append((record_id, error))


class FakeWatermarkStore(IWatermarkStore):
    def __init__(self) -> None:
        self.saved: Dict[str, Watermark] = {}
        self.fail_get = False
        self.fail_set = False
        self.set_calls = 0

    def get_watermark(self, entity: str) -> Watermark:
        if self.fail_get:
            raise WatermarkError(entity, "lectura fallida")
        return self.saved.get(entity) or Watermark(entity=entity)

    def set_watermark(self, watermark: Watermark) -> None:
        self.set_calls += 1
        if self.fail_set:
            raise WatermarkError(watermark.entity, "escritura fallida")
        previous = self.saved.get(watermark.entity)
        if previous is not None and previous.last_id is not None and watermark.last_id is not None:
            watermark = replace(watermark, last_id=max(previous.last_id, watermark.last_id))
        self.saved[watermark.entity] = watermark


ORDER_MAPPING = FieldMapping(
    main_fields={
        "job_num": "w_job",
        "job_status": "w_status",
        "item_number": "w_item",
        "work_start_date": "w_start",
        "job_last_update_date": "w_updated",
        "requireComponentList": "w_components",
    },
    sub_tables={
        "requireComponentList": {"item_number": "w_c_item", "require_qty": "w_c_qty"},
    },
)

ITEM_MAPPING = FieldMapping(
    main_fields={
        "job_num": "w_job",
        "item_number": "w_item",
        "item_classification": "w_class",
        "item_desc": "w_desc",
    },
)


