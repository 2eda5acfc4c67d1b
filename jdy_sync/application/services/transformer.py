"""
Transformer: proyecta un RawRecord al formato de widgets de Jiandaoyun.

Reglas:
- Todo campo mapeado va como {"value": str(v).strip()}; NULL -> "" (nunca se
  omite: en un update, clave ausente = "no tocar", "" = "vaciar").
- Fechas yyyy-MM-dd, timestamps yyyy-MM-dd HH:mm:ss (ver date_utils).
- Subtablas: {"value": [{widget: {"value": v}}, ...]}.
- Regla de liberacion (ordenes): fecha de liberacion y codigo de secuencia.
- En updates se eliminan los campos suprimidos antes de enviar.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from jdy_sync.domain.entities import KeyCondition, NaturalKey, RawRecord, TransformedRecord
from jdy_sync.domain.repositories import IAttributeExtractor, IRecordSource, NoopAttributeExtractor
from jdy_sync.infrastructure.config.field_mapping import FieldMapping
from jdy_sync.shared.exceptions import ConfigurationError, TransformError
from jdy_sync.shared.utils.date_utils import DATE_FORMAT, format_date_value, format_timestamp_value

SEQUENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXY0123456789"


def wrap(value: Any) -> Dict[str, Any]:
    return {"value": "" if value is None else str(value).strip()}


@dataclass(frozen=True)
class SubTableSource:
    """Subtabla `name` del mapeo, leida de `table` por `foreign_key` = id padre."""

    name: str
    table: str
    foreign_key: str = "order_id"


@dataclass(frozen=True)
class ReleaseRule:
    """
    Orden "liberada": status_field.strip() == released_value.

    - release_date_widget: fecha del dia si esta liberada, "" si no
    - sequence_widget: codigo corto, solo en creates de ordenes liberadas
    """

    status_field: str = "job_status"
    released_value: str = "已发放"
    release_date_widget: str = "_widget_1748238705999"
    sequence_widget: str = "_widget_1748317817210"
    alphabet: str = SEQUENCE_ALPHABET

    def is_released(self, record: RawRecord) -> bool:
        return record.text(self.status_field) == self.released_value


class SequenceCounter:
    """
    Contador de codigos de secuencia con alcance de pasada.

    Arranca en el sequence_count del watermark (ya reiniciado si cambio el
    dia) y avanza una vez por asignacion.
    """

    def __init__(self, start: int, alphabet: str = SEQUENCE_ALPHABET) -> None:
        if not alphabet:
            raise ValueError("El alfabeto de codigos no puede estar vacio")
        self.count = start
        self._alphabet = alphabet

    def next_code(self) -> str:
        index = self.count
        if index >= len(self._alphabet):
            logger.warning(
                f"Contador de codigos fuera de rango ({index} >= {len(self._alphabet)}); "
                f"se reutiliza el codigo {self._alphabet[0]}"
            )
            index = 0
        self.count += 1
        return self._alphabet[index]


class Transformer:
    def __init__(
        self,
        mapping: FieldMapping,
        source: IRecordSource,
        *,
        natural_key_fields: Sequence[str],
        date_fields: Sequence[str] = (),
        timestamp_fields: Sequence[str] = (),
        sub_tables: Sequence[SubTableSource] = (),
        attribute_extractor: Optional[IAttributeExtractor] = None,
        release_rule: Optional[ReleaseRule] = None,
        suppressed_fields: Sequence[str] = (),
        today: Callable[[], date] = date.today,
    ) -> None:
        self._mapping = mapping
        self._source = source
        self.natural_key_fields: Tuple[str, ...] = tuple(natural_key_fields)
        self._date_fields = frozenset(date_fields)
        self._timestamp_fields = frozenset(timestamp_fields)
        self._sub_tables = list(sub_tables)
        self._extractor = attribute_extractor or NoopAttributeExtractor()
        self.release_rule = release_rule
        self.suppressed_fields: Tuple[str, ...] = tuple(suppressed_fields)
        self._today = today

        missing = [f for f in self.natural_key_fields if mapping.widget_for(f) is None]
        if missing:
            raise ConfigurationError(f"Campos de clave natural sin widget en el mapeo: {missing}")
        for sub in self._sub_tables:
            if sub.name not in mapping.sub_tables or mapping.sub_table_widget(sub.name) is None:
                raise ConfigurationError(f"Subtabla '{sub.name}' sin mapeo o sin widget contenedor")

    def is_valid(self, record: RawRecord) -> bool:
        """Valido = todos los campos de la clave natural no vacios."""
        return all(record.text(f) for f in self.natural_key_fields)

    def natural_key(self, record: RawRecord) -> Optional[NaturalKey]:
        if not self.is_valid(record):
            return None
        return tuple(
            KeyCondition(field_id=self._mapping.widget_for(f), value=record.text(f))
            for f in self.natural_key_fields
        )

    def transform(self, record: RawRecord) -> Optional[TransformedRecord]:
        """
        Returns:
            TransformedRecord, o None si algun calculo derivado fallo
            (el llamador lo cuenta como fallido y sigue con la pasada)
        """
        try:
            fields = self._build_fields(record)
        except TransformError as e:
            logger.error(e.message)
            return None
        except Exception as e:
            logger.exception(f"No se pudo transformar el registro {record.id}: {e}")
            return None
        return TransformedRecord(
            source_id=record.id,
            fields=fields,
            natural_key=self.natural_key(record),
            delayed_update=record.delayed_update,
        )

    def for_create(self, transformed: TransformedRecord, counter: SequenceCounter) -> TransformedRecord:
        """Agrega el codigo de secuencia si la orden esta liberada."""
        rule = self.release_rule
        if rule is None or not transformed.value_of(rule.release_date_widget):
            return transformed
        return transformed.with_field(rule.sequence_widget, counter.next_code())

    def for_update(self, transformed: TransformedRecord) -> TransformedRecord:
        """Quita los campos que solo se escriben al crear."""
        if not self.suppressed_fields:
            return transformed
        return transformed.without(self.suppressed_fields)

    def _build_fields(self, record: RawRecord) -> Dict[str, Dict[str, Any]]:
        fields: Dict[str, Dict[str, Any]] = {}

        for source_field, widget in self._mapping.plain_fields().items():
            value, _ = record.lookup(source_field)
            fields[widget] = self._cell(source_field, value)

        for sub in self._sub_tables:
            widget = self._mapping.sub_table_widget(sub.name)
            fields[widget] = {"value": self._sub_table_rows(record, sub)}

        fields.update(self._attributes(record))

        rule = self.release_rule
        if rule is not None:
            released = rule.is_released(record)
            fields[rule.release_date_widget] = {
                "value": self._today().strftime(DATE_FORMAT) if released else ""
            }
        return fields

    def _sub_table_rows(self, record: RawRecord, sub: SubTableSource) -> List[Dict[str, Any]]:
        child_mapping: Mapping[str, str] = self._mapping.sub_tables[sub.name]
        try:
            rows = self._source.fetch_sub_table(sub.table, sub.foreign_key, record.id)
        except Exception as e:
            # Enviar la subtabla vacia borraria las filas existentes en Jiandaoyun
            raise TransformError(record.id, f"lectura de subtabla {sub.table} fallida: {e}") from e

        return [
            {widget: self._cell(column, row.get(column)) for column, widget in child_mapping.items()}
            for row in rows
        ]

    def _cell(self, column: str, value: Any) -> Dict[str, Any]:
        if column in self._date_fields:
            return {"value": format_date_value(value)}
        if column in self._timestamp_fields:
            return {"value": format_timestamp_value(value)}
        return wrap(value)

    def _attributes(self, record: RawRecord) -> Dict[str, Dict[str, Any]]:
        try:
            extracted = self._extractor.extract(record)
        except Exception as e:
            logger.warning(f"Extraccion de atributos fallida para registro {record.id}: {e}")
            return {}
        return {widget: wrap(value) for widget, value in extracted.items()}
