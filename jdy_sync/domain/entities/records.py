"""
Entidades del pipeline de sincronizacion.

Se mantienen libres de I/O para poder testearlas fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, NamedTuple, Optional


class FieldLookup(NamedTuple):
    """Resultado de leer un campo: (valor, existe)."""

    value: Any
    ok: bool


@dataclass(frozen=True)
class RawRecord:
    """
    Fila leida del origen.

    - id: identificador creciente asignado por el origen (cursor)
    - values: resto de columnas, tal cual vienen de la base de datos
    - delayed_update: True si el pliegue por clave de negocio la marco como
      update diferido (nunca se crea, siempre se envia como update)
    """

    id: int
    values: Mapping[str, Any]
    delayed_update: bool = False

    def __post_init__(self) -> None:
        # Copia inmutable: el registro no cambia una vez leido
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_row(cls, row: Mapping[str, Any], id_field: str = "id") -> "RawRecord":
        """Construye un RawRecord desde una fila dict (psycopg dict_row)."""
        if row.get(id_field) is None:
            raise ValueError(f"La fila no contiene el campo identificador '{id_field}'")
        values = {k: v for k, v in row.items() if k != id_field}
        return cls(id=int(row[id_field]), values=values)

    def lookup(self, name: str) -> FieldLookup:
        if name == "id":
            return FieldLookup(self.id, True)
        if name in self.values:
            return FieldLookup(self.values[name], True)
        return FieldLookup(None, False)

    def text(self, name: str) -> str:
        """Valor del campo como string recortado; "" si falta o es NULL."""
        value, ok = self.lookup(name)
        if not ok or value is None:
            return ""
        return str(value).strip()

    def mark_delayed(self) -> "RawRecord":
        return replace(self, delayed_update=True)


@dataclass(frozen=True)
class KeyCondition:
    """Condicion de igualdad sobre un widget de Jiandaoyun."""

    field_id: str
    value: str


NaturalKey = tuple[KeyCondition, ...]


def describe_key(key: Optional[NaturalKey]) -> str:
    if not key:
        return "<sin clave>"
    return ", ".join(f"{c.field_id}={c.value}" for c in key)


@dataclass(frozen=True)
class TransformedRecord:
    """
    Registro listo para Jiandaoyun.

    `fields` mapea widget -> {"value": ...}. Un widget ausente significa
    "no tocar" en un update; un valor "" significa "vaciar el campo".
    """

    source_id: int
    fields: Mapping[str, Mapping[str, Any]]
    natural_key: Optional[NaturalKey] = None
    delayed_update: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def with_field(self, field_id: str, value: Any) -> "TransformedRecord":
        fields = dict(self.fields)
        fields[field_id] = {"value": value}
        return replace(self, fields=fields)

    def without(self, field_ids: Iterable[str]) -> "TransformedRecord":
        """Copia sin los widgets indicados (supresion de campos en update)."""
        excluded = set(field_ids)
        return replace(self, fields={k: v for k, v in self.fields.items() if k not in excluded})

    def value_of(self, field_id: str) -> Any:
        wrapped = self.fields.get(field_id)
        return None if wrapped is None else wrapped.get("value")

    def payload(self) -> dict[str, Any]:
        """Dict plano serializable a JSON para la API."""
        return {k: dict(v) for k, v in self.fields.items()}


class DecisionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class ReconciliationDecision:
    """Create, o Update(external_id). Nunca se cachea entre pasadas."""

    kind: DecisionKind
    external_id: Optional[str] = None

    @classmethod
    def create(cls) -> "ReconciliationDecision":
        return cls(kind=DecisionKind.CREATE)

    @classmethod
    def update(cls, external_id: str) -> "ReconciliationDecision":
        if not external_id:
            raise ValueError("Un update requiere external_id")
        return cls(kind=DecisionKind.UPDATE, external_id=external_id)

    @property
    def is_create(self) -> bool:
        return self.kind is DecisionKind.CREATE


@dataclass
class SyncSummary:
    """
    Resumen de una pasada. Se emite siempre una linea de log con estos conteos.

    - total: filas extraidas
    - duplicates: descartadas por huella de contenido
    - valid: con clave natural completa
    - existing: reconciliadas como Update (incluye updates diferidos)
    - created / updated: entregas exitosas
    - failed: transformacion, reconciliacion o entrega fallida
    """

    entity: str
    total: int = 0
    duplicates: int = 0
    valid: int = 0
    existing: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    last_id: Optional[int] = None
    watermark_advanced: bool = False
    errors: list[str] = field(default_factory=list)

    def log_line(self) -> str:
        return (
            f"Resumen [{self.entity}]: total={self.total}, duplicados={self.duplicates}, "
            f"validos={self.valid}, existentes={self.existing}, creados={self.created}, "
            f"actualizados={self.updated}, fallidos={self.failed}, "
            f"ultimo_id={self.last_id}, watermark_avanzado={self.watermark_advanced}"
        )
