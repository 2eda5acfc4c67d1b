"""
Deduplicador: pliegue por contenido y pliegue por clave de negocio.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from jdy_sync.domain.entities import RawRecord

# Campos de identidad, lote y auditoria que no forman parte del contenido
DEFAULT_FINGERPRINT_EXCLUDED: frozenset[str] = frozenset({"id", "sid", "sync_batch", "job_version"})


@dataclass(frozen=True)
class FoldResult:
    kept: List[RawRecord]
    duplicates: int


@dataclass(frozen=True)
class Deduplicator:
    """
    - excluded_fields: nombres ignorados en la huella
    - excluded_prefixes: prefijos ignorados (p.ej. "_widget_" en ordenes)
    - business_key_fields: campos de la clave natural para el pliegue de
      negocio; vacio = pliegue de negocio desactivado
    """

    excluded_fields: frozenset[str] = DEFAULT_FINGERPRINT_EXCLUDED
    excluded_prefixes: Tuple[str, ...] = ()
    business_key_fields: Tuple[str, ...] = ()

    def _is_excluded(self, name: str) -> bool:
        if name in self.excluded_fields:
            return True
        return any(name.startswith(p) for p in self.excluded_prefixes)

    def fingerprint(self, record: RawRecord) -> str:
        parts = []
        for name in sorted(record.values):
            if self._is_excluded(name):
                continue
            value = record.values[name]
            text = "" if value is None else str(value).strip()
            parts.append(f"{name}={text}|")
        return "".join(parts)

    def content_fold(self, records: Iterable[RawRecord]) -> FoldResult:
        """
        Un registro por huella distinta: el de mayor id. Salida ordenada por id.
        """
        best: Dict[str, RawRecord] = {}
        total = 0
        for record in records:
            total += 1
            key = self.fingerprint(record)
            current = best.get(key)
            if current is None or record.id > current.id:
                best[key] = record

        kept = sorted(best.values(), key=lambda r: r.id)
        return FoldResult(kept=kept, duplicates=total - len(kept))

    def business_key(self, record: RawRecord) -> Tuple[str, ...] | None:
        if not self.business_key_fields:
            return None
        key = tuple(record.text(f) for f in self.business_key_fields)
        return key if all(key) else None

    def business_fold(self, records: Sequence[RawRecord]) -> Tuple[List[RawRecord], List[RawRecord]]:
        """
        Agrupa por clave natural. En cada grupo el menor id es candidato a
        crear; el resto sale marcado como update diferido.

        Returns:
            (primarios ordenados por id, diferidos ordenados por id)
        """
        if not self.business_key_fields:
            return sorted(records, key=lambda r: r.id), []

        groups: Dict[Tuple[str, ...], List[RawRecord]] = defaultdict(list)
        primary: List[RawRecord] = []
        for record in records:
            key = self.business_key(record)
            if key is None:
                # Sin clave natural: no participa del pliegue
                primary.append(record)
            else:
                groups[key].append(record)

        delayed: List[RawRecord] = []
        for members in groups.values():
            members.sort(key=lambda r: r.id)
            primary.append(members[0])
            delayed.extend(m.mark_delayed() for m in members[1:])

        primary.sort(key=lambda r: r.id)
        delayed.sort(key=lambda r: r.id)
        return primary, delayed
