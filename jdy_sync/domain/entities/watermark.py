"""
Watermark (cursor persistido) por tipo de entidad.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class Watermark:
    """
    Estado persistido de una entidad.

    last_id:
        mayor id de origen ya procesado (None = nunca se sincronizo).
    sync_date / sequence_count:
        contador diario usado para asignar codigos de secuencia cortos.
        Se reinicia a 0 cuando cambia el dia.
    cursor_time:
        cursor temporal para pipelines que avanzan por fecha de modificacion
        (dm_pull). None en el resto.
    """

    entity: str
    last_id: Optional[int] = None
    sync_date: Optional[date] = None
    sequence_count: int = 0
    cursor_time: Optional[datetime] = None

    def for_day(self, today: date) -> "Watermark":
        """Watermark efectivo para hoy: reinicia el contador si cambio el dia."""
        if self.sync_date != today:
            return replace(self, sync_date=today, sequence_count=0)
        return self

    def advanced_to(self, max_id: Optional[int], sequence_count: int, today: date) -> "Watermark":
        """
        Nuevo watermark tras una pasada. last_id nunca retrocede; con
        max_id None solo se guarda el contador del dia.
        """
        if max_id is None:
            new_last = self.last_id
        else:
            new_last = max_id if self.last_id is None else max(self.last_id, max_id)
        return replace(self, last_id=new_last, sync_date=today, sequence_count=sequence_count)
