"""
Interfaces de los colaboradores del motor de sincronizacion.
Definen el contrato que debe cumplir cualquier implementación.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from jdy_sync.domain.entities import KeyCondition, RawRecord, Watermark


class IWatermarkStore(ABC):
    """
    Interfaz del almacen de watermarks.
    Un watermark por tipo de entidad.
    """

    @abstractmethod
    def get_watermark(self, entity: str) -> Watermark:
        """
        Obtiene el watermark de una entidad (lo inicializa si no existe).

        Raises:
            WatermarkError: si no se pudo leer
        """
        pass

    @abstractmethod
    def set_watermark(self, watermark: Watermark) -> None:
        """
        Persiste el watermark en una sola escritura atomica.

        Raises:
            WatermarkError: si no se pudo escribir
        """
        pass


class IRecordSource(ABC):
    """
    Interfaz de la tabla origen de una entidad.
    """

    @abstractmethod
    def fetch_batch(self, cursor: Optional[int], limit: int) -> List[RawRecord]:
        """
        Lee hasta `limit` filas con id > cursor, ordenadas por id ascendente.

        Args:
            cursor: ultimo id procesado (None = desde el principio)
            limit: numero maximo de filas

        Raises:
            SourceUnavailableError: si la base de datos no responde
        """
        pass

    @abstractmethod
    def fetch_sub_table(
        self, table: str, foreign_key: str, parent_id: int
    ) -> List[Dict[str, Any]]:
        """
        Lee las filas hijas de `table` cuyo `foreign_key` es `parent_id`.
        """
        pass


class IPendingRecordSource(IRecordSource):
    """
    Origen cuyo conjunto de trabajo son las filas pendientes de envio
    (sync_status = 0) en lugar de un rango de ids.
    """

    @abstractmethod
    def fetch_pending(self, limit: int) -> List[RawRecord]:
        """Filas pendientes con intentos disponibles, ordenadas por id."""
        pass


class IDeliveryLedger(ABC):
    """
    Registro local del resultado de cada entrega.
    """

    @abstractmethod
    def mark_delivered(self, record_ids: Sequence[int]) -> None:
        """Marca todos los registros como entregados en un solo commit."""
        pass

    @abstractmethod
    def record_failure(self, record_id: int, error: str) -> None:
        """
        Incrementa el contador de intentos y guarda el error truncado.
        El registro sigue pendiente.
        """
        pass


class NullDeliveryLedger(IDeliveryLedger):
    """Ledger vacio para entidades sin bandera de sync local."""

    def mark_delivered(self, record_ids: Sequence[int]) -> None:
        return None

    def record_failure(self, record_id: int, error: str) -> None:
        return None


class IExternalSink(ABC):
    """
    Interfaz de un formulario del sistema externo (Jiandaoyun).
    """

    @abstractmethod
    def create(self, records: Sequence[Mapping[str, Any]]) -> bool:
        """
        Crea un lote de registros.

        Returns:
            bool: True si la respuesta indica exito

        Raises:
            SinkApiError: error de transporte o respuesta reintentable (429/5xx)
        """
        pass

    @abstractmethod
    def query_by_fields(self, conditions: Sequence[KeyCondition]) -> List[Dict[str, Any]]:
        """
        Busca registros que cumplan todas las condiciones de igualdad.

        Returns:
            List[Dict]: candidatos (cada uno con "_id" y sus widgets); [] si no hay

        Raises:
            SinkApiError: fallo de red o respuesta malformada
        """
        pass

    @abstractmethod
    def update(self, external_id: str, fields: Mapping[str, Any]) -> bool:
        """
        Actualiza un registro existente.

        Returns:
            bool: True si la respuesta indica exito
        """
        pass


class IAttributeExtractor(ABC):
    """
    Extrae atributos derivados de campos de texto libre.
    """

    @abstractmethod
    def extract(self, record: RawRecord) -> Dict[str, Any]:
        """
        Returns:
            Dict[str, Any]: widget -> valor; vacio si no hay nada que extraer
        """
        pass


class NoopAttributeExtractor(IAttributeExtractor):
    def extract(self, record: RawRecord) -> Dict[str, Any]:
        return {}
