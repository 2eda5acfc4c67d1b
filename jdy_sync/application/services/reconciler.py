"""
Reconciler: decide Create o Update consultando Jiandaoyun por clave natural.

No hay cache entre pasadas: cada reconciliacion vuelve a consultar.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from loguru import logger

from jdy_sync.domain.entities import NaturalKey, ReconciliationDecision, describe_key
from jdy_sync.domain.repositories import IExternalSink
from jdy_sync.shared.exceptions import ReconciliationError, RetryExhaustedError, SinkApiError
from jdy_sync.shared.utils.retry import RetryPolicy

EXTERNAL_ID_FIELD = "_id"


def matches_key(candidate: Mapping[str, Any], natural_key: NaturalKey) -> bool:
    """Todas las condiciones deben coincidir campo a campo."""
    for cond in natural_key:
        actual = candidate.get(cond.field_id)
        if actual is None or str(actual) != cond.value:
            return False
    return True


class Reconciler:
    def __init__(self, sink: IExternalSink, retry_policy: RetryPolicy) -> None:
        self._sink = sink
        self._retry = retry_policy.with_retry_on(SinkApiError)

    def find_external_id(self, natural_key: NaturalKey) -> Optional[str]:
        """
        Raises:
            ReconciliationError: la consulta fallo tras agotar reintentos
        """
        if not natural_key:
            raise ReconciliationError(describe_key(natural_key), "registro sin clave natural")

        try:
            candidates = self._retry.run(
                lambda: self._sink.query_by_fields(natural_key),
                description=f"Consulta de existencia [{describe_key(natural_key)}]",
                is_success=lambda _result: True,
            )
        except RetryExhaustedError as e:
            raise ReconciliationError(describe_key(natural_key), e.message) from e

        for candidate in candidates:
            external_id = candidate.get(EXTERNAL_ID_FIELD)
            if external_id and matches_key(candidate, natural_key):
                return str(external_id)
            if external_id:
                # La consulta devolvio un candidato que no cumple todas las condiciones
                logger.debug(f"Candidato {external_id} descartado para [{describe_key(natural_key)}]")
        return None

    def reconcile(self, natural_key: NaturalKey) -> ReconciliationDecision:
        external_id = self.find_external_id(natural_key)
        if external_id is None:
            return ReconciliationDecision.create()
        return ReconciliationDecision.update(external_id)
