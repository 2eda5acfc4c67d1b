"""
Servicios de aplicacion.

Cada etapa de una pasada de sincronizacion es un servicio independiente;
los drivers (use_cases) los encadenan.
"""
from jdy_sync.application.services.extractor import Extractor
from jdy_sync.application.services.deduplicator import Deduplicator, FoldResult
from jdy_sync.application.services.transformer import (
    ReleaseRule,
    SequenceCounter,
    SubTableSource,
    Transformer,
)
from jdy_sync.application.services.reconciler import Reconciler
from jdy_sync.application.services.delivery import BatchState, DeliveryEngine, DeliveryOutcome

__all__ = [
    # Extraccion y deduplicacion
    "Extractor",
    "Deduplicator",
    "FoldResult",
    # Transformacion
    "Transformer",
    "ReleaseRule",
    "SequenceCounter",
    "SubTableSource",
    # Reconciliacion y entrega
    "Reconciler",
    "DeliveryEngine",
    "DeliveryOutcome",
    "BatchState",
]
