"""
Entidades del dominio.
"""
from jdy_sync.domain.entities.records import (
    DecisionKind,
    FieldLookup,
    KeyCondition,
    NaturalKey,
    RawRecord,
    ReconciliationDecision,
    SyncSummary,
    TransformedRecord,
    describe_key,
)
from jdy_sync.domain.entities.watermark import Watermark

__all__ = [
    "DecisionKind",
    "FieldLookup",
    "KeyCondition",
    "NaturalKey",
    "RawRecord",
    "ReconciliationDecision",
    "SyncSummary",
    "TransformedRecord",
    "Watermark",
    "describe_key",
]
