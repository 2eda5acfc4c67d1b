"""
Interfaces de repositorios y colaboradores externos.
"""
from jdy_sync.domain.repositories.sync_repository import (
    IAttributeExtractor,
    IDeliveryLedger,
    IExternalSink,
    IPendingRecordSource,
    IRecordSource,
    IWatermarkStore,
    NoopAttributeExtractor,
    NullDeliveryLedger,
)

__all__ = [
    "IAttributeExtractor",
    "IDeliveryLedger",
    "IExternalSink",
    "IPendingRecordSource",
    "IRecordSource",
    "IWatermarkStore",
    "NoopAttributeExtractor",
    "NullDeliveryLedger",
]
