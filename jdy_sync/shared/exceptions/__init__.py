from jdy_sync.shared.exceptions.base import AppException
from jdy_sync.shared.exceptions.sync import (
    ConfigurationError,
    ReconciliationError,
    RetryExhaustedError,
    SinkApiError,
    SourceUnavailableError,
    SyncException,
    TransformError,
    WatermarkError,
)

__all__ = [
    "AppException",
    "ConfigurationError",
    "ReconciliationError",
    "RetryExhaustedError",
    "SinkApiError",
    "SourceUnavailableError",
    "SyncException",
    "TransformError",
    "WatermarkError",
]
