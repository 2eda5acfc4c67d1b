"""
Configuración de fixtures para pytest.
"""
from datetime import date

import pytest

from jdy_sync.infrastructure.config.field_mapping import clear_field_mapping_cache
from jdy_sync.shared.utils.retry import RetryPolicy


@pytest.fixture
def immediate_retry() -> RetryPolicy:
    """Politica de 3 intentos sin espera."""
    return RetryPolicy.immediate(max_attempts=3)


@pytest.fixture
def fixed_today() -> date:
    return date(2025, 6, 2)


@pytest.fixture(autouse=True)
def _reset_mapping_cache():
    """El cache de mapeos es global al proceso."""
    clear_field_mapping_cache()
    yield
    clear_field_mapping_cache()
