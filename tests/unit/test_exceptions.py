from jdy_sync.shared.exceptions import (
    ConfigurationError,
    RetryExhaustedError,
    SinkApiError,
    WatermarkError,
)


def test_str_includes_error_code() -> None:
    assert str(ConfigurationError("Falta JDY_API_TOKEN")) == "[CONFIGURATION_ERROR] Falta JDY_API_TOKEN"


def test_retry_exhausted_carries_last_error() -> None:
    last = SinkApiError("Jiandaoyun 503", status_code=503)
    error = RetryExhaustedError("Consulta de existencia", 3, last)

    assert error.attempts == 3
    assert error.last_error is last
    assert error.message == "Consulta de existencia fallo tras 3 intentos: [SINK_API_ERROR] Jiandaoyun 503"
    assert last.details == {"status_code": 503}


def test_watermark_error_details() -> None:
    error = WatermarkError("orders", "escritura fallida")

    assert error.entity == "orders"
    assert error.details == {"entity": "orders"}
    assert "orders" in error.message
