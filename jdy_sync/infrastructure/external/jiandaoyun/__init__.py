"""
Integracion con Jiandaoyun (简道云), destino de la sincronizacion.

Jiandaoyun solo ofrece consultas puntuales y escrituras puntuales (sin upsert
masivo ni transacciones), por eso la reconciliacion consulta siempre antes de
decidir entre crear y actualizar.
"""
from jdy_sync.infrastructure.external.jiandaoyun.client import (
    JiandaoyunClient,
    JiandaoyunCredentials,
    JiandaoyunForm,
    is_success_response,
)

__all__ = [
    "JiandaoyunClient",
    "JiandaoyunCredentials",
    "JiandaoyunForm",
    "is_success_response",
]
