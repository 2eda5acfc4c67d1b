"""
Sincronizacion incremental: PostgreSQL (sistema de registro) -> Jiandaoyun (简道云).

Este paquete esta diseñado para ejecutarse como job (cron / scheduler propio),
no como parte de un request/response.

Objetivos de diseño:
- Idempotencia: cada pasada reconcilia contra Jiandaoyun antes de crear.
- Incremental: se apoya en un cursor (id creciente) persistido en Postgres.
- Reanudable: el watermark solo se escribe al final de la pasada.
- Entrega at-least-once: reintentos con espera fija y fallback a envios individuales.
"""

__version__ = "1.0.0"
