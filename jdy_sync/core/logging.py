"""
Configuracion de loguru para los jobs de sincronizacion.
"""
import sys
from pathlib import Path

from loguru import logger

from jdy_sync.core.config import Settings


LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[entity]: <16} | {message}"
)


def configure_logging(settings: Settings) -> None:
    """
    Reemplaza el sink por defecto de loguru por stderr + archivo rotado.

    Los pipelines hacen `logger.bind(entity=...)`; el resto de mensajes
    usa "-" como entidad.
    """
    logger.remove()
    logger.configure(extra={"entity": "-"})

    logger.add(sys.stderr, format=LOG_FORMAT, level=settings.LOG_LEVEL)

    log_path = Path(settings.LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_path),
        format=LOG_FORMAT,
        rotation="500 MB",
        retention="10 days",
        level=settings.LOG_LEVEL,
    )
