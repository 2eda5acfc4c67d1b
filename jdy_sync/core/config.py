"""
Configuracion central del sincronizador.
Gestiona variables de entorno y valores por defecto del motor de sync.

Todos los parametros del motor (tamanos de lote, reintentos, espera entre
reintentos, campos suprimidos en updates) tienen default: si la variable de
entorno no existe se usa el valor documentado aqui.
"""
import json
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Clase de configuracion del sincronizador.
    Lee variables de entorno (y `.env`) y proporciona valores por defecto.

    - DATABASE_URL se puede especificar completa o por componentes
    - Las credenciales de Jiandaoyun no tienen default: se validan al
      construir cada pipeline (ver `pipelines.build_pipelines`)
    """

    # Base de datos origen - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="sync_user")
    DATABASE_PASSWORD: str = Field(default="sync_pass")
    DATABASE_NAME: str = Field(default="msd")

    # Base de datos origen - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_MIN_SIZE: int = Field(default=1)
    DB_POOL_MAX_SIZE: int = Field(default=10)

    # Base de datos remota del cliente DM (solo para el pipeline dm_pull)
    DM_REMOTE_DATABASE_URL: str = Field(default="")

    # Jiandaoyun (简道云)
    JDY_API_TOKEN: str = Field(default="")
    JDY_BASE_URL: str = Field(default="https://api.jiandaoyun.com/api/v5")
    JDY_APP_ID: str = Field(default="")
    JDY_ORDER_ENTRY_ID: str = Field(default="")
    JDY_ITEM_ENTRY_ID: str = Field(default="")
    JDY_DELIVERY_ENTRY_ID: str = Field(default="")
    DM_JDY_APP_ID: str = Field(default="")
    DM_JDY_ENTRY_ID: str = Field(default="")
    JDY_START_WORKFLOW: bool = Field(default=False)
    JDY_CONNECT_TIMEOUT_S: float = Field(default=10.0)
    JDY_READ_TIMEOUT_S: float = Field(default=30.0)

    # Motor de sincronizacion
    SYNC_MAX_BATCH_SIZE: int = Field(default=50)
    SYNC_CREATE_BATCH_SIZE: int = Field(default=100)
    SYNC_MAX_RETRY: int = Field(default=10)
    SYNC_RETRY_INTERVAL_S: float = Field(default=5.0)
    SYNC_DELAYED_UPDATE_WAIT_S: float = Field(default=3.0)
    SYNC_INTERVAL_MINUTES: int = Field(default=5)
    # Lista JSON o separada por comas. Vacio = usar los defaults de cada entidad.
    SYNC_UPDATE_SUPPRESSED_FIELDS: str = Field(default="")
    SYNC_ERROR_MAX_LENGTH: int = Field(default=500)
    DM_MAX_SYNC_ATTEMPTS: int = Field(default=10)

    # Mapeos de campos (JSON externos)
    FIELD_MAPPING_PATH: str = Field(default="config/field_mapping.json")
    ITEM_FIELD_MAPPING_PATH: str = Field(default="config/item_field_mapping.json")
    DELIVERY_FIELD_MAPPING_PATH: str = Field(default="config/po_delivery_notice_field_mapping.json")
    DM_FIELD_MAPPING_PATH: str = Field(default="config/dm_field_mapping.json")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/jdy_sync.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    def update_suppressed_fields(self) -> Optional[List[str]]:
        """Lista de campos suprimidos en updates, o None si no se configuro."""
        if not self.SYNC_UPDATE_SUPPRESSED_FIELDS.strip():
            return None
        return parse_field_list(self.SYNC_UPDATE_SUPPRESSED_FIELDS)

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def parse_field_list(raw: str) -> List[str]:
    """
    Parsea una lista de campos.
    Acepta una lista JSON o valores separados por comas.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [field.strip() for field in raw.split(",") if field.strip()]
    if isinstance(parsed, list):
        return [str(field).strip() for field in parsed if str(field).strip()]
    # Escalar JSON (numero, booleano o string): un solo campo
    text = (parsed if isinstance(parsed, str) else raw).strip()
    return [text] if text else []
