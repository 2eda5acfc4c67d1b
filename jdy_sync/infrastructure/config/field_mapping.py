"""
Carga de los mapeos de campos (JSON externo).

Formato:
    {
      "main_fields": {"columna_origen": "_widget_xxx", ...},
      "sub_tables": {"nombreSubtabla": {"columna_hija": "_widget_yyy"}, ...}
    }

Tambien se aceptan las claves camelCase `mainFields` / `subTables`.
Un mapeo se carga una sola vez por proceso; si falta o es invalido el
arranque falla con ConfigurationError.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from jdy_sync.shared.exceptions import ConfigurationError


class FieldMapping(BaseModel):
    """Mapeo origen -> widget de Jiandaoyun (solo lectura)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    main_fields: Dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("main_fields", "mainFields")
    )
    sub_tables: Dict[str, Dict[str, str]] = Field(
        default_factory=dict, validation_alias=AliasChoices("sub_tables", "subTables")
    )

    def widget_for(self, source_field: str) -> Optional[str]:
        return self.main_fields.get(source_field)

    def sub_table_widget(self, name: str) -> Optional[str]:
        """Widget que contiene la subtabla `name` (entrada homonima en main_fields)."""
        return self.main_fields.get(name)

    def plain_fields(self) -> Dict[str, str]:
        """main_fields sin las entradas que nombran subtablas."""
        return {k: v for k, v in self.main_fields.items() if k not in self.sub_tables}


_cache: Dict[str, FieldMapping] = {}
_cache_lock = threading.Lock()


def load_field_mapping(path: str) -> FieldMapping:
    """
    Lee y valida un archivo de mapeo. El resultado queda cacheado por ruta.

    Raises:
        ConfigurationError: archivo inexistente, JSON invalido o estructura incorrecta
    """
    key = str(Path(path).resolve())
    with _cache_lock:
        cached = _cache.get(key)
        if cached is not None:
            return cached

        mapping_file = Path(path)
        if not mapping_file.is_file():
            raise ConfigurationError(
                f"Archivo de mapeo de campos no encontrado: {mapping_file.resolve()}",
                setting=path,
            )

        try:
            raw = json.loads(mapping_file.read_text(encoding="utf-8"))
            mapping = FieldMapping.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(
                f"Mapeo de campos invalido en {mapping_file}: {e}", setting=path
            ) from e

        if not mapping.main_fields:
            raise ConfigurationError(f"El mapeo {mapping_file} no define main_fields", setting=path)

        logger.info(
            f"Mapeo cargado: {mapping_file.name} "
            f"(campos={len(mapping.main_fields)}, subtablas={len(mapping.sub_tables)})"
        )
        _cache[key] = mapping
        return mapping


def clear_field_mapping_cache() -> None:
    with _cache_lock:
        _cache.clear()
