"""
Cliente mínimo de la API REST v5 de Jiandaoyun (简道云), sin SDKs externos.

Endpoints usados:
- POST /app/entry/data/batch_create
- POST /app/entry/data/list
- POST /app/entry/data/update

El cliente NO reintenta: los errores transitorios (transporte, 429, 5xx) se
levantan como SinkApiError y el RetryPolicy del llamador decide.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from loguru import logger

from jdy_sync.domain.entities import KeyCondition
from jdy_sync.domain.repositories import IExternalSink
from jdy_sync.shared.exceptions import SinkApiError

BATCH_CREATE_PATH = "/app/entry/data/batch_create"
LIST_PATH = "/app/entry/data/list"
UPDATE_PATH = "/app/entry/data/update"

QUERY_LIMIT = 10


@dataclass(frozen=True)
class JiandaoyunCredentials:
    token: str
    base_url: str = "https://api.jiandaoyun.com/api/v5"


def is_success_response(body: Any) -> bool:
    """
    Regla de exito de escritura:
    - objeto JSON no vacio con status == "success", o
    - `data` no nulo, o
    - presencia de `data_id` / `dataId`
    Cualquier otra cosa (vacio, lista, None) es fallo.
    """
    if not isinstance(body, dict) or not body:
        return False
    if body.get("status") == "success":
        return True
    if body.get("data") is not None:
        return True
    return "data_id" in body or "dataId" in body


def build_filter(conditions: Sequence[KeyCondition]) -> Dict[str, Any]:
    return {
        "rel": "and",
        "cond": [
            {"field": c.field_id, "type": "text", "method": "eq", "value": [c.value]}
            for c in conditions
        ],
    }


class JiandaoyunClient:
    """
    Cliente HTTP de Jiandaoyun.

    Importante:
    - Cada llamada lleva un X-Request-ID propio para poder cruzar logs.
    - No interpreta los campos: recibe y devuelve dicts widget -> valor.
    """

    def __init__(
        self,
        credentials: JiandaoyunCredentials,
        *,
        session: Optional[requests.Session] = None,
        connect_timeout_s: float = 10.0,
        read_timeout_s: float = 30.0,
    ) -> None:
        self._creds = credentials
        self._base_url = credentials.base_url.rstrip("/")
        self._timeout = (connect_timeout_s, read_timeout_s)
        self._session = session or requests.Session()

    def batch_create(
        self,
        app_id: str,
        entry_id: str,
        data_list: Sequence[Mapping[str, Any]],
        *,
        is_start_workflow: bool = False,
    ) -> bool:
        payload = {
            "app_id": app_id,
            "entry_id": entry_id,
            "data_list": [dict(d) for d in data_list],
            "is_start_workflow": is_start_workflow,
        }
        body = self._post(BATCH_CREATE_PATH, payload)
        ok = is_success_response(body)
        if not ok:
            logger.warning(f"batch_create sin exito ({len(data_list)} registros): {body!r}")
        return ok

    def list_by_conditions(
        self,
        app_id: str,
        entry_id: str,
        conditions: Sequence[KeyCondition],
        *,
        limit: int = QUERY_LIMIT,
    ) -> List[Dict[str, Any]]:
        """
        Consulta registros que cumplen todas las condiciones.

        Raises:
            SinkApiError: fallo de transporte o respuesta sin estructura esperada
        """
        payload = {
            "app_id": app_id,
            "entry_id": entry_id,
            "limit": limit,
            "filter": build_filter(conditions),
        }
        body = self._post(LIST_PATH, payload)
        if body is None:
            raise SinkApiError("Respuesta de consulta vacia o rechazada por el servidor")
        if not isinstance(body, dict):
            raise SinkApiError(f"Respuesta de consulta malformada: {body!r}")
        data = body.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise SinkApiError(f"Campo 'data' inesperado en consulta: {type(data).__name__}")
        return [rec for rec in data if isinstance(rec, dict)]

    def update(
        self,
        app_id: str,
        entry_id: str,
        data_id: str,
        data: Mapping[str, Any],
    ) -> bool:
        payload = {
            "app_id": app_id,
            "entry_id": entry_id,
            "data_id": data_id,
            "data": dict(data),
            "is_start_trigger": True,
        }
        body = self._post(UPDATE_PATH, payload)
        ok = is_success_response(body)
        if not ok:
            logger.warning(f"update sin exito (data_id={data_id}): {body!r}")
        return ok

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        """
        POST JSON.

        Estrategia:
        - error de transporte, 429 o 5xx: SinkApiError (reintentable por el llamador)
        - otro no-2xx: se registra y retorna None (fallo no reintentable aqui)
        - 2xx con cuerpo vacio o no JSON: se registra y retorna None
        """
        url = f"{self._base_url}{path}"
        request_id = uuid.uuid4().hex
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Content-Type": "application/json",
            "X-Request-ID": request_id,
        }

        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise SinkApiError(f"Error de transporte en {path} (request_id={request_id}): {e}") from e

        if resp.status_code == 429 or 500 <= resp.status_code < 600:
            raise SinkApiError(
                f"Jiandaoyun {resp.status_code} en {path} (request_id={request_id}): {resp.text[:200]}",
                status_code=resp.status_code,
            )

        if not 200 <= resp.status_code < 300:
            logger.error(
                f"Jiandaoyun rechazo {path} con {resp.status_code} "
                f"(request_id={request_id}): {resp.text[:500]}"
            )
            return None

        if not resp.content or not resp.text.strip():
            logger.error(f"Respuesta vacia de {path} (request_id={request_id})")
            return None

        try:
            return resp.json()
        except ValueError:
            logger.error(f"Respuesta no JSON de {path} (request_id={request_id}): {resp.text[:200]}")
            return None


class JiandaoyunForm(IExternalSink):
    """Un formulario concreto (app_id + entry_id) expuesto como sink."""

    def __init__(
        self,
        client: JiandaoyunClient,
        app_id: str,
        entry_id: str,
        *,
        start_workflow: bool = False,
    ) -> None:
        self._client = client
        self.app_id = app_id
        self.entry_id = entry_id
        self._start_workflow = start_workflow

    def create(self, records: Sequence[Mapping[str, Any]]) -> bool:
        if not records:
            return True
        return self._client.batch_create(
            self.app_id, self.entry_id, records, is_start_workflow=self._start_workflow
        )

    def query_by_fields(self, conditions: Sequence[KeyCondition]) -> List[Dict[str, Any]]:
        if not conditions:
            return []
        return self._client.list_by_conditions(self.app_id, self.entry_id, conditions)

    def update(self, external_id: str, fields: Mapping[str, Any]) -> bool:
        return self._client.update(self.app_id, self.entry_id, external_id, fields)

    def __repr__(self) -> str:
        return f"JiandaoyunForm(app_id={self.app_id!r}, entry_id={self.entry_id!r})"
