"""
Configuracion y armado de los pipelines por tipo de entidad.

Todas las dependencias (pool, cliente de Jiandaoyun, mapeos, repositorios)
se crean aqui y se inyectan explicitamente en cada driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Sequence, Tuple

import requests
from loguru import logger
from psycopg_pool import ConnectionPool

from jdy_sync.application.services.deduplicator import DEFAULT_FINGERPRINT_EXCLUDED, Deduplicator
from jdy_sync.application.services.delivery import DeliveryEngine
from jdy_sync.application.services.extractor import Extractor
from jdy_sync.application.services.reconciler import Reconciler
from jdy_sync.application.services.transformer import ReleaseRule, SubTableSource, Transformer
from jdy_sync.application.use_cases.dm_pull import DM_PULL_ENTITY, DmPullUseCase
from jdy_sync.application.use_cases.sync_driver import IncrementalSyncDriver, PendingSyncDriver
from jdy_sync.core.config import Settings
from jdy_sync.infrastructure.config.field_mapping import load_field_mapping
from jdy_sync.infrastructure.database.dm_repository import DmLocalRepository, DmRemoteRepository
from jdy_sync.infrastructure.database.pending_repository import PostgresPendingRepository
from jdy_sync.infrastructure.database.pool import create_pool, create_pool_from_settings
from jdy_sync.infrastructure.database.source_repository import PostgresRecordSource
from jdy_sync.infrastructure.database.watermark_repository import PostgresWatermarkStore
from jdy_sync.infrastructure.external.jiandaoyun import (
    JiandaoyunClient,
    JiandaoyunCredentials,
    JiandaoyunForm,
)
from jdy_sync.infrastructure.extraction import ProductInfoExtractor
from jdy_sync.shared.exceptions import ConfigurationError
from jdy_sync.shared.utils.retry import RetryPolicy


class Pipeline(Protocol):
    def run_once(self) -> object: ...


@dataclass(frozen=True)
class EntitySyncConfig:
    """
    Configuracion de una entidad sincronizada hacia Jiandaoyun.

    Los nombres *_setting son atributos de Settings (ruta del mapeo, app_id y
    entry_id del formulario destino).
    """

    name: str
    table: str
    mapping_setting: str
    app_id_setting: str
    entry_id_setting: str
    natural_key_fields: Tuple[str, ...]
    business_fold: bool = False
    excluded_prefixes: Tuple[str, ...] = ()
    date_fields: Tuple[str, ...] = ()
    timestamp_fields: Tuple[str, ...] = ()
    sub_tables: Tuple[SubTableSource, ...] = ()
    release_rule: Optional[ReleaseRule] = None
    suppressed_fields: Tuple[str, ...] = ()
    extract_attributes: bool = False
    pending: bool = False
    excluded_fields: frozenset[str] = field(default=DEFAULT_FINGERPRINT_EXCLUDED)


_ORDER_RELEASE = ReleaseRule()

ORDERS = EntitySyncConfig(
    name="orders",
    table="oms_order",
    mapping_setting="FIELD_MAPPING_PATH",
    app_id_setting="JDY_APP_ID",
    entry_id_setting="JDY_ORDER_ENTRY_ID",
    natural_key_fields=("job_num",),
    business_fold=True,
    excluded_prefixes=("_widget_",),
    date_fields=(
        "work_required_date",
        "pmc_reply_date",
        "work_start_date",
        "work_end_date",
        "plan_finish_date",
        "factory_delivery_date",
    ),
    timestamp_fields=("job_last_update_date", "po_last_update_date"),
    sub_tables=(
        SubTableSource("requireComponentList", "oms_require_component", "order_id"),
        SubTableSource("testProcessSchemeList", "oms_test_process_scheme", "order_id"),
        SubTableSource("waferDcList", "oms_wafer_dc", "order_id"),
    ),
    release_rule=_ORDER_RELEASE,
    # Fecha de liberacion y codigo de secuencia solo se escriben al crear
    suppressed_fields=(_ORDER_RELEASE.release_date_widget, _ORDER_RELEASE.sequence_widget),
    extract_attributes=True,
)

ITEMS = EntitySyncConfig(
    name="items",
    table="oms_job_item_info",
    mapping_setting="ITEM_FIELD_MAPPING_PATH",
    app_id_setting="JDY_APP_ID",
    entry_id_setting="JDY_ITEM_ENTRY_ID",
    natural_key_fields=("job_num", "item_number", "item_classification"),
)

DELIVERY_NOTICES = EntitySyncConfig(
    name="delivery_notices",
    table="po_delivery_notice",
    mapping_setting="DELIVERY_FIELD_MAPPING_PATH",
    app_id_setting="JDY_APP_ID",
    entry_id_setting="JDY_DELIVERY_ENTRY_ID",
    natural_key_fields=("asn_num",),
    date_fields=("tran_date", "create_date", "delivery_date"),
    sub_tables=(SubTableSource("delivery_details", "po_delivery_notice_detail", "notice_id"),),
)

DM_PUSH = EntitySyncConfig(
    name="dm_push",
    table="dm_order",
    mapping_setting="DM_FIELD_MAPPING_PATH",
    app_id_setting="DM_JDY_APP_ID",
    entry_id_setting="DM_JDY_ENTRY_ID",
    natural_key_fields=("order_no",),
    timestamp_fields=("submit_time", "modify_time"),
    sub_tables=(SubTableSource("order_details", "dm_order_detail", "order_id"),),
    pending=True,
    # Columnas de control de la propia sincronizacion
    excluded_fields=DEFAULT_FINGERPRINT_EXCLUDED
    | {"sync_status", "sync_operation", "sync_attempts", "sync_error", "last_sync_time", "updated_time"},
)

ENTITY_CONFIGS: Dict[str, EntitySyncConfig] = {
    c.name: c for c in (ORDERS, ITEMS, DELIVERY_NOTICES, DM_PUSH)
}
DM_PULL = DM_PULL_ENTITY
PIPELINE_NAMES: Tuple[str, ...] = ("orders", "items", "delivery_notices", DM_PULL, "dm_push")


def _required(settings: Settings, name: str) -> str:
    value = getattr(settings, name, "")
    if not value:
        raise ConfigurationError(f"Falta variable de entorno obligatoria: {name}", setting=name)
    return value


def retry_policy_from_settings(settings: Settings) -> RetryPolicy:
    return RetryPolicy(max_attempts=settings.SYNC_MAX_RETRY, delay_s=settings.SYNC_RETRY_INTERVAL_S)


class PipelineFactory:
    """
    Construye pipelines compartiendo pool, cliente HTTP y watermark store.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        pool: Optional[ConnectionPool] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings
        self._pool = pool
        self._session = session
        self._client: Optional[JiandaoyunClient] = None
        self._retry = retry_policy_from_settings(settings)

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = create_pool_from_settings(self._settings)
        return self._pool

    def client(self) -> JiandaoyunClient:
        if self._client is None:
            token = _required(self._settings, "JDY_API_TOKEN")
            self._client = JiandaoyunClient(
                JiandaoyunCredentials(token=token, base_url=self._settings.JDY_BASE_URL),
                session=self._session,
                connect_timeout_s=self._settings.JDY_CONNECT_TIMEOUT_S,
                read_timeout_s=self._settings.JDY_READ_TIMEOUT_S,
            )
        return self._client

    def suppressed_fields(self, config: EntitySyncConfig) -> Tuple[str, ...]:
        configured = self._settings.update_suppressed_fields()
        if configured is None:
            return config.suppressed_fields
        if config.release_rule is None:
            logger.warning(
                f"SYNC_UPDATE_SUPPRESSED_FIELDS se ignora para '{config.name}': "
                f"la entidad no tiene campos de solo-create"
            )
            return config.suppressed_fields
        # El codigo de secuencia nunca se reescribe en un update
        return tuple(dict.fromkeys([*configured, config.release_rule.sequence_widget]))

    def build(self, name: str) -> Pipeline:
        if name == DM_PULL:
            return self._build_dm_pull()
        config = ENTITY_CONFIGS.get(name)
        if config is None:
            raise ConfigurationError(f"Pipeline desconocido: {name}. Opciones: {', '.join(PIPELINE_NAMES)}")
        return self._build_entity(config)

    def _build_entity(self, config: EntitySyncConfig) -> Pipeline:
        settings = self._settings
        app_id = _required(settings, config.app_id_setting)
        entry_id = _required(settings, config.entry_id_setting)
        mapping = load_field_mapping(getattr(settings, config.mapping_setting))

        sink = JiandaoyunForm(self.client(), app_id, entry_id, start_workflow=settings.JDY_START_WORKFLOW)
        if config.pending:
            source = PostgresPendingRepository(
                self.pool,
                config.table,
                max_attempts=settings.DM_MAX_SYNC_ATTEMPTS,
                error_max_length=settings.SYNC_ERROR_MAX_LENGTH,
            )
        else:
            source = PostgresRecordSource(self.pool, config.table)

        transformer = Transformer(
            mapping,
            source,
            natural_key_fields=config.natural_key_fields,
            date_fields=config.date_fields,
            timestamp_fields=config.timestamp_fields,
            sub_tables=config.sub_tables,
            attribute_extractor=ProductInfoExtractor() if config.extract_attributes else None,
            release_rule=config.release_rule,
            suppressed_fields=self.suppressed_fields(config),
        )
        deduplicator = Deduplicator(
            excluded_fields=config.excluded_fields,
            excluded_prefixes=config.excluded_prefixes,
            business_key_fields=config.natural_key_fields if config.business_fold else (),
        )
        common = dict(
            deduplicator=deduplicator,
            transformer=transformer,
            reconciler=Reconciler(sink, self._retry),
            delivery=DeliveryEngine(
                sink,
                self._retry,
                ledger=source if config.pending else None,
                create_batch_size=settings.SYNC_CREATE_BATCH_SIZE,
            ),
            max_batch_size=settings.SYNC_MAX_BATCH_SIZE,
            delayed_update_wait_s=settings.SYNC_DELAYED_UPDATE_WAIT_S,
        )

        logger.info(f"Pipeline '{config.name}' listo: {config.table} -> {sink!r}")
        if config.pending:
            return PendingSyncDriver(
                config.name, source=source, ledger=source, retry_policy=self._retry, **common
            )
        return IncrementalSyncDriver(
            config.name,
            watermark_store=PostgresWatermarkStore(self.pool),
            extractor=Extractor(source, self._retry),
            **common,
        )

    def _build_dm_pull(self) -> Pipeline:
        remote_dsn = _required(self._settings, "DM_REMOTE_DATABASE_URL")
        remote_pool = create_pool(remote_dsn, min_size=1, max_size=2, name="dm-remote")
        return DmPullUseCase(
            remote=DmRemoteRepository(remote_pool),
            local=DmLocalRepository(self.pool),
            watermark_store=PostgresWatermarkStore(self.pool),
            retry_policy=self._retry,
            batch_size=self._settings.SYNC_MAX_BATCH_SIZE,
        )


def build_pipelines(
    settings: Settings,
    names: Sequence[str],
    *,
    pool: Optional[ConnectionPool] = None,
    session: Optional[requests.Session] = None,
) -> Dict[str, Pipeline]:
    """
    Construye los pipelines pedidos. Falla al arrancar (ConfigurationError)
    si falta un mapeo, una credencial o un app/entry id.
    """
    factory = PipelineFactory(settings, pool=pool, session=session)
    return {name: factory.build(name) for name in names}
