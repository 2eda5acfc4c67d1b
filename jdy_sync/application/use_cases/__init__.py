"""
Casos de uso: drivers de sincronizacion, pull DM y ejecucion periodica.
"""
from jdy_sync.application.use_cases.sync_driver import (
    BaseSyncDriver,
    IncrementalSyncDriver,
    PendingSyncDriver,
    SyncPhase,
)
from jdy_sync.application.use_cases.dm_pull import DM_PULL_ENTITY, DmPullUseCase, PullSummary
from jdy_sync.application.use_cases.pipelines import (
    ENTITY_CONFIGS,
    PIPELINE_NAMES,
    EntitySyncConfig,
    PipelineFactory,
    build_pipelines,
)
from jdy_sync.application.use_cases.pipeline_runner import (
    PipelineLockManager,
    PipelineScheduler,
    run_pass,
)

__all__ = [
    # Drivers
    "BaseSyncDriver",
    "IncrementalSyncDriver",
    "PendingSyncDriver",
    "SyncPhase",
    # Pull DM
    "DM_PULL_ENTITY",
    "DmPullUseCase",
    "PullSummary",
    # Armado y ejecucion
    "ENTITY_CONFIGS",
    "PIPELINE_NAMES",
    "EntitySyncConfig",
    "PipelineFactory",
    "build_pipelines",
    "PipelineLockManager",
    "PipelineScheduler",
    "run_pass",
]
