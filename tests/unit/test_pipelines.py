"""
Tests unitarios para el armado de pipelines (PipelineFactory / build_pipelines).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest
from loguru import logger

from jdy_sync.application.use_cases import pipelines as pipelines_module
from jdy_sync.application.use_cases.dm_pull import DmPullUseCase
from jdy_sync.application.use_cases.pipelines import (
    ENTITY_CONFIGS,
    PIPELINE_NAMES,
    PipelineFactory,
    build_pipelines,
)
from jdy_sync.application.use_cases.sync_driver import IncrementalSyncDriver, PendingSyncDriver
from jdy_sync.core.config import Settings
from jdy_sync.shared.exceptions import ConfigurationError

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def _settings(**overrides) -> Settings:
    values = dict(
        JDY_API_TOKEN="token",
        JDY_APP_ID="app",
        JDY_ORDER_ENTRY_ID="orders-entry",
        JDY_ITEM_ENTRY_ID="items-entry",
        JDY_DELIVERY_ENTRY_ID="delivery-entry",
        DM_JDY_APP_ID="dm-app",
        DM_JDY_ENTRY_ID="dm-entry",
        FIELD_MAPPING_PATH=str(CONFIG_DIR / "field_mapping.json"),
        ITEM_FIELD_MAPPING_PATH=str(CONFIG_DIR / "item_field_mapping.json"),
        DELIVERY_FIELD_MAPPING_PATH=str(CONFIG_DIR / "po_delivery_notice_field_mapping.json"),
        DM_FIELD_MAPPING_PATH=str(CONFIG_DIR / "dm_field_mapping.json"),
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestBuildPipelines:
    def test_all_sink_pipelines_are_built(self) -> None:
        names = [n for n in PIPELINE_NAMES if n != "dm_pull"]

        built = build_pipelines(_settings(), names, pool=Mock(), session=Mock())

        assert set(built) == set(names)
        assert isinstance(built["orders"], IncrementalSyncDriver)
        assert isinstance(built["items"], IncrementalSyncDriver)
        assert isinstance(built["delivery_notices"], IncrementalSyncDriver)
        assert isinstance(built["dm_push"], PendingSyncDriver)
        assert built["orders"].entity == "orders"

    def test_missing_token_fails_at_startup(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            build_pipelines(_settings(JDY_API_TOKEN=""), ["items"], pool=Mock())
        assert "JDY_API_TOKEN" in exc_info.value.message

    def test_missing_entry_id_fails_at_startup(self) -> None:
        with pytest.raises(ConfigurationError):
            build_pipelines(_settings(JDY_ITEM_ENTRY_ID=""), ["items"], pool=Mock())

    def test_missing_mapping_file_fails_at_startup(self, tmp_path: Path) -> None:
        settings = _settings(ITEM_FIELD_MAPPING_PATH=str(tmp_path / "no_existe.json"))

        with pytest.raises(ConfigurationError):
            build_pipelines(settings, ["items"], pool=Mock())

    def test_mapping_without_natural_key_widget_fails(self, tmp_path: Path) -> None:
        mapping = tmp_path / "items.json"
        mapping.write_text(json.dumps({"main_fields": {"job_num": "_widget_1"}}), encoding="utf-8")

        with pytest.raises(ConfigurationError):
            build_pipelines(_settings(ITEM_FIELD_MAPPING_PATH=str(mapping)), ["items"], pool=Mock())

    def test_unknown_pipeline(self) -> None:
        with pytest.raises(ConfigurationError):
            build_pipelines(_settings(), ["clientes"], pool=Mock())

    def test_dm_pull_requires_remote_url(self) -> None:
        with pytest.raises(ConfigurationError):
            build_pipelines(_settings(), ["dm_pull"], pool=Mock())

    def test_dm_pull_opens_its_own_remote_pool(self, monkeypatch: pytest.MonkeyPatch) -> None:
        create_pool = Mock()
        monkeypatch.setattr(pipelines_module, "create_pool", create_pool)

        built = build_pipelines(
            _settings(DM_REMOTE_DATABASE_URL="postgresql://remoto/dm"), ["dm_pull"], pool=Mock()
        )

        assert isinstance(built["dm_pull"], DmPullUseCase)
        assert create_pool.call_args.args == ("postgresql://remoto/dm",)


class TestSuppressedFields:
    def test_defaults_per_entity(self) -> None:
        factory = PipelineFactory(_settings(), pool=Mock())

        assert factory.suppressed_fields(ENTITY_CONFIGS["orders"]) == (
            "_widget_1748238705999",
            "_widget_1748317817210",
        )
        assert factory.suppressed_fields(ENTITY_CONFIGS["items"]) == ()

    def test_override_only_applies_to_released_entities(self) -> None:
        factory = PipelineFactory(
            _settings(SYNC_UPDATE_SUPPRESSED_FIELDS='["_widget_a", "_widget_b"]'), pool=Mock()
        )

        assert factory.suppressed_fields(ENTITY_CONFIGS["orders"]) == (
            "_widget_a",
            "_widget_b",
            "_widget_1748317817210",
        )
        assert factory.suppressed_fields(ENTITY_CONFIGS["items"]) == ()

    def test_dropped_override_is_logged(self) -> None:
        factory = PipelineFactory(_settings(SYNC_UPDATE_SUPPRESSED_FIELDS="_widget_a"), pool=Mock())
        messages: List[str] = []
        sink_id = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            factory.suppressed_fields(ENTITY_CONFIGS["items"])
        finally:
            logger.remove(sink_id)

        assert any("SYNC_UPDATE_SUPPRESSED_FIELDS" in m and "items" in m for m in messages)


def test_retry_policy_follows_settings() -> None:
    policy = pipelines_module.retry_policy_from_settings(
        _settings(SYNC_MAX_RETRY=4, SYNC_RETRY_INTERVAL_S=0.5)
    )

    assert policy.max_attempts == 4
    assert policy.delay_s == 0.5
