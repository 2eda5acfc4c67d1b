"""
Tests unitarios para scripts/jdy_sync_job.py (sin base de datos ni red).
"""
from __future__ import annotations

import importlib.util
from pathlib import Path
from unittest.mock import Mock

import pytest

from jdy_sync.core.config import Settings
from jdy_sync.shared.exceptions import ConfigurationError

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "jdy_sync_job.py"


@pytest.fixture
def job(monkeypatch: pytest.MonkeyPatch):
    spec = importlib.util.spec_from_file_location("jdy_sync_job", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    pool = Mock()
    monkeypatch.setattr(module, "Settings", lambda: Settings(_env_file=None))
    monkeypatch.setattr(module, "configure_logging", lambda _settings: None)
    monkeypatch.setattr(module, "create_pool_from_settings", lambda _settings: pool)
    monkeypatch.setattr(module, "PostgresWatermarkStore", Mock())
    module.test_pool = pool
    return module


def test_schema_only_prints_ddl(job, capsys: pytest.CaptureFixture[str]) -> None:
    assert job.main(["--schema-only"]) == 0
    assert "sync_watermark" in capsys.readouterr().out


def test_configuration_error_closes_pool(job, monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(*_args, **_kwargs):
        raise ConfigurationError("Falta variable de entorno obligatoria: JDY_API_TOKEN")

    monkeypatch.setattr(job, "build_pipelines", fail)

    assert job.main(["run", "items"]) == 1
    job.test_pool.close.assert_called_once()


def test_single_pass(job, monkeypatch: pytest.MonkeyPatch) -> None:
    pipeline = Mock()
    pipeline.run_once.return_value = "resumen"
    monkeypatch.setattr(job, "build_pipelines", lambda *_a, **_k: {"items": pipeline})

    assert job.main(["run", "items"]) == 0
    pipeline.run_once.assert_called_once()
    job.test_pool.close.assert_called_once()


def test_invalid_dsn_does_not_build_pipelines(job, monkeypatch: pytest.MonkeyPatch) -> None:
    def bad_dsn(_settings):
        raise ConfigurationError("El DSN debe apuntar a Postgres")

    build = Mock()
    monkeypatch.setattr(job, "create_pool_from_settings", bad_dsn)
    monkeypatch.setattr(job, "build_pipelines", build)

    assert job.main(["run", "orders"]) == 1
    build.assert_not_called()
