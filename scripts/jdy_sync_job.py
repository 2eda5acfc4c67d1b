"""
CLI: Postgres -> Jiandaoyun (sincronizacion incremental).

Uso recomendado:
  - `run` como job puntual (cron/systemd timer) para una entidad.
  - `schedule` como proceso de larga vida: un thread por pipeline, cada
    SYNC_INTERVAL_MINUTES minutos.

Variables de entorno requeridas (segun el pipeline):
  - DATABASE_URL (o DATABASE_HOST/PORT/USER/PASSWORD/NAME)
  - JDY_API_TOKEN, JDY_APP_ID y el entry id de cada formulario
  - DM_REMOTE_DATABASE_URL (solo dm_pull)

Ejecucion:
  python scripts/jdy_sync_job.py run orders
  python scripts/jdy_sync_job.py schedule
  python scripts/jdy_sync_job.py schedule --only orders items
  python scripts/jdy_sync_job.py --schema-only
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin instalar el paquete.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

load_dotenv(_REPO_ROOT / ".env", override=False)

from jdy_sync.application.use_cases.pipeline_runner import (
    PipelineLockManager,
    PipelineScheduler,
    run_pass,
)
from jdy_sync.application.use_cases.pipelines import PIPELINE_NAMES, build_pipelines
from jdy_sync.core.config import Settings
from jdy_sync.core.logging import configure_logging
from jdy_sync.infrastructure.database import read_schema_sql
from jdy_sync.infrastructure.database.pool import create_pool_from_settings
from jdy_sync.infrastructure.database.watermark_repository import PostgresWatermarkStore
from jdy_sync.shared.exceptions import ConfigurationError, WatermarkError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sincronizacion Postgres -> Jiandaoyun")
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Solo imprime el DDL recomendado (no ejecuta sync).",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Ejecuta una sola pasada de una entidad.")
    run.add_argument("entity", choices=PIPELINE_NAMES)

    schedule = sub.add_parser("schedule", help="Ejecuta los pipelines periodicamente.")
    schedule.add_argument(
        "--only",
        nargs="+",
        choices=PIPELINE_NAMES,
        default=None,
        help="Subconjunto de pipelines (default: todos).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.schema_only:
        print(read_schema_sql())
        return 0
    if args.command is None:
        parser.print_help()
        return 2

    settings = Settings()
    configure_logging(settings)

    names = [args.entity] if args.command == "run" else list(args.only or PIPELINE_NAMES)
    try:
        pool = create_pool_from_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Configuracion invalida: {e.message}")
        return 1

    try:
        try:
            PostgresWatermarkStore(pool).ensure_table()
            pipelines = build_pipelines(settings, names, pool=pool)
        except (ConfigurationError, WatermarkError) as e:
            logger.error(f"Configuracion invalida: {e.message}")
            return 1

        if args.command == "run":
            logger.info(f"Iniciando pasada unica: {args.entity}")
            summary = run_pass(args.entity, pipelines[args.entity], PipelineLockManager())
            return 0 if summary is not None else 1

        logger.info(
            f"Iniciando scheduler: {', '.join(names)} "
            f"(cada {settings.SYNC_INTERVAL_MINUTES} min)"
        )
        PipelineScheduler(pipelines, interval_s=settings.SYNC_INTERVAL_MINUTES * 60).run_forever()
        return 0
    finally:
        pool.close()


if __name__ == "__main__":
    raise SystemExit(main())
