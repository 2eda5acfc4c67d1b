"""
Acceso a Postgres (psycopg 3): pool, watermarks, tablas origen y tablas DM.
"""
from pathlib import Path

SCHEMA_SQL_PATH = Path(__file__).with_name("schema.sql")


def read_schema_sql() -> str:
    return SCHEMA_SQL_PATH.read_text(encoding="utf-8")
