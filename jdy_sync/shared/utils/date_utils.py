"""
Formateo de fechas y timestamps al formato que espera Jiandaoyun.

Formatos fijos:
- fecha:     yyyy-MM-dd           (%Y-%m-%d)
- timestamp: yyyy-MM-dd HH:mm:ss  (%Y-%m-%d %H:%M:%S)

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Formato que a veces llega de SQL Server como texto: "03 29 2025 3:53PM"
_US_TIMESTAMP_RE = re.compile(r"^\d{2}\s+\d{2}\s+\d{4}\s+\d{1,2}:\d{2}(AM|PM|am|pm)$")


def _parse_iso_datetime(value: str) -> datetime:
    # fromisoformat no acepta mas de 6 decimales (SQL Server da 7)
    normalized = value.replace(" ", "T", 1).replace("Z", "+00:00")
    if "." in normalized:
        head, frac = normalized.split(".", 1)
        digits = re.match(r"\d+", frac)
        if digits:
            rest = frac[digits.end():]
            normalized = f"{head}.{digits.group(0)[:6].ljust(6, '0')}{rest}"
    return datetime.fromisoformat(normalized)


def format_date_value(value: Any) -> str:
    """
    Formatea un valor "tipo fecha" como yyyy-MM-dd.

    - None -> ""
    - date/datetime -> yyyy-MM-dd
    - str con ':' -> se parsea como datetime; sin ':' -> como date
    - str no parseable -> primeros 10 caracteres (o el string completo si es corto)
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, str):
        raw = value.strip()
        try:
            if ":" in raw:
                return _parse_iso_datetime(raw).strftime(DATE_FORMAT)
            return date.fromisoformat(raw).strftime(DATE_FORMAT)
        except ValueError:
            return raw[:10] if len(raw) >= 10 else raw
    return str(value)


def format_timestamp_value(value: Any) -> str:
    """
    Formatea un valor "tipo timestamp" como yyyy-MM-dd HH:mm:ss.

    Strings aceptados: ISO8601, "MM dd yyyy h:mmAM" y "MM dd yyyy ..." (solo
    fecha, hora 00:00:00). Si nada parsea se devuelve el string original.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT) + " 00:00:00"
    if not isinstance(value, str):
        return str(value)

    raw = value.strip()
    try:
        return _parse_iso_datetime(raw).strftime(DATETIME_FORMAT)
    except ValueError:
        pass

    if _US_TIMESTAMP_RE.match(raw):
        try:
            parsed = datetime.strptime(" ".join(raw.split()).upper(), "%m %d %Y %I:%M%p")
            return parsed.strftime(DATETIME_FORMAT)
        except ValueError:
            pass

    parts = raw.split()
    if len(parts) >= 3:
        try:
            parsed_date = datetime.strptime(" ".join(parts[:3]), "%m %d %Y").date()
            return parsed_date.strftime(DATE_FORMAT) + " 00:00:00"
        except ValueError:
            pass

    return raw
