"""
Extraccion de atributos de producto desde texto libre de la orden.

Se combinan los campos de instrucciones de produccion en un solo texto y se
buscan con regex: VID/PID, fabricante, nombre de producto, sistema de
archivos y etiqueta de volumen (卷标). Lo que no se encuentra queda en "".
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Sequence

from jdy_sync.domain.entities import RawRecord
from jdy_sync.domain.repositories import IAttributeExtractor

MERGED_SOURCE_FIELDS: tuple[str, ...] = (
    "factory_product_instructions",
    "cutomized_work_remark",
    "production_requirements",
    "product_infomation",
)

WIDGET_MERGED_INFO = "_widget_1749429768338"
WIDGET_PRODUCT_TYPE = "_widget_1747712590429"
WIDGET_VOLUME_LABEL = "_widget_1750382988523"
WIDGET_VID = "_widget_1750382988528"
WIDGET_PID = "_widget_1750382988529"
WIDGET_VENDOR = "_widget_1750382988524"
WIDGET_PRODUCT_NAME = "_widget_1750382988526"
WIDGET_FILE_SYSTEM = "_widget_1750389457663"

_VID_PATTERNS = [
    re.compile(r"VID/PID[：:]\s*([A-Fa-f0-9]{4})/[A-Fa-f0-9]{4}", re.IGNORECASE),
    re.compile(r"VID[：:]\s*([A-Fa-f0-9]{3,4})(?![A-Fa-f0-9])", re.IGNORECASE),
]
_PID_PATTERNS = [
    re.compile(r"VID/PID[：:]\s*[A-Fa-f0-9]{4}/([A-Fa-f0-9]{4})", re.IGNORECASE),
    re.compile(r"PID[：:]\s*([A-Fa-f0-9]{3,4})(?![A-Fa-f0-9])", re.IGNORECASE),
]
_VENDOR_PATTERNS = [
    re.compile(r"Inquiry\s*-?\s*Vendor[：:]\s*([A-Za-z0-9 ]+?)(?=\s+Product|\s+Inquiry|\s*$)", re.IGNORECASE),
    re.compile(r"Vendor\s+Str[：:]\s*([A-Za-z0-9 ]+?)(?=\s+Product|\s+Inquiry|\s*Volume|\s*$)", re.IGNORECASE),
    re.compile(r"厂商名(?:&厂商信息)?[：:]\s*([一-龥A-Za-z0-9 ]+?)(?=\s*\d+\.|\s*产品名|\s*文件|[；;，。]|$)"),
]
_PRODUCT_PATTERNS = [
    re.compile(r"Inquiry\s*-?\s*product[：:]\s*([A-Za-z0-9 ]+?)(?=\s+Volume|\s+R/W|\s*$)", re.IGNORECASE),
    re.compile(r"Product\s+Str[：:]\s*([A-Za-z0-9 ]+?)(?=\s+Inquiry|\s+Volume|\s*$)", re.IGNORECASE),
    re.compile(r"产品名(?:&产品信息)?[：:]\s*([一-龥A-Za-z0-9 ]+?)(?=（|\s*\d+\.|\s*文件|[；;，。]|$)"),
]
_FILE_SYSTEM_PATTERN = re.compile(
    r"(?:File\s+system|文件系统|文件格式)[：:]\s*(FAT32|NTFS|exFAT|EXT4|FAT16)", re.IGNORECASE
)
_VOLUME_LABEL_PATTERN = re.compile(
    r"卷标[：:]\s*([一-龥A-Za-z0-9 +\-_./()（）]+?)(?=\s*(?:\d+\.|VID|PID|厂商|产品|文件|[；;，。])|$)"
)
_TRAILING_NOISE = re.compile(r"(?:\s*\d+\.|[，。；;]+)$")


def merge_product_info(record: RawRecord) -> str:
    """
    Une los textos de producto con '#', omitiendo los que ya estan contenidos
    en las instrucciones de fabrica.
    """
    base = record.text(MERGED_SOURCE_FIELDS[0])
    parts = [base] if base else []
    for name in MERGED_SOURCE_FIELDS[1:]:
        text = record.text(name)
        if text and text not in base and text not in parts:
            parts.append(text)
    return "#".join(parts)


def determine_product_type(category: Optional[str]) -> str:
    if not category:
        return ""
    upper = category.upper()
    # Orden de prioridad: MICRO SD contiene SD
    if "MICRO SD" in upper:
        return "TF"
    if "UPA" in upper:
        return "UPA"
    if "UDP" in upper:
        return "UDP"
    if "SD" in upper:
        return "SD"
    return ""


def _first_match(patterns: Sequence[re.Pattern], text: str) -> str:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            value = _TRAILING_NOISE.sub("", m.group(1).strip()).strip()
            if value:
                return value
    return ""


def _hex_id(patterns: Sequence[re.Pattern], text: str) -> str:
    raw = _first_match(patterns, text)
    cleaned = re.sub(r"[^A-F0-9]", "", raw.upper())
    return cleaned.zfill(4) if cleaned else ""


def extract_product_info(text: str) -> Dict[str, str]:
    result = {
        WIDGET_VID: "",
        WIDGET_PID: "",
        WIDGET_VENDOR: "",
        WIDGET_PRODUCT_NAME: "",
        WIDGET_FILE_SYSTEM: "",
        WIDGET_VOLUME_LABEL: "",
    }
    if not text or not text.strip():
        return result

    result[WIDGET_VID] = _hex_id(_VID_PATTERNS, text)
    result[WIDGET_PID] = _hex_id(_PID_PATTERNS, text)
    result[WIDGET_VENDOR] = _first_match(_VENDOR_PATTERNS, text)
    result[WIDGET_PRODUCT_NAME] = _first_match(_PRODUCT_PATTERNS, text)

    fs = _FILE_SYSTEM_PATTERN.search(text)
    if fs:
        value = fs.group(1)
        result[WIDGET_FILE_SYSTEM] = "exFAT" if value.lower() == "exfat" else value.upper()

    result[WIDGET_VOLUME_LABEL] = _first_match([_VOLUME_LABEL_PATTERN], text)
    return result


class ProductInfoExtractor(IAttributeExtractor):
    """Atributos derivados de las ordenes (oms_order)."""

    def extract(self, record: RawRecord) -> Dict[str, str]:
        merged = merge_product_info(record)
        attributes = {
            WIDGET_MERGED_INFO: merged,
            WIDGET_PRODUCT_TYPE: determine_product_type(record.text("product_category")),
        }
        attributes.update(extract_product_info(merged))
        return attributes
