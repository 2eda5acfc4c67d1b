"""
Extraccion de atributos derivados desde texto libre.
"""
from jdy_sync.infrastructure.extraction.product_info import ProductInfoExtractor

__all__ = ["ProductInfoExtractor"]
