# -*- coding: utf-8 -*-
"""
Normalización de registros del feed
Convierte un RawRecord de cualquier fuente en un CanonicalProduct
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence

from ..models.product import CanonicalProduct, RawRecord

# Alias aceptados por campo, en orden de precedencia.
# Las claves del registro se comparan en minúsculas.
SKU_KEYS = ('sku', 'code', 'product_code', 'codigo', 'reference', 'ref', 'id')
NAME_KEYS = ('name', 'title', 'product_name', 'nombre')
PRICE_KEYS = ('price', 'net_price', 'dealer_price', 'precio', 'cost')
STOCK_KEYS = ('stock', 'quantity', 'qty', 'available', 'existencias')
DESCRIPTION_KEYS = ('description', 'long_description', 'descripcion', 'details')
CATEGORY_KEYS = ('category', 'category_name', 'categoria', 'family')
BRAND_KEYS = ('brand', 'manufacturer', 'marca', 'vendor')
IMAGE_KEYS = (
    'main_image', 'image', 'image_url', 'photo',
    'photo_1', 'photo_2', 'photo_3', 'photo_4', 'photo_5',
    'image_1', 'image_2', 'image_3', 'image_4', 'image_5',
)
IMAGE_LIST_KEYS = ('images', 'gallery', 'photos')

_NUMERIC_JUNK = re.compile(r'[^0-9.,-]')


def _lowered(raw: RawRecord) -> dict:
    return {str(k).strip().lower(): v for k, v in raw.items()}


def _first(record: dict, keys: Sequence[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: Any) -> str:
    return '' if value is None else str(value).strip()


def parse_decimal(value: Any) -> Decimal:
    """
    Parsea un número de forma tolerante

    Se eliminan los caracteres fuera de [0-9.,-]. Si aparecen '.' y ',' el
    último es el separador decimal; una ',' sola se toma como decimal.
    Cualquier valor no parseable devuelve 0.
    """
    if value is None or isinstance(value, bool):
        return Decimal('0')
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return Decimal('0')
        return Decimal(str(value))

    text = _NUMERIC_JUNK.sub('', str(value))
    if not text:
        return Decimal('0')

    if ',' in text and '.' in text:
        if text.rfind(',') > text.rfind('.'):
            text = text.replace('.', '').replace(',', '.')
        else:
            text = text.replace(',', '')
    elif ',' in text:
        text = text.replace(',', '.')

    # Un '-' solo es válido al inicio
    negative = text.startswith('-')
    text = text.replace('-', '')
    if text.count('.') > 1:
        return Decimal('0')

    try:
        number = Decimal(text)
    except InvalidOperation:
        return Decimal('0')
    if not number.is_finite():
        return Decimal('0')
    return -number if negative else number


def sanitize_stock(value: Any) -> int:
    """
    Stock como entero no negativo

    Valores no numéricos, negativos o ausentes -> 0; los positivos se
    truncan hacia abajo (7.9 -> 7).
    """
    number = parse_decimal(value)
    if number <= 0:
        return 0
    return int(number)


def is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith(('http://', 'https://'))


def collect_images(record: dict) -> List[str]:
    """
    Recoge las URLs de imagen en orden de galería

    Solo se conservan cadenas no vacías con esquema http(s); los duplicados
    se eliminan manteniendo la primera aparición.
    """
    candidates: List[Any] = [record.get(key) for key in IMAGE_KEYS]
    for key in IMAGE_LIST_KEYS:
        value = record.get(key)
        if isinstance(value, (list, tuple)):
            candidates.extend(value)
        elif isinstance(value, str):
            candidates.extend(part for part in re.split(r'[|,\s]+', value))

    images = []
    for candidate in candidates:
        if isinstance(candidate, dict):
            candidate = candidate.get('url') or candidate.get('src')
        if not is_http_url(candidate):
            continue
        url = candidate.strip()
        if url not in images:
            images.append(url)
    return images


def normalize(raw: RawRecord) -> Optional[CanonicalProduct]:
    """
    Convierte un registro crudo en un CanonicalProduct

    Función pura: sin I/O ni efectos laterales.

    Args:
        raw: Registro tal como salió del parser

    Returns:
        CanonicalProduct, o None si el registro no tiene SKU
    """
    record = _lowered(raw)

    sku = _text(_first(record, SKU_KEYS))
    if not sku:
        return None

    return CanonicalProduct(
        sku=sku,
        name=_text(_first(record, NAME_KEYS)),
        raw_price=parse_decimal(_first(record, PRICE_KEYS)),
        stock=sanitize_stock(_first(record, STOCK_KEYS)),
        description=_text(_first(record, DESCRIPTION_KEYS)),
        category=_text(_first(record, CATEGORY_KEYS)),
        brand=_text(_first(record, BRAND_KEYS)),
        images=tuple(collect_images(record)),
    )


def normalize_all(records: Iterable[RawRecord]) -> List[Optional[CanonicalProduct]]:
    """Normaliza una secuencia de registros manteniendo el orden (None = descartado)"""
    return [normalize(raw) for raw in records]
