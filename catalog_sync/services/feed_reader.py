# -*- coding: utf-8 -*-
"""
Lectura del feed del proveedor
Prueba las fuentes en orden de prioridad y devuelve los registros de la
primera que responda y se pueda parsear
"""

import csv
import io
import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import requests

from ..config import FeedSource
from ..models.product import RawRecord

_logger = logging.getLogger(__name__)

# Cabeceras descriptivas del proveedor -> nombre canónico del campo.
# Las claves se comparan ya pasadas por `slugify`.
HEADER_TRANSLATION = {
    'codigo': 'sku',
    'codigo_producto': 'sku',
    'referencia': 'sku',
    'product_code': 'sku',
    'item_code': 'sku',
    'nombre': 'name',
    'nombre_producto': 'name',
    'descripcion_corta': 'name',
    'product_name': 'name',
    'title': 'name',
    'precio': 'price',
    'precio_neto': 'price',
    'precio_distribuidor': 'price',
    'net_price': 'price',
    'dealer_price': 'price',
    'existencias': 'stock',
    'disponible': 'stock',
    'cantidad': 'stock',
    'quantity': 'stock',
    'qty': 'stock',
    'descripcion': 'description',
    'descripcion_larga': 'description',
    'long_description': 'description',
    'categoria': 'category',
    'familia': 'category',
    'marca': 'brand',
    'fabricante': 'brand',
    'manufacturer': 'brand',
    'foto': 'photo_1',
    'foto_1': 'photo_1',
    'foto_2': 'photo_2',
    'foto_3': 'photo_3',
    'foto_4': 'photo_4',
    'foto_5': 'photo_5',
    'imagen': 'image',
    'imagen_principal': 'main_image',
}

# Al menos una de estas columnas (ya traducidas) debe existir para que el
# CSV se considere bien formado
SKU_COLUMNS = ('sku', 'code', 'reference', 'ref', 'id')

_CONTENT_TYPE_CONFLICTS = {
    'csv': ('application/json', 'text/html'),
    'json': ('text/csv', 'text/html'),
}


class FeedFormatError(Exception):
    """La respuesta de una fuente no tiene el formato esperado"""
    pass


class FeedUnavailable(Exception):
    """Ninguna fuente del feed pudo usarse"""

    def __init__(self, tried_sources: Sequence[str], errors: Sequence[str]):
        self.tried_sources = list(tried_sources)
        self.errors = list(errors)
        detail = '; '.join(
            f"{name}: {error}" for name, error in zip(self.tried_sources, self.errors)
        )
        super().__init__(f"All feed sources failed ({detail or 'no sources configured'})")


@dataclass(frozen=True)
class FeedResult:
    source: FeedSource
    records: List[RawRecord]


def slugify(header: str) -> str:
    """
    Slug determinista de una cabecera: minúsculas, sin acentos,
    no alfanuméricos -> '_'
    """
    text = unicodedata.normalize('NFKD', str(header)).encode('ascii', 'ignore').decode('ascii')
    text = re.sub(r'[^a-z0-9]+', '_', text.lower())
    return text.strip('_')


def translate_header(header: str) -> str:
    slug = slugify(header)
    return HEADER_TRANSLATION.get(slug, slug)


def parse_csv(text: str, delimiter: str = ';') -> List[RawRecord]:
    """
    Parsea un feed CSV

    Las cabeceras se traducen con HEADER_TRANSLATION; las desconocidas se
    conservan con su slug. Filas vacías o con más columnas que la cabecera
    se descartan.

    Raises:
        FeedFormatError: Si no hay cabecera de SKU, no hay filas válidas o
            el documento no es CSV parseable
    """
    text = text.lstrip('\ufeff')
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)

    try:
        try:
            header = next(reader)
        except StopIteration:
            raise FeedFormatError('Empty CSV document')

        columns = [translate_header(h) for h in header]
        if not any(c in SKU_COLUMNS for c in columns):
            raise FeedFormatError(f"CSV header has no SKU column: {header[:10]}")

        records = []
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            if len(row) > len(columns):
                _logger.debug(f"Skipping malformed CSV row with {len(row)} cells")
                continue
            record = {}
            for column, value in zip(columns, row):
                # Si dos cabeceras se traducen igual, gana la primera no vacía
                if column in record and record[column] not in (None, ''):
                    continue
                record[column] = value.strip()
            records.append(record)
    except csv.Error as e:
        raise FeedFormatError(f"Malformed CSV: {e}")

    if not records:
        raise FeedFormatError('CSV contains no valid rows')
    return records


def parse_json(payload, json_field: str = 'products') -> List[RawRecord]:
    """
    Extrae los registros del campo lista de un documento JSON

    Raises:
        FeedFormatError: Si falta el campo o no contiene objetos
    """
    if not isinstance(payload, dict) or not isinstance(payload.get(json_field), list):
        raise FeedFormatError(f"JSON document lacks top-level '{json_field}' array")

    records = [item for item in payload[json_field] if isinstance(item, dict)]
    if not records:
        raise FeedFormatError(f"JSON '{json_field}' array contains no objects")
    return records


class FeedReader:
    """
    Lector del feed con fallback entre fuentes

    Una fuente que falla (red, HTTP, formato) no es fatal: se registra y se
    prueba la siguiente. Solo si fallan todas se lanza FeedUnavailable.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', 'CatalogSync/1.0')

    def _check_content_type(self, source: FeedSource, response: requests.Response):
        content_type = (response.headers.get('Content-Type') or '').lower()
        for conflicting in _CONTENT_TYPE_CONFLICTS[source.format]:
            if conflicting in content_type:
                raise FeedFormatError(
                    f"Content-Type '{content_type}' contradicts expected {source.format}"
                )

    def read_source(self, source: FeedSource) -> List[RawRecord]:
        """
        Descarga y parsea una fuente

        Raises:
            requests.RequestException: Error de red o estado HTTP de error
            FeedFormatError: Respuesta mal formada
        """
        response = self.session.get(source.url, timeout=source.timeout)
        response.raise_for_status()
        self._check_content_type(source, response)

        if source.format == 'csv':
            if 'charset' not in (response.headers.get('Content-Type') or '').lower():
                response.encoding = 'utf-8'
            return parse_csv(response.text, delimiter=source.delimiter)

        try:
            payload = response.json()
        except ValueError as e:
            raise FeedFormatError(f"Invalid JSON document: {e}")
        return parse_json(payload, json_field=source.json_field)

    def fetch_feed(self, sources: Iterable[FeedSource]) -> FeedResult:
        """
        Obtiene el feed de la primera fuente válida

        Args:
            sources: Fuentes en orden de prioridad

        Returns:
            FeedResult con la fuente usada y sus registros

        Raises:
            FeedUnavailable: Si ninguna fuente pudo usarse
        """
        tried, errors = [], []

        for source in sources:
            tried.append(source.name)
            _logger.info(f"Fetching feed from {source.name} ({source.format}): {source.url}")
            try:
                records = self.read_source(source)
            except (requests.RequestException, FeedFormatError) as e:
                _logger.warning(f"Feed source {source.name} failed: {e}")
                errors.append(str(e))
                continue

            _logger.info(f"Feed source {source.name} returned {len(records)} records")
            return FeedResult(source=source, records=records)

        raise FeedUnavailable(tried, errors)

    def close(self):
        self.session.close()


def fetch_feed(sources: Iterable[FeedSource],
               session: Optional[requests.Session] = None) -> FeedResult:
    """Atajo: lee el feed con un FeedReader temporal"""
    reader = FeedReader(session)
    try:
        return reader.fetch_feed(sources)
    finally:
        if session is None:
            reader.close()
