# -*- coding: utf-8 -*-
"""
Configuración de la sincronización
Se construye una sola vez desde variables de entorno (y .env) y se pasa
explícitamente a cada componente
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

FEED_FORMATS = ('csv', 'json')


class ConfigError(Exception):
    """Configuración inválida"""
    pass


@dataclass(frozen=True)
class FeedSource:
    """Fuente del feed, en orden de prioridad"""
    name: str
    url: str
    format: str = 'csv'
    delimiter: str = ';'
    json_field: str = 'products'
    timeout: float = 60.0

    def __post_init__(self):
        if self.format not in FEED_FORMATS:
            raise ConfigError(f"Unsupported feed format '{self.format}' for source {self.name}")
        if not isinstance(self.delimiter, str) or len(self.delimiter) != 1:
            raise ConfigError(
                f"CSV delimiter for source {self.name} must be a single character, "
                f"got {self.delimiter!r}"
            )
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) \
                or self.timeout <= 0:
            raise ConfigError(
                f"Timeout for source {self.name} must be a positive number, got {self.timeout!r}"
            )


@dataclass(frozen=True)
class DestinationConfig:
    """Credenciales y URL del catálogo destino"""
    base_url: str
    api_token: str = ''
    timeout: float = 30.0
    health_path: str = '/health'


@dataclass(frozen=True)
class SyncPolicy:
    """
    Política de negocio y de ejecución de una corrida

    Los umbrales de precio se comparan siempre contra el precio ya
    multiplicado.
    """
    price_multiplier: Decimal = Decimal('1')
    min_price: Decimal = Decimal('0')

    require_images: bool = False
    check_image_urls: bool = False
    image_max_bytes: int = 5 * 1024 * 1024
    image_timeout: float = 5.0
    allowed_image_hosts: Tuple[str, ...] = ()

    batch_size: int = 5
    call_interval: float = 0.25
    batch_pause: float = 2.0
    batch_jitter: float = 1.0

    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0

    log_capacity: int = 200
    error_capacity: int = 50

    category_map: Dict[str, int] = field(default_factory=dict)
    default_category_id: Optional[int] = None


@dataclass(frozen=True)
class SchedulerConfig:
    enabled: bool = False
    cron: str = '0 */6 * * *'


@dataclass(frozen=True)
class Settings:
    sources: Tuple[FeedSource, ...]
    destination: DestinationConfig
    policy: SyncPolicy
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


# ========== Lectura de Variables ==========
def _get_str(name: str, default: str = '') -> str:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


def _get_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name)
    try:
        return Decimal((raw or default).strip())
    except InvalidOperation:
        _logger.warning(f"Invalid decimal for {name}: {raw!r}, using {default}")
        return Decimal(default)


def _get_json(name: str, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"{name} is not valid JSON: {e}")


def _load_sources() -> List[FeedSource]:
    """
    Construye la lista priorizada de fuentes

    FEED_SOURCES (lista JSON) tiene precedencia sobre las variables
    FEED_PRIMARY_* / FEED_SECONDARY_*.
    """
    default_delimiter = _get_str('FEED_CSV_DELIMITER', ';')
    default_field = _get_str('FEED_JSON_FIELD', 'products')
    default_timeout = _get_float('FEED_TIMEOUT', 60.0)

    raw_sources = _get_json('FEED_SOURCES', None)
    if raw_sources is not None:
        if not isinstance(raw_sources, list):
            raise ConfigError('FEED_SOURCES must be a JSON list')
        sources = []
        for index, item in enumerate(raw_sources, start=1):
            if not isinstance(item, dict) or not item.get('url'):
                raise ConfigError(f"FEED_SOURCES entry {index} must be an object with 'url'")
            try:
                timeout = float(item.get('timeout', default_timeout))
            except (TypeError, ValueError):
                raise ConfigError(
                    f"FEED_SOURCES entry {index} has invalid timeout: {item.get('timeout')!r}"
                )
            sources.append(FeedSource(
                name=item.get('name') or f'source_{index}',
                url=item['url'],
                format=str(item.get('format', 'csv')).lower(),
                delimiter=item.get('delimiter', default_delimiter),
                json_field=item.get('json_field', default_field),
                timeout=timeout,
            ))
        return sources

    sources = []
    for rank in ('PRIMARY', 'SECONDARY'):
        url = _get_str(f'FEED_{rank}_URL')
        if not url:
            continue
        sources.append(FeedSource(
            name=rank.lower(),
            url=url,
            format=_get_str(f'FEED_{rank}_FORMAT', 'csv').lower(),
            delimiter=default_delimiter,
            json_field=default_field,
            timeout=default_timeout,
        ))
    return sources


def _load_category_map() -> Dict[str, int]:
    raw = _get_json('CATEGORY_MAP', {})
    if not isinstance(raw, dict):
        raise ConfigError('CATEGORY_MAP must be a JSON object')
    try:
        return {str(k): int(v) for k, v in raw.items()}
    except (TypeError, ValueError) as e:
        raise ConfigError(f"CATEGORY_MAP values must be integers: {e}")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Carga la configuración desde el entorno

    Args:
        env_file: Ruta opcional a un archivo .env (por defecto se busca .env)

    Returns:
        Settings: Configuración inmutable
    """
    load_dotenv(env_file, override=False)

    hosts = _get_str('IMAGE_ALLOWED_HOSTS')
    default_category = _get_str('DEFAULT_CATEGORY_ID')

    policy = SyncPolicy(
        price_multiplier=_get_decimal('PRICE_MULTIPLIER', '1'),
        min_price=_get_decimal('MIN_PRICE', '0'),
        require_images=_get_bool('REQUIRE_IMAGES', False),
        check_image_urls=_get_bool('CHECK_IMAGE_URLS', False),
        image_max_bytes=max(1, _get_int('IMAGE_MAX_BYTES', 5 * 1024 * 1024)),
        image_timeout=max(0.5, _get_float('IMAGE_CHECK_TIMEOUT', 5.0)),
        allowed_image_hosts=tuple(h.strip().lower() for h in hosts.split(',') if h.strip()),
        batch_size=max(1, _get_int('BATCH_SIZE', 5)),
        call_interval=max(0.0, _get_float('CALL_INTERVAL_SECONDS', 0.25)),
        batch_pause=max(0.0, _get_float('BATCH_PAUSE_SECONDS', 2.0)),
        batch_jitter=max(0.0, _get_float('BATCH_JITTER_SECONDS', 1.0)),
        max_retries=max(1, _get_int('MAX_RETRIES', 5)),
        retry_base_delay=max(0.0, _get_float('RETRY_BASE_DELAY', 1.0)),
        retry_max_delay=max(0.0, _get_float('RETRY_MAX_DELAY', 60.0)),
        log_capacity=max(1, _get_int('LOG_CAPACITY', 200)),
        error_capacity=max(0, _get_int('ERROR_CAPACITY', 50)),
        category_map=_load_category_map(),
        default_category_id=int(default_category) if default_category.isdigit() else None,
    )

    destination = DestinationConfig(
        base_url=_get_str('DESTINATION_BASE_URL', 'http://localhost:8000'),
        api_token=_get_str('DESTINATION_API_TOKEN'),
        timeout=max(1.0, _get_float('DESTINATION_TIMEOUT', 30.0)),
        health_path=_get_str('DESTINATION_HEALTH_PATH', '/health'),
    )

    scheduler = SchedulerConfig(
        enabled=_get_bool('SYNC_SCHEDULE_ENABLED', False),
        cron=_get_str('SYNC_CRON', '0 */6 * * *'),
    )

    return Settings(
        sources=tuple(_load_sources()),
        destination=destination,
        policy=policy,
        scheduler=scheduler,
    )


def missing_required_settings(env_file: Optional[str] = None) -> List[str]:
    """Variables requeridas que no están definidas"""
    load_dotenv(env_file, override=False)
    missing = [
        name for name in ('DESTINATION_BASE_URL', 'DESTINATION_API_TOKEN')
        if not _get_str(name)
    ]
    if not (_get_str('FEED_SOURCES') or _get_str('FEED_PRIMARY_URL')
            or _get_str('FEED_SECONDARY_URL')):
        missing.append('FEED_PRIMARY_URL')
    return missing
