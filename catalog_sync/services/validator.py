# -*- coding: utf-8 -*-
"""
Validación y transformación de productos
Aplica la política de precio, imágenes y stock a cada CanonicalProduct
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import requests

from ..config import SyncPolicy
from ..models.product import Accepted, CanonicalProduct, ReasonCode, Rejected
from .normalizer import is_http_url, sanitize_stock

_logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def compute_price(raw_price: Decimal, multiplier: Decimal) -> Decimal:
    """Precio de venta: raw_price × multiplicador, redondeado a 2 decimales"""
    return (Decimal(raw_price) * Decimal(multiplier)).quantize(CENTS, rounding=ROUND_HALF_UP)


class ImageProber:
    """
    Comprobación best-effort de que una URL sirve una imagen

    Cada candidata se prueba con HEAD y su propio timeout; se acepta si
    responde 2xx con Content-Type image/* y tamaño dentro del límite.
    """

    def __init__(self, policy: SyncPolicy, session: Optional[requests.Session] = None):
        self.timeout = policy.image_timeout
        self.max_bytes = policy.image_max_bytes
        self.session = session or requests.Session()

    def is_reachable(self, url: str) -> bool:
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            _logger.debug(f"Image probe failed for {url}: {e}")
            return False

        if not 200 <= response.status_code < 300:
            _logger.debug(f"Image probe {url}: status {response.status_code}")
            return False

        content_type = (response.headers.get('Content-Type') or '').lower()
        if not content_type.startswith('image/'):
            _logger.debug(f"Image probe {url}: content type '{content_type}'")
            return False

        length = response.headers.get('Content-Length')
        if length and length.isdigit() and int(length) > self.max_bytes:
            _logger.debug(f"Image probe {url}: {length} bytes exceeds limit")
            return False

        return True

    def filter_reachable(self, urls: Iterable[str]) -> List[str]:
        """Conserva, en orden, las URLs que pasan la comprobación"""
        return [url for url in urls if self.is_reachable(url)]

    def close(self):
        self.session.close()


class Validator:
    """
    Validador de productos

    Orden fijo de comprobaciones (un registro se rechaza solo por la
    primera que falla):
    1. Datos válidos (precio > 0)
    2. Precio mínimo, evaluado sobre el precio ya multiplicado
    3. Imágenes requeridas (forma de URL, whitelist de hosts y, si está
       activo, alcanzabilidad)

    El stock nunca es motivo de rechazo: se sanea a un entero >= 0.
    """

    def __init__(self, policy: SyncPolicy, prober: Optional[ImageProber] = None):
        self.policy = policy
        self.prober = prober
        if prober is None and policy.check_image_urls:
            self.prober = ImageProber(policy)

    def _allowed_host(self, url: str) -> bool:
        hosts = self.policy.allowed_image_hosts
        if not hosts:
            return True
        host = (urlparse(url).hostname or '').lower()
        return any(host == h or host.endswith('.' + h) for h in hosts)

    def select_images(self, product: CanonicalProduct, probe: bool = True) -> List[str]:
        """
        Galería validada del producto

        Args:
            product: Producto normalizado
            probe: Si es False no se hacen peticiones HEAD aunque estén activas

        Returns:
            URLs aceptadas, en el orden original
        """
        images = [
            url for url in product.images
            if is_http_url(url) and self._allowed_host(url)
        ]
        if probe and self.prober is not None and images:
            reachable = self.prober.filter_reachable(images)
            dropped = len(images) - len(reachable)
            if dropped:
                _logger.info(f"{product.sku}: dropped {dropped} unreachable image(s)")
            images = reachable
        return images

    def validate(self, product: CanonicalProduct, probe_images: bool = True):
        """
        Valida y transforma un producto

        Args:
            product: Producto normalizado
            probe_images: Permite desactivar las peticiones HEAD (vista previa)

        Returns:
            Accepted o Rejected
        """
        policy = self.policy

        if not product.sku or product.raw_price <= 0:
            return Rejected(
                ReasonCode.INVALID_DATA,
                f"Invalid price {product.raw_price} for SKU {product.sku!r}",
            )

        computed_price = compute_price(product.raw_price, policy.price_multiplier)
        if computed_price < policy.min_price:
            return Rejected(
                ReasonCode.PRICE_TOO_LOW,
                f"Price {computed_price} below minimum {policy.min_price}",
            )

        images = self.select_images(product, probe=probe_images)
        if policy.require_images and not images:
            return Rejected(ReasonCode.NO_IMAGES, 'No valid images')

        return Accepted(
            computed_price=computed_price,
            validated_images=tuple(images),
            quantity=sanitize_stock(product.stock),
        )


def validate(product: CanonicalProduct, policy: SyncPolicy,
             prober: Optional[ImageProber] = None):
    """Atajo funcional de Validator.validate"""
    return Validator(policy, prober=prober).validate(product)
