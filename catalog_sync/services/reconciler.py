# -*- coding: utf-8 -*-
"""
Reconciliación contra el catálogo destino
Decide create vs update por SKU y construye el payload del destino
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional

from ..config import SyncPolicy
from ..models.product import Accepted, CanonicalProduct, Created, DestinationEntity, Updated
from .api_client import ApiError, DestinationClient, DuplicateKeyError

_logger = logging.getLogger(__name__)


def _punctuation_key(text: str) -> str:
    return ' '.join(re.sub(r'[^a-z0-9]+', ' ', text.lower()).split())


class CategoryMapper:
    """
    Traduce la categoría libre del feed a un id de categoría del destino

    Búsqueda: primero exacta sin distinguir mayúsculas, después con la
    puntuación normalizada. Sin coincidencia -> id por defecto.
    """

    def __init__(self, table: Mapping[str, int], default_id: Optional[int] = None):
        self.default_id = default_id
        self._exact = {str(k).strip().lower(): v for k, v in table.items()}
        self._loose = {_punctuation_key(str(k)): v for k, v in table.items()}

    def lookup(self, category: str) -> Optional[int]:
        if not category:
            return self.default_id
        key = category.strip().lower()
        if key in self._exact:
            return self._exact[key]
        return self._loose.get(_punctuation_key(category), self.default_id)


class Reconciler:
    """
    Reconciliador idempotente por SKU

    - Existe en destino -> update parcial (solo campos que gestiona esta sync)
    - No existe -> create
    - Conflicto de SKU en el create -> se resuelve como update
    """

    def __init__(self, client: DestinationClient, policy: SyncPolicy):
        self.client = client
        self.categories = CategoryMapper(policy.category_map, policy.default_category_id)

    def _call(self, step: str, func, *args):
        try:
            return func(*args)
        except ApiError as e:
            e.step = e.step or step
            raise

    def find_existing(self, sku: str) -> Optional[DestinationEntity]:
        """
        Busca el producto por SKU exacto

        La búsqueda del destino puede devolver varios resultados; el primero
        de la lista es el canónico.
        """
        items = self._call('search', self.client.search_by_sku, sku)
        if not items:
            return None
        if len(items) > 1:
            _logger.warning(f"{sku}: destination returned {len(items)} matches, using the first")
        return DestinationEntity.from_api(items[0])

    def build_payload(self, product: CanonicalProduct, accepted: Accepted,
                      is_create: bool = False) -> Dict[str, Any]:
        """
        Construye el payload del destino

        Solo incluye los campos de los que esta sync es autoritativa; el
        resto (flags de merchandising, etc.) no se toca en un update.
        """
        payload = {
            'sku': product.sku,
            'name': product.name or product.sku,
            'price': float(accepted.computed_price),
            'quantity': accepted.quantity,
            'unlimited': False,
        }

        category_id = self.categories.lookup(product.category)
        if category_id is not None:
            payload['categoryIds'] = [category_id]
            payload['defaultCategoryId'] = category_id

        if product.description:
            payload['description'] = product.description

        if product.brand:
            payload['brand'] = product.brand

        if accepted.validated_images:
            payload['imageUrl'] = accepted.validated_images[0]
            payload['galleryImages'] = [
                {'url': url} for url in accepted.validated_images[1:]
            ]

        if is_create:
            payload['enabled'] = True

        return payload

    def _update(self, entity: DestinationEntity, product: CanonicalProduct,
                accepted: Accepted) -> Updated:
        payload = self.build_payload(product, accepted)
        self._call('update', self.client.update_product, entity.id, payload)
        return Updated(sku=product.sku, id=entity.id)

    def reconcile(self, product: CanonicalProduct, accepted: Accepted):
        """
        Crea o actualiza el producto en el destino

        Args:
            product: Producto normalizado
            accepted: Resultado de validación

        Returns:
            Created o Updated

        Raises:
            ApiError: Si falla una llamada al destino (con `step` informado)
        """
        existing = self.find_existing(product.sku)

        if existing is not None:
            _logger.debug(f"{product.sku}: updating destination id {existing.id}")
            return self._update(existing, product, accepted)

        payload = self.build_payload(product, accepted, is_create=True)
        try:
            response = self._call('create', self.client.create_product, payload)
        except DuplicateKeyError:
            # Otro proceso (o un reintento) ya lo creó
            _logger.info(f"{product.sku}: duplicate SKU on create, resolving as update")
            existing = self.find_existing(product.sku)
            if existing is None:
                raise ApiError(f"Duplicate SKU {product.sku} reported but not found",
                               step='create')
            return self._update(existing, product, accepted)

        new_id = response.get('id')
        if new_id is None:
            raise ApiError(f"Create for SKU {product.sku} returned no id", step='create')
        return Created(sku=product.sku, id=new_id)
