# -*- coding: utf-8 -*-
"""
Modelo de datos del producto a lo largo del pipeline
RawRecord -> CanonicalProduct -> Accepted/Rejected -> SyncOutcome
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

# Registro tal como sale del parser (cabeceras CSV o claves JSON)
RawRecord = Dict[str, Any]


@dataclass(frozen=True)
class CanonicalProduct:
    """
    Representación normalizada de un producto, independiente del formato del feed

    La primera imagen de `images` es la imagen principal por convención.
    """
    sku: str
    name: str = ''
    raw_price: Decimal = Decimal('0')
    stock: int = 0
    description: str = ''
    category: str = ''
    brand: str = ''
    images: Tuple[str, ...] = ()

    @property
    def main_image(self) -> Optional[str]:
        return self.images[0] if self.images else None


class ReasonCode(str, Enum):
    """Motivos de rechazo de un registro"""
    INVALID_DATA = 'INVALID_DATA'
    PRICE_TOO_LOW = 'PRICE_TOO_LOW'
    NO_IMAGES = 'NO_IMAGES'
    API_ERROR = 'API_ERROR'

    @property
    def counter_key(self) -> str:
        """Clave del contador `reasons` en RunStats"""
        return {
            ReasonCode.INVALID_DATA: 'invalidData',
            ReasonCode.PRICE_TOO_LOW: 'lowPrice',
            ReasonCode.NO_IMAGES: 'noImages',
            ReasonCode.API_ERROR: 'apiError',
        }[self]


@dataclass(frozen=True)
class Accepted:
    computed_price: Decimal
    validated_images: Tuple[str, ...]
    quantity: int

    accepted = True


@dataclass(frozen=True)
class Rejected:
    reason: ReasonCode
    detail: str

    accepted = False


ValidationResult = Union[Accepted, Rejected]


@dataclass(frozen=True)
class DestinationEntity:
    """Registro existente en el catálogo destino"""
    id: Any
    sku: str
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'DestinationEntity':
        return cls(id=data.get('id'), sku=str(data.get('sku') or ''), fields=dict(data))


# ========== Resultados por registro ==========

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Created:
    sku: str
    id: Any

    operation = 'created'


@dataclass(frozen=True)
class Updated:
    sku: str
    id: Any

    operation = 'updated'


@dataclass(frozen=True)
class Filtered:
    sku: str
    reason: str
    detail: str = ''

    operation = 'filtered'


@dataclass(frozen=True)
class Failed:
    sku: str
    step: str
    error: str
    timestamp: datetime = field(default_factory=_utcnow)

    operation = 'failed'


SyncOutcome = Union[Created, Updated, Filtered, Failed]
