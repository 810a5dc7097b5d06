# -*- coding: utf-8 -*-
"""
Cliente HTTP para el catálogo destino
Incluye reintentos con backoff exponencial + jitter y manejo robusto de errores
"""

import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ..config import DestinationConfig, SyncPolicy
from .rate_limiter import RateLimiter

_logger = logging.getLogger(__name__)

DUPLICATE_PATTERN = re.compile(r'duplicate|already exists|ya existe', re.IGNORECASE)


class ApiError(Exception):
    """Fallo de una llamada al destino tras agotar los reintentos"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 step: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.step = step


class DefinitiveApiError(ApiError):
    """Error del cliente (401/403/404...): nunca se reintenta"""
    pass


class DuplicateKeyError(ApiError):
    """El destino rechazó un alta porque el SKU ya existe"""
    pass


class ConnectivityError(Exception):
    """El destino no es alcanzable al inicio de la corrida"""
    pass


@dataclass(frozen=True)
class CallResult:
    """
    Resultado de un único intento HTTP

    status: 'ok', 'retryable' o 'fatal'
    """
    status: str
    data: Any = None
    status_code: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == 'ok'

    @property
    def retryable(self) -> bool:
        return self.status == 'retryable'


class DestinationClient:
    """
    Cliente HTTP del catálogo destino (API estilo Ecwid)

    Características:
    - Espaciado mínimo entre llamadas (RateLimiter compartido)
    - Reintentos con backoff exponencial + jitter en 5xx, 408, 429,
      timeouts y respuestas que no son JSON
    - Sin reintentos en errores definitivos del cliente (401, 403, 404...)
    """

    def __init__(self, config: DestinationConfig, policy: SyncPolicy,
                 rate_limiter: Optional[RateLimiter] = None):
        """
        Inicializa el cliente

        Args:
            config: URL base, token y timeout del destino
            policy: Política de reintentos (intentos, delay base y máximo)
            rate_limiter: Limiter compartido por toda la corrida
        """
        self.base_url = config.base_url.rstrip('/')
        self.timeout = config.timeout
        self.health_path = config.health_path
        self.max_retries = policy.max_retries
        self.base_delay = policy.retry_base_delay
        self.max_delay = policy.retry_max_delay
        self.rate_limiter = rate_limiter or RateLimiter(policy.call_interval)
        self.session = requests.Session()

        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'CatalogSync/1.0',
        })
        if config.api_token:
            self.session.headers['Authorization'] = f'Bearer {config.api_token}'

        _logger.info(
            f"DestinationClient initialized: {self.base_url} "
            f"(timeout={self.timeout}s, retries={self.max_retries})"
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """
        Calcula tiempo de espera con backoff exponencial y jitter

        El jitter es de hasta un 10% del delay exponencial, por lo que los
        delays son estrictamente crecientes mientras no se alcance el máximo.

        Args:
            attempt: Número de intento actual (1-based)

        Returns:
            Segundos a esperar antes del siguiente intento
        """
        base_delay = self.base_delay * (2 ** (attempt - 1))
        jittered = base_delay * (1 + random.uniform(0, 0.1))
        return min(jittered, self.max_delay)

    def _classify(self, response: requests.Response) -> CallResult:
        """
        Clasifica una respuesta HTTP en ok / retryable / fatal

        Args:
            response: Respuesta HTTP recibida

        Returns:
            CallResult
        """
        code = response.status_code

        if 200 <= code < 300:
            if code == 204 or not response.content:
                return CallResult('ok', data=None, status_code=code)
            try:
                return CallResult('ok', data=response.json(), status_code=code)
            except ValueError:
                # HTML u otro cuerpo no-JSON con 2xx: proxy/CDN intermedio
                return CallResult(
                    'retryable', status_code=code,
                    error=ApiError(f"Invalid JSON response (status {code})", code),
                )

        if code >= 500 or code in (408, 429):
            return CallResult(
                'retryable', status_code=code,
                error=ApiError(f"Server error: {code}", code),
            )

        body = response.text or ''
        if code == 409 or (code == 400 and DUPLICATE_PATTERN.search(body)):
            return CallResult(
                'fatal', status_code=code,
                error=DuplicateKeyError(f"Duplicate key: {code} - {body[:200]}", code),
            )

        return CallResult(
            'fatal', status_code=code,
            error=DefinitiveApiError(f"Client error: {code} - {body[:200]}", code),
        )

    def _attempt(self, method: str, url: str, **kwargs) -> CallResult:
        """Un único intento HTTP, sin reintentos"""
        self.rate_limiter.wait_if_needed()

        try:
            response = self.session.request(
                method=method,
                url=url,
                timeout=self.timeout,
                **kwargs
            )
        except requests.exceptions.Timeout as e:
            return CallResult('retryable', error=ApiError(f"Request timeout: {e}"))
        except requests.exceptions.ConnectionError as e:
            return CallResult('retryable', error=ApiError(f"Connection error: {e}"))
        except requests.exceptions.RequestException as e:
            return CallResult('retryable', error=ApiError(f"Request exception: {e}"))

        _logger.debug(
            f"Response: {response.status_code} "
            f"(time: {response.elapsed.total_seconds():.2f}s)"
        )
        return self._classify(response)

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Realiza una petición HTTP con reintentos

        Args:
            method: Método HTTP (GET, POST, PUT)
            endpoint: Endpoint de la API (ej: /products)
            **kwargs: Argumentos adicionales para requests (params, json, etc.)

        Returns:
            Respuesta JSON decodificada (None para 204)

        Raises:
            DefinitiveApiError: Error del cliente, sin reintentos
            DuplicateKeyError: Conflicto de SKU en un alta
            ApiError: Si la petición falla después de todos los reintentos
        """
        url = f"{self.base_url}{endpoint}"
        result = None

        for attempt in range(1, self.max_retries + 1):
            _logger.debug(f"[Attempt {attempt}/{self.max_retries}] {method} {url}")

            result = self._attempt(method, url, **kwargs)

            if result.ok:
                return result.data

            if not result.retryable:
                _logger.error(f"{method} {endpoint} failed: {result.error}")
                raise result.error

            if attempt < self.max_retries:
                backoff = self._calculate_backoff(attempt)
                _logger.warning(
                    f"{method} {endpoint} failed ({result.error}), "
                    f"retrying in {backoff:.2f}s... (attempt {attempt}/{self.max_retries})"
                )
                time.sleep(backoff)

        error_msg = f"Request failed after {self.max_retries} attempts: {result.error}"
        _logger.error(error_msg)
        raise ApiError(error_msg, result.status_code)

    # ========== Operaciones del Catálogo ==========
    def search_by_sku(self, sku: str) -> List[Dict[str, Any]]:
        """
        Busca productos por SKU exacto

        La búsqueda del destino puede ser laxa y devolver más de un
        resultado; se devuelve siempre una lista.

        Args:
            sku: SKU a buscar

        Returns:
            Lista de productos encontrados (puede estar vacía)
        """
        data = self._make_request('GET', '/products', params={'sku': sku})
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return list(data.get('items') or [])
        return []

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        return self._make_request('GET', f'/products/{product_id}')

    def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Crea un producto

        Returns:
            Respuesta del destino, con el `id` asignado
        """
        return self._make_request('POST', '/products', json=payload) or {}

    def update_product(self, product_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Actualiza parcialmente un producto existente

        Returns:
            Respuesta del destino
        """
        return self._make_request('PUT', f'/products/{product_id}', json=payload) or {}

    def check_connectivity(self):
        """
        Verifica que el destino esté disponible

        Raises:
            ConnectivityError: Si el destino no responde correctamente
        """
        try:
            self._make_request('GET', self.health_path)
        except ApiError as e:
            raise ConnectivityError(f"Destination unreachable at {self.base_url}: {e}") from e
        _logger.info(f"Destination reachable: {self.base_url}")

    def close(self):
        """Cierra la sesión HTTP"""
        self.session.close()
        _logger.info("DestinationClient session closed")
