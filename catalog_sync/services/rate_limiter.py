# -*- coding: utf-8 -*-
"""
Rate Limiter - Control de tasa de peticiones
Impone un espaciado mínimo entre llamadas al destino, compartido por
todos los hilos de una corrida
"""

import time
import threading
import logging

_logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Controlador de espaciado mínimo entre peticiones

    Funcionamiento:
    - Cada llamada reserva el siguiente "slot" libre: max(ahora, último + intervalo)
    - La reserva se hace bajo lock; la espera se hace fuera del lock para
      que los hilos de un batch hagan cola sin bloquearse entre sí
    - La instancia se comparte en toda la corrida, no por batch

    Ejemplo:
        limiter = RateLimiter(min_interval=0.25)  # máx. 4 peticiones/segundo
        for product in batch:
            limiter.wait_if_needed()
            make_api_call()
    """

    def __init__(self, min_interval: float = 0.25):
        """
        Inicializa el rate limiter

        Args:
            min_interval: Segundos mínimos entre dos peticiones consecutivas
        """
        self.min_interval = max(0.0, float(min_interval))

        # Momento (monotonic) reservado para la última petición
        self.last_call = None

        # Lock para thread-safety
        self.lock = threading.Lock()

        _logger.info(f"RateLimiter initialized: min interval {self.min_interval:.3f}s")

    def _reserve_slot(self) -> float:
        """
        Reserva el próximo slot disponible

        Returns:
            Segundos a esperar hasta el slot reservado
        """
        with self.lock:
            now = time.monotonic()
            if self.last_call is None:
                slot = now
            else:
                slot = max(now, self.last_call + self.min_interval)
            self.last_call = slot
            return slot - now

    def wait_if_needed(self) -> float:
        """
        Espera si es necesario para respetar el espaciado mínimo

        Este método es thread-safe y puede ser llamado concurrentemente

        Returns:
            Segundos esperados
        """
        wait_time = self._reserve_slot()

        if wait_time > 0:
            _logger.debug(f"Rate limit reached, waiting {wait_time:.3f}s")
            time.sleep(wait_time)

        return wait_time

    def try_acquire(self) -> bool:
        """
        Intenta reservar un slot sin esperar

        Returns:
            True si se pudo llamar inmediatamente, False en caso contrario
        """
        with self.lock:
            now = time.monotonic()
            if self.last_call is not None and now < self.last_call + self.min_interval:
                _logger.debug("No slot available")
                return False
            self.last_call = now
            return True

    def reset(self):
        """Resetea el rate limiter a su estado inicial"""
        with self.lock:
            self.last_call = None
            _logger.info("RateLimiter reset")

    def __enter__(self):
        """Context manager entry"""
        self.wait_if_needed()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        pass
