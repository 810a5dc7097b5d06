# -*- coding: utf-8 -*-
"""
Registro de una ejecución de sincronización
Contadores de la corrida, log acotado en memoria y reporte final
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .product import Failed

_logger = logging.getLogger(__name__)

REASON_KEYS = ('noImages', 'lowPrice', 'invalidData', 'apiError', 'missingSku')


class RunStats:
    """
    Contadores de una corrida

    Pertenecen al Batch Executor durante la corrida y se reinician al inicio
    de cada una. Todos los incrementos pasan por un lock porque los registros
    de un mismo batch se procesan en paralelo.

    Partición: total == processed + ignored + errors
               processed == created + updated
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.reset()

    def reset(self, total: int = 0):
        """Reinicia todos los contadores"""
        with self.lock:
            self.total = total
            self.processed = 0
            self.created = 0
            self.updated = 0
            self.ignored = 0
            self.errors = 0
            self.reasons = {key: 0 for key in REASON_KEYS}

    def set_total(self, total: int):
        with self.lock:
            self.total = total

    def record_created(self):
        with self.lock:
            self.created += 1
            self.processed += 1

    def record_updated(self):
        with self.lock:
            self.updated += 1
            self.processed += 1

    def record_ignored(self, reason: str):
        with self.lock:
            self.ignored += 1
            self.reasons[reason] = self.reasons.get(reason, 0) + 1

    def record_error(self, reason: Optional[str] = None):
        with self.lock:
            self.errors += 1
            if reason:
                self.reasons[reason] = self.reasons.get(reason, 0) + 1

    @property
    def done(self) -> int:
        """Registros con resultado terminal"""
        return self.processed + self.ignored + self.errors

    def snapshot(self) -> Dict[str, Any]:
        """Copia consistente de los contadores"""
        with self.lock:
            return {
                'total': self.total,
                'processed': self.processed,
                'created': self.created,
                'updated': self.updated,
                'ignored': self.ignored,
                'errors': self.errors,
                'reasons': dict(self.reasons),
            }


class SyncLog:
    """
    Log acotado en memoria de una corrida

    Guarda las últimas `capacity` líneas y los últimos `error_capacity`
    errores; las entradas más antiguas se descartan primero (FIFO).
    Cada entrada también se emite por el logger estándar.
    """

    def __init__(self, capacity: int = 200, error_capacity: int = 50):
        self.capacity = capacity
        self.error_capacity = error_capacity
        self.lock = threading.Lock()
        self.entries = deque(maxlen=capacity)
        self.error_records = deque(maxlen=error_capacity)

    def clear(self):
        with self.lock:
            self.entries.clear()
            self.error_records.clear()

    # ========== Métodos de Registro ==========
    def log_operation(self, operation: str, sku: str = '', status: str = 'success',
                      message: str = '', step: Optional[str] = None,
                      error_details: Optional[str] = None) -> Dict[str, Any]:
        """
        Registra una operación de sincronización

        Args:
            operation: Tipo de operación ('created', 'updated', 'filtered', 'error', 'run')
            sku: SKU afectado
            status: Estado ('success', 'error', 'warning')
            message: Mensaje descriptivo
            step: Paso del pipeline donde ocurrió el error
            error_details: Detalles del error

        Returns:
            dict: Entrada registrada
        """
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'operation': operation,
            'status': status,
            'sku': sku,
            'message': message,
        }

        with self.lock:
            self.entries.append(entry)
            if status == 'error':
                self.error_records.append({
                    'sku': sku,
                    'step': step or operation,
                    'error': error_details or message,
                })

        log_message = f"[{operation.upper()}] {message}"
        if status == 'error':
            _logger.error(log_message)
        elif status == 'warning':
            _logger.warning(log_message)
        else:
            _logger.info(log_message)

        return entry

    def log_success(self, operation: str, sku: str = '', message: str = '', **kwargs):
        """Atajo para registrar operación exitosa"""
        return self.log_operation(operation=operation, sku=sku, status='success',
                                  message=message, **kwargs)

    def log_warning(self, operation: str, sku: str = '', message: str = '', **kwargs):
        """Atajo para registrar advertencia"""
        return self.log_operation(operation=operation, sku=sku, status='warning',
                                  message=message, **kwargs)

    def log_error(self, sku: str = '', message: str = '', step: Optional[str] = None,
                  error_details: Optional[str] = None):
        """Atajo para registrar error"""
        return self.log_operation(operation='error', sku=sku, status='error',
                                  message=message, step=step,
                                  error_details=error_details)

    def get_recent_errors(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Errores retenidos, del más antiguo al más reciente"""
        with self.lock:
            errors = list(self.error_records)
        return errors[-limit:] if limit else errors

    def get_lines(self) -> List[Dict[str, Any]]:
        with self.lock:
            return list(self.entries)


@dataclass(frozen=True)
class RunReport:
    success: bool
    timestamp: str
    duration_seconds: float
    source_used: Optional[str]
    stats: Dict[str, Any]
    success_rate: float
    error_records: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'timestamp': self.timestamp,
            'durationSeconds': self.duration_seconds,
            'sourceUsed': self.source_used,
            'successRate': self.success_rate,
            'stats': self.stats,
            'errorRecords': self.error_records,
        }


def build_report(stats: RunStats, outcomes, started_at: datetime,
                 finished_at: Optional[datetime] = None,
                 source_used: Optional[str] = None,
                 error_capacity: int = 50) -> RunReport:
    """
    Agrega los contadores y resultados de una corrida en un RunReport

    Args:
        stats: Contadores de la corrida
        outcomes: Resultados por registro (SyncOutcome)
        started_at: Inicio de la corrida
        finished_at: Fin de la corrida (ahora si se omite)
        source_used: Nombre del feed utilizado
        error_capacity: Máximo de errores incluidos (se conservan los más recientes)

    Returns:
        RunReport
    """
    finished_at = finished_at or datetime.now(timezone.utc)
    snapshot = stats.snapshot()

    succeeded = snapshot['created'] + snapshot['updated']
    attempted = succeeded + snapshot['errors']
    success_rate = round(succeeded / attempted * 100, 2) if attempted > 0 else 0.0

    failures = [o for o in outcomes if isinstance(o, Failed)]
    error_records = [
        {'sku': o.sku, 'step': o.step, 'error': o.error}
        for o in failures[-error_capacity:]
    ] if error_capacity > 0 else []

    return RunReport(
        success=True,
        timestamp=finished_at.isoformat(),
        duration_seconds=round((finished_at - started_at).total_seconds(), 2),
        source_used=source_used,
        stats=snapshot,
        success_rate=success_rate,
        error_records=error_records,
    )
