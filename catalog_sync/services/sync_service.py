# -*- coding: utf-8 -*-
"""
Servicio de Sincronización de Productos
Orquesta feed -> normalización -> validación -> reconciliación -> reporte
"""

import logging
import queue
import random
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..models.product import CanonicalProduct, Created, Failed, Filtered, Updated
from ..models.sync_log import RunReport, RunStats, SyncLog, build_report
from .api_client import ApiError, ConnectivityError, DestinationClient
from .feed_reader import FeedReader, FeedUnavailable
from .normalizer import normalize
from .rate_limiter import RateLimiter
from .reconciler import Reconciler
from .validator import Validator

_logger = logging.getLogger(__name__)

PROGRESS_QUEUE_SIZE = 1000


class RunState(str, Enum):
    IDLE = 'idle'
    FETCHING = 'fetching'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


ACTIVE_STATES = (RunState.FETCHING, RunState.PROCESSING)


class AlreadyRunningError(Exception):
    """Ya hay una corrida en curso"""
    pass


@dataclass(frozen=True)
class ProgressEvent:
    processed: int
    success: int
    skipped: int
    total: int
    sku: str
    batch: int


class SyncService:
    """
    Ejecutor de corridas de sincronización

    Responsabilidades:
    - Exclusión mutua: una sola corrida activa; un segundo disparo se
      rechaza inmediatamente (no se encola)
    - Batches secuenciales; registros de un batch en paralelo hasta
      `batch_size`
    - Espaciado mínimo entre llamadas compartido por toda la corrida y
      pausa con jitter entre batches
    - Un error de un registro nunca aborta la corrida
    """

    def __init__(self, settings: Settings, client: Optional[DestinationClient] = None,
                 feed_reader: Optional[FeedReader] = None,
                 validator: Optional[Validator] = None):
        self.settings = settings
        self.policy = settings.policy

        self.rate_limiter = RateLimiter(self.policy.call_interval)
        self.client = client or DestinationClient(
            settings.destination, self.policy, self.rate_limiter
        )
        self.feed_reader = feed_reader or FeedReader()
        self.validator = validator or Validator(self.policy)
        self.reconciler = Reconciler(self.client, self.policy)

        self.stats = RunStats()
        self.log = SyncLog(self.policy.log_capacity, self.policy.error_capacity)
        self.progress = queue.Queue(maxsize=PROGRESS_QUEUE_SIZE)

        self.state = RunState.IDLE
        self.run_id = None
        self.current_batch = 0
        self.source_used = None
        self.started_at = None
        self.last_report: Optional[RunReport] = None
        self.last_error: Optional[Dict[str, str]] = None

        self._outcomes: List[Any] = []
        self._outcomes_lock = threading.Lock()
        self._run_lock = threading.Lock()

    # ========== Ciclo de Vida de la Corrida ==========
    @property
    def is_running(self) -> bool:
        return self.state in ACTIVE_STATES

    def trigger(self) -> str:
        """
        Reserva una nueva corrida (Idle/Completed/Failed -> Fetching)

        Returns:
            ID de la corrida

        Raises:
            AlreadyRunningError: Si ya hay una corrida activa
        """
        if not self._run_lock.acquire(blocking=False):
            raise AlreadyRunningError(f"Sync run {self.run_id} is already {self.state.value}")

        self.run_id = str(uuid.uuid4())
        self.started_at = datetime.now(timezone.utc)
        self.source_used = None
        self.current_batch = 0
        self.last_error = None
        self.stats.reset()
        self.log.clear()
        with self._outcomes_lock:
            self._outcomes = []
        self._drain_progress()
        self.state = RunState.FETCHING

        _logger.info(f"Sync run {self.run_id} triggered")
        return self.run_id

    def execute(self) -> RunReport:
        """
        Ejecuta la corrida reservada con `trigger()`

        Returns:
            RunReport de la corrida completada

        Raises:
            FeedUnavailable: Ninguna fuente del feed disponible
            ConnectivityError: Destino no alcanzable al inicio
        """
        if self.state != RunState.FETCHING:
            raise RuntimeError('execute() requires a run reserved with trigger()')

        _logger.info("=" * 80)
        _logger.info(f"STARTING PRODUCT SYNC {self.run_id}")
        _logger.info("=" * 80)

        try:
            report = self._run()
        except (FeedUnavailable, ConnectivityError) as e:
            self._fail(e)
            raise
        except Exception as e:
            _logger.error(f"Critical error during synchronization: {e}", exc_info=True)
            self._fail(e)
            raise
        finally:
            self._run_lock.release()

        self._log_summary(report)
        return report

    def sync_products(self) -> RunReport:
        """Dispara y ejecuta una corrida completa de forma síncrona"""
        self.trigger()
        return self.execute()

    def _fail(self, error: Exception):
        category = {
            FeedUnavailable: 'feed_unavailable',
            ConnectivityError: 'connectivity',
        }.get(type(error), 'internal')
        self.state = RunState.FAILED
        self.last_error = {'category': category, 'message': str(error)}
        self.log.log_error(message=f"Sync run failed: {error}", step=category,
                           error_details=str(error))

    def _run(self) -> RunReport:
        policy = self.policy

        # 1. Conectividad y feed (fallos fatales para la corrida)
        self.client.check_connectivity()
        feed = self.feed_reader.fetch_feed(self.settings.sources)
        self.source_used = feed.source.name
        self.log.log_success('run', message=(
            f"Feed acquired from {feed.source.name}: {len(feed.records)} records"
        ))

        # 2. Normalización
        self.state = RunState.PROCESSING
        self.stats.set_total(len(feed.records))

        products: List[CanonicalProduct] = []
        for raw in feed.records:
            product = normalize(raw)
            if product is None:
                self.stats.record_ignored('missingSku')
                self._append_outcome(Filtered(sku='', reason='missingSku',
                                              detail='Record without SKU'))
                self._publish_progress('', 0)
                continue
            products.append(product)

        # 3. Batches secuenciales, registros del batch en paralelo
        batch_size = policy.batch_size
        batches = [products[i:i + batch_size] for i in range(0, len(products), batch_size)]
        _logger.info(f"Processing {len(products)} products in {len(batches)} batches of {batch_size}")

        with ThreadPoolExecutor(max_workers=batch_size,
                                thread_name_prefix='catalog-sync') as pool:
            for index, batch in enumerate(batches, start=1):
                self.current_batch = index
                _logger.info(f"Batch {index}/{len(batches)} ({len(batch)} products)")

                futures = [pool.submit(self._process_record, product, index)
                           for product in batch]
                for future in futures:
                    future.result()

                if index < len(batches):
                    self._pause_between_batches()

        self.state = RunState.COMPLETED
        report = build_report(
            self.stats,
            self.outcomes,
            started_at=self.started_at,
            source_used=self.source_used,
            error_capacity=policy.error_capacity,
        )
        self.last_report = report
        return report

    def _pause_between_batches(self):
        delay = self.policy.batch_pause + random.uniform(0, self.policy.batch_jitter)
        if delay > 0:
            _logger.debug(f"Pausing {delay:.2f}s between batches")
            time.sleep(delay)

    # ========== Procesamiento por Registro ==========
    def _process_record(self, product: CanonicalProduct, batch_index: int):
        """
        Valida y reconcilia un producto

        Nunca lanza: cualquier error queda registrado como Failed.
        """
        operation_start = time.time()

        try:
            result = self.validator.validate(product)

            if not result.accepted:
                self.stats.record_ignored(result.reason.counter_key)
                outcome = Filtered(sku=product.sku, reason=result.reason.value,
                                   detail=result.detail)
                self.log.log_warning('filtered', sku=product.sku,
                                     message=f"{product.sku}: {result.detail}")
            else:
                outcome = self.reconciler.reconcile(product, result)
                if isinstance(outcome, Created):
                    self.stats.record_created()
                elif isinstance(outcome, Updated):
                    self.stats.record_updated()
                self.log.log_success(outcome.operation, sku=product.sku, message=(
                    f"{product.sku} {outcome.operation} (id {outcome.id}, "
                    f"{time.time() - operation_start:.3f}s)"
                ))

        except ApiError as e:
            self.stats.record_error('apiError')
            outcome = Failed(sku=product.sku, step=e.step or 'api', error=str(e))
            self.log.log_error(sku=product.sku, message=f"{product.sku}: {e}",
                               step=outcome.step, error_details=str(e))

        except Exception as e:
            _logger.error(f"Error processing product {product.sku}: {e}", exc_info=True)
            self.stats.record_error()
            outcome = Failed(sku=product.sku, step='process', error=str(e))
            self.log.log_error(sku=product.sku, message=f"{product.sku}: {e}",
                               step='process', error_details=str(e))

        self._append_outcome(outcome)
        self._publish_progress(product.sku, batch_index)
        return outcome

    def _append_outcome(self, outcome):
        with self._outcomes_lock:
            self._outcomes.append(outcome)

    @property
    def outcomes(self) -> list:
        with self._outcomes_lock:
            return list(self._outcomes)

    # ========== Progreso ==========
    def _publish_progress(self, sku: str, batch_index: int):
        snapshot = self.stats.snapshot()
        event = ProgressEvent(
            processed=snapshot['processed'] + snapshot['ignored'] + snapshot['errors'],
            success=snapshot['created'] + snapshot['updated'],
            skipped=snapshot['ignored'],
            total=snapshot['total'],
            sku=sku,
            batch=batch_index,
        )
        while True:
            try:
                self.progress.put_nowait(event)
                return
            except queue.Full:
                # Sin consumidores: se descarta el evento más antiguo
                try:
                    self.progress.get_nowait()
                except queue.Empty:
                    pass

    def _drain_progress(self) -> List[ProgressEvent]:
        events = []
        while True:
            try:
                events.append(self.progress.get_nowait())
            except queue.Empty:
                return events

    def progress_events(self) -> List[ProgressEvent]:
        """Consume los eventos de progreso pendientes"""
        return self._drain_progress()

    # ========== Consultas ==========
    def status(self) -> Dict[str, Any]:
        """Estado de la corrida actual o de la última"""
        return {
            'state': self.state.value,
            'runId': self.run_id,
            'batch': self.current_batch,
            'sourceUsed': self.source_used,
            'stats': self.stats.snapshot(),
            'lastError': self.last_error,
            'lastReport': self.last_report.to_dict() if self.last_report else None,
            'recentLog': self.log.get_lines()[-20:],
        }

    def preview(self, limit: int = 10) -> Dict[str, Any]:
        """
        Vista previa sin escrituras: feed + normalización + validación

        No hace peticiones HEAD de imágenes ni llamadas al destino.
        """
        feed = self.feed_reader.fetch_feed(self.settings.sources)
        items = []
        skipped = 0

        for raw in feed.records:
            if len(items) >= limit:
                break
            product = normalize(raw)
            if product is None:
                skipped += 1
                continue
            result = self.validator.validate(product, probe_images=False)
            item = {
                'sku': product.sku,
                'name': product.name,
                'rawPrice': str(product.raw_price),
                'stock': product.stock,
                'category': product.category,
                'categoryId': self.reconciler.categories.lookup(product.category),
                'images': list(product.images),
                'accepted': result.accepted,
            }
            if result.accepted:
                item['computedPrice'] = str(result.computed_price)
                item['validatedImages'] = list(result.validated_images)
            else:
                item['reason'] = result.reason.value
                item['detail'] = result.detail
            items.append(item)

        return {
            'sourceUsed': feed.source.name,
            'totalRecords': len(feed.records),
            'skippedWithoutSku': skipped,
            'items': items,
        }

    def lookup_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        """Producto del destino para un SKU (o None)"""
        entity = self.reconciler.find_existing(sku)
        return entity.fields if entity is not None else None

    def _log_summary(self, report: RunReport):
        stats = report.stats
        _logger.info("=" * 80)
        _logger.info("SYNC COMPLETED")
        _logger.info("=" * 80)
        _logger.info(f"Source:   {report.source_used}")
        _logger.info(f"Total:    {stats['total']}")
        _logger.info(f"Created:  {stats['created']}")
        _logger.info(f"Updated:  {stats['updated']}")
        _logger.info(f"Ignored:  {stats['ignored']}")
        _logger.info(f"Errors:   {stats['errors']}")
        _logger.info(f"Time:     {report.duration_seconds:.2f}s")
        _logger.info(f"Run ID:   {self.run_id}")
        _logger.info("=" * 80)

    def close(self):
        self.client.close()
        self.feed_reader.close()


def progress_as_dict(event: ProgressEvent) -> Dict[str, Any]:
    return asdict(event)
