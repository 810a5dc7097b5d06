# -*- coding: utf-8 -*-
"""
Tests para RunStats, SyncLog y el reporte de corrida
"""

import threading
from datetime import datetime, timedelta, timezone

from catalog_sync.models.product import Created, Failed, Filtered
from catalog_sync.models.sync_log import REASON_KEYS, RunStats, SyncLog, build_report


class TestRunStats:
    """Contadores de la corrida"""

    def test_reset(self):
        """Test: reset deja todos los contadores a cero"""
        stats = RunStats()
        stats.record_created()
        stats.record_ignored('lowPrice')

        stats.reset(total=10)
        snapshot = stats.snapshot()

        assert snapshot['total'] == 10
        assert snapshot['created'] == 0
        assert snapshot['ignored'] == 0
        assert snapshot['reasons'] == {key: 0 for key in REASON_KEYS}

    def test_processed_is_created_plus_updated(self):
        """Test: processed == created + updated"""
        stats = RunStats()
        stats.record_created()
        stats.record_updated()
        stats.record_updated()
        stats.record_error('apiError')

        snapshot = stats.snapshot()
        assert snapshot['processed'] == 3
        assert snapshot['errors'] == 1
        assert snapshot['reasons']['apiError'] == 1
        assert stats.done == 4

    def test_concurrent_increments(self):
        """Test: No se pierden incrementos entre hilos"""
        stats = RunStats()

        def worker():
            for _ in range(500):
                stats.record_created()
                stats.record_ignored('noImages')

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = stats.snapshot()
        assert snapshot['created'] == 4000
        assert snapshot['ignored'] == 4000
        assert snapshot['reasons']['noImages'] == 4000

    def test_snapshot_is_a_copy(self):
        """Test: Modificar el snapshot no altera los contadores"""
        stats = RunStats()
        snapshot = stats.snapshot()
        snapshot['reasons']['lowPrice'] = 99

        assert stats.snapshot()['reasons']['lowPrice'] == 0


class TestSyncLog:
    """Log acotado"""

    def test_bounded_fifo(self):
        """Test: Se descartan primero las entradas más antiguas"""
        log = SyncLog(capacity=3, error_capacity=2)
        for i in range(5):
            log.log_success('created', sku=f'S-{i}', message=f'line {i}')

        lines = log.get_lines()
        assert [line['sku'] for line in lines] == ['S-2', 'S-3', 'S-4']

    def test_errors_retained_separately(self):
        """Test: Los errores tienen su propio límite"""
        log = SyncLog(capacity=10, error_capacity=2)
        for i in range(3):
            log.log_error(sku=f'E-{i}', message='boom', step='update', error_details=f'err {i}')
        log.log_warning('filtered', sku='W-1', message='low price')

        errors = log.get_recent_errors()
        assert [e['sku'] for e in errors] == ['E-1', 'E-2']
        assert errors[-1] == {'sku': 'E-2', 'step': 'update', 'error': 'err 2'}
        assert log.get_recent_errors(limit=1) == [errors[-1]]

    def test_entries_are_mirrored_to_logger(self, caplog):
        """Test: Cada entrada se emite también por logging"""
        log = SyncLog()

        with caplog.at_level('INFO', logger='catalog_sync.models.sync_log'):
            log.log_warning('filtered', sku='B-2', message='B-2: price too low')

        assert '[FILTERED] B-2: price too low' in caplog.text

    def test_clear(self):
        """Test: clear vacía líneas y errores"""
        log = SyncLog()
        log.log_error(sku='X', message='boom')

        log.clear()

        assert log.get_lines() == []
        assert log.get_recent_errors() == []


class TestBuildReport:
    """Reporte final"""

    def setup_method(self):
        self.started_at = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.finished_at = self.started_at + timedelta(seconds=42.5)

    def test_success_rate(self):
        """Test: Tasa de éxito sobre los registros enviados al destino"""
        stats = RunStats()
        stats.set_total(5)
        for _ in range(3):
            stats.record_created()
        stats.record_error('apiError')
        stats.record_ignored('lowPrice')

        report = build_report(stats, [], self.started_at, self.finished_at,
                              source_used='primary')

        assert report.success_rate == 75.0
        assert report.duration_seconds == 42.5
        assert report.to_dict()['sourceUsed'] == 'primary'
        assert report.to_dict()['durationSeconds'] == 42.5

    def test_no_attempts_gives_zero_rate(self):
        """Test: Sin envíos la tasa es 0"""
        report = build_report(RunStats(), [], self.started_at, self.finished_at)

        assert report.success_rate == 0.0
        assert report.success is True

    def test_error_records_bounded(self):
        """Test: Solo se incluyen los errores más recientes"""
        outcomes = [Created(sku='OK', id=1), Filtered(sku='F', reason='lowPrice')]
        outcomes += [Failed(sku=f'E-{i}', step='update', error='boom') for i in range(4)]

        report = build_report(RunStats(), outcomes, self.started_at, self.finished_at,
                              error_capacity=2)

        assert report.error_records == [
            {'sku': 'E-2', 'step': 'update', 'error': 'boom'},
            {'sku': 'E-3', 'step': 'update', 'error': 'boom'},
        ]

    def test_error_records_disabled(self):
        """Test: error_capacity=0 no incluye errores"""
        outcomes = [Failed(sku='E', step='create', error='boom')]

        report = build_report(RunStats(), outcomes, self.started_at, self.finished_at,
                              error_capacity=0)

        assert report.error_records == []
