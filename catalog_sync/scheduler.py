# -*- coding: utf-8 -*-
"""
Disparo programado de la sincronización (cron)
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import SchedulerConfig
from .models.sync_log import RunReport
from .services.api_client import ConnectivityError
from .services.feed_reader import FeedUnavailable
from .services.sync_service import AlreadyRunningError, SyncService

_logger = logging.getLogger(__name__)

JOB_ID = 'catalog_sync_scheduled_run'


def run_scheduled_sync(service: SyncService) -> Optional[RunReport]:
    """
    Método llamado por el cron

    Un disparo con una corrida activa se descarta; los errores fatales de
    la corrida se registran y no detienen el scheduler.
    """
    _logger.info("Running scheduled product synchronization (CRON)")

    try:
        report = service.sync_products()
    except AlreadyRunningError as e:
        _logger.warning(f"Scheduled sync skipped: {e}")
        return None
    except (FeedUnavailable, ConnectivityError) as e:
        _logger.error(f"Scheduled sync failed: {e}")
        return None

    if report.stats['errors'] > 0:
        _logger.warning(
            f"Scheduled sync finished with {report.stats['errors']} errors: "
            f"{report.error_records[:5]}"
        )
    return report


def build_scheduler(service: SyncService, config: SchedulerConfig) -> BackgroundScheduler:
    """
    Construye el scheduler con el job de sincronización

    Args:
        service: Servicio compartido con la capa HTTP
        config: Expresión cron (formato crontab de 5 campos)

    Returns:
        BackgroundScheduler sin arrancar
    """
    scheduler = BackgroundScheduler(timezone='UTC')
    scheduler.add_job(
        run_scheduled_sync,
        trigger=CronTrigger.from_crontab(config.cron, timezone='UTC'),
        args=[service],
        id=JOB_ID,
        name='Catalog sync',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        misfire_grace_time=3600,
    )
    _logger.info(f"Sync scheduled with cron '{config.cron}' (UTC)")
    return scheduler
