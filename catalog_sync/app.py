# -*- coding: utf-8 -*-
"""
Capa HTTP de disparo de la sincronización
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import load_settings, missing_required_settings
from .scheduler import build_scheduler
from .services.api_client import ApiError, ConnectivityError
from .services.feed_reader import FeedUnavailable
from .services.sync_service import AlreadyRunningError, SyncService, progress_as_dict

_logger = logging.getLogger(__name__)

STARTED_AT = time.time()


class SyncAcceptedResponse(BaseModel):
    status: str = 'accepted'
    runId: str
    message: str = 'Sync started in background; poll /sync/status'


class SyncRejectedResponse(BaseModel):
    status: str
    category: Optional[str] = None
    message: str


class HealthResponse(BaseModel):
    status: str = 'OK'
    timestamp: str
    uptime: float
    api_version: str = __version__


def _failure(status_code: int, category: str, error: Exception) -> JSONResponse:
    body = SyncRejectedResponse(status='failed', category=category, message=str(error))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(service: Optional[SyncService] = None, start_scheduler: bool = True) -> FastAPI:
    """
    Construye la aplicación FastAPI

    Args:
        service: Servicio de sincronización (por defecto se crea desde el entorno)
        start_scheduler: Arranca el cron si SYNC_SCHEDULE_ENABLED está activo
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if app.state.service is None:
            missing = missing_required_settings()
            if missing:
                _logger.warning(f"Missing environment variables: {', '.join(missing)}")
            app.state.service = SyncService(load_settings())

        settings = app.state.service.settings
        if start_scheduler and settings.scheduler.enabled:
            scheduler = build_scheduler(app.state.service, settings.scheduler)
            scheduler.start()

        yield

        if scheduler is not None:
            # Deja terminar la corrida en curso
            scheduler.shutdown(wait=True)
        app.state.service.close()

    app = FastAPI(
        title='Catalog Sync',
        description='Sincronización de feed de proveedor con catálogo REST',
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_service(request: Request) -> SyncService:
        return request.app.state.service

    @app.get('/')
    async def root():
        return {
            'message': 'Catalog Sync is running!',
            'version': __version__,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'endpoints': [
                'GET /',
                'GET /health',
                'GET /api',
                'GET /api/health',
                'POST /sync',
                'GET /sync/status',
                'GET /sync/progress',
                'GET /sync/preview',
                'GET /api/products/sku/{sku}',
            ],
        }

    @app.get('/api')
    async def api_info():
        return {
            'message': 'API is running!',
            'version': __version__,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    @app.get('/health', response_model=HealthResponse)
    @app.get('/api/health', response_model=HealthResponse)
    async def health():
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=round(time.time() - STARTED_AT, 2),
        )

    @app.post('/sync')
    def trigger_sync(request: Request, background_tasks: BackgroundTasks,
                     background: bool = Query(True, description='Run in background')):
        """
        Dispara una corrida

        - background=true: 202 inmediato, estado en /sync/status
        - background=false: ejecuta y devuelve el reporte completo
        """
        service = get_service(request)

        try:
            run_id = service.trigger()
        except AlreadyRunningError as e:
            body = SyncRejectedResponse(status='already_running', message=str(e))
            return JSONResponse(status_code=409, content=body.model_dump())

        if background:
            background_tasks.add_task(_execute_in_background, service)
            return JSONResponse(status_code=202,
                                content=SyncAcceptedResponse(runId=run_id).model_dump())

        try:
            report = service.execute()
        except FeedUnavailable as e:
            return _failure(502, 'feed_unavailable', e)
        except ConnectivityError as e:
            return _failure(503, 'connectivity', e)
        return report.to_dict()

    @app.get('/sync/status')
    def sync_status(request: Request) -> Dict[str, Any]:
        return get_service(request).status()

    @app.get('/sync/progress')
    def sync_progress(request: Request) -> List[Dict[str, Any]]:
        return [progress_as_dict(e) for e in get_service(request).progress_events()]

    @app.get('/sync/preview')
    def sync_preview(request: Request, limit: int = Query(10, ge=1, le=100)):
        try:
            return get_service(request).preview(limit=limit)
        except FeedUnavailable as e:
            return _failure(502, 'feed_unavailable', e)

    @app.get('/api/products/sku/{sku}')
    def product_by_sku(sku: str, request: Request):
        try:
            product = get_service(request).lookup_sku(sku)
        except ApiError as e:
            raise HTTPException(status_code=502, detail=str(e))
        if product is None:
            raise HTTPException(status_code=404, detail=f"SKU {sku} not found in destination")
        return product

    return app


def _execute_in_background(service: SyncService):
    try:
        service.execute()
    except (FeedUnavailable, ConnectivityError) as e:
        # Queda en service.last_error para /sync/status
        _logger.error(f"Background sync failed: {e}")
