# -*- coding: utf-8 -*-
"""
Línea de comandos

    python -m catalog_sync sync      # una corrida, reporte JSON por stdout
    python -m catalog_sync serve     # API HTTP (uvicorn)
"""

import argparse
import json
import logging
import sys

from .config import load_settings, missing_required_settings
from .services.api_client import ConnectivityError
from .services.feed_reader import FeedUnavailable
from .services.sync_service import SyncService

_logger = logging.getLogger('catalog_sync')


def _run_once(args) -> int:
    settings = load_settings(args.env_file)
    service = SyncService(settings)
    try:
        report = service.sync_products()
    except (FeedUnavailable, ConnectivityError) as e:
        _logger.error(f"Sync failed: {e}")
        print(json.dumps({'success': False, 'error': service.last_error}, indent=2))
        return 1
    finally:
        service.close()

    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0


def _serve(args) -> int:
    import uvicorn

    from .app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog='catalog_sync', description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('--log-level', default='INFO')
    parser.add_argument('--env-file', default=None, help='Ruta a un archivo .env')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('sync', help='Ejecuta una corrida de sincronización')

    serve = subparsers.add_parser('serve', help='Arranca la API HTTP')
    serve.add_argument('--host', default='0.0.0.0')
    serve.add_argument('--port', type=int, default=3000)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    missing = missing_required_settings(args.env_file)
    if missing:
        _logger.warning(f"Missing environment variables: {', '.join(missing)}")

    if args.command == 'sync':
        return _run_once(args)
    return _serve(args)


if __name__ == '__main__':
    sys.exit(main())
