# -*- coding: utf-8 -*-
"""
Catalog Sync
Sincronización de un feed de proveedor (CSV/JSON) con un catálogo REST
"""

__version__ = '1.0.0'
