# -*- coding: utf-8 -*-
"""
Fixtures compartidas: configuración de prueba y catálogo destino en memoria
"""

import threading
from decimal import Decimal
from unittest.mock import Mock

import pytest

from catalog_sync.config import DestinationConfig, FeedSource, Settings, SyncPolicy
from catalog_sync.services.api_client import DuplicateKeyError
from catalog_sync.services.feed_reader import FeedResult


class FakeDestination:
    """Catálogo destino en memoria con la interfaz de DestinationClient"""

    def __init__(self, products=None):
        self.products = {}
        self.next_id = 100
        self.lock = threading.Lock()
        self.calls = []
        self.failures = {}
        self.connectivity_error = None
        for product in products or []:
            self.products[product['id']] = dict(product)

    def check_connectivity(self):
        self.calls.append(('check',))
        if self.connectivity_error is not None:
            raise self.connectivity_error

    def search_by_sku(self, sku):
        with self.lock:
            self.calls.append(('search', sku))
            if sku in self.failures:
                raise self.failures[sku]
            return [dict(p) for p in self.products.values() if p['sku'] == sku]

    def create_product(self, payload):
        with self.lock:
            self.calls.append(('create', payload['sku']))
            if any(p['sku'] == payload['sku'] for p in self.products.values()):
                raise DuplicateKeyError(f"SKU {payload['sku']} already exists", 409)
            new_id = self.next_id
            self.next_id += 1
            self.products[new_id] = dict(payload, id=new_id)
            return {'id': new_id}

    def update_product(self, product_id, payload):
        with self.lock:
            self.calls.append(('update', product_id))
            self.products[product_id].update(payload)
            return {'updateCount': 1}

    def close(self):
        pass

    def count(self, operation):
        return len([c for c in self.calls if c[0] == operation])


@pytest.fixture
def policy():
    return SyncPolicy(
        price_multiplier=Decimal('2'),
        min_price=Decimal('20'),
        batch_size=2,
        call_interval=0.0,
        batch_pause=0.0,
        batch_jitter=0.0,
        max_retries=3,
        retry_base_delay=0.0,
        category_map={'Electronics': 101},
        default_category_id=999,
    )


@pytest.fixture
def primary_source():
    return FeedSource(name='primary', url='http://feeds.test/products.csv', format='csv')


@pytest.fixture
def secondary_source():
    return FeedSource(name='secondary', url='http://feeds.test/products.json', format='json')


@pytest.fixture
def settings(policy, primary_source, secondary_source):
    return Settings(
        sources=(primary_source, secondary_source),
        destination=DestinationConfig(base_url='http://catalog.test', api_token='token'),
        policy=policy,
    )


@pytest.fixture
def feed_records():
    return [
        {'sku': 'A-1', 'name': 'Alpha', 'price': '12', 'stock': '5',
         'category': 'Electronics', 'photo_1': 'https://img.test/a.jpg'},
        {'sku': 'B-2', 'name': 'Beta', 'price': '9', 'stock': '1'},
        {'sku': 'C-3', 'name': 'Gamma', 'price': '0'},
        {'name': 'Sin SKU', 'price': '50'},
        {'sku': 'D-4', 'name': 'Delta', 'price': '30,50', 'stock': '-5'},
    ]


@pytest.fixture
def fake_destination():
    return FakeDestination()


@pytest.fixture
def feed_reader(primary_source, feed_records):
    reader = Mock()
    reader.fetch_feed.return_value = FeedResult(source=primary_source, records=feed_records)
    return reader


@pytest.fixture
def make_destination():
    """Fábrica de catálogos en memoria con productos precargados"""
    return FakeDestination
