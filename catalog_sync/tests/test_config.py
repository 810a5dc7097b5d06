# -*- coding: utf-8 -*-
"""
Tests para la carga de configuración desde el entorno
"""

from decimal import Decimal

import pytest

from catalog_sync.config import (
    ConfigError,
    FeedSource,
    load_settings,
    missing_required_settings,
)

ENV_VARS = (
    'FEED_SOURCES', 'FEED_PRIMARY_URL', 'FEED_PRIMARY_FORMAT', 'FEED_SECONDARY_URL',
    'FEED_SECONDARY_FORMAT', 'FEED_CSV_DELIMITER', 'FEED_JSON_FIELD', 'FEED_TIMEOUT',
    'PRICE_MULTIPLIER', 'MIN_PRICE', 'REQUIRE_IMAGES', 'CHECK_IMAGE_URLS',
    'IMAGE_ALLOWED_HOSTS', 'BATCH_SIZE', 'CALL_INTERVAL_SECONDS', 'BATCH_PAUSE_SECONDS',
    'MAX_RETRIES', 'CATEGORY_MAP', 'DEFAULT_CATEGORY_ID', 'DESTINATION_BASE_URL',
    'DESTINATION_API_TOKEN', 'DESTINATION_TIMEOUT', 'SYNC_SCHEDULE_ENABLED', 'SYNC_CRON',
)


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / '.env'
    path.write_text('')
    return str(path)


class TestLoadSettings:
    """Construcción de Settings"""

    def test_defaults(self, env_file):
        """Test: Valores por defecto sin variables definidas"""
        settings = load_settings(env_file)

        assert settings.sources == ()
        assert settings.destination.base_url == 'http://localhost:8000'
        assert settings.policy.price_multiplier == Decimal('1')
        assert settings.policy.batch_size == 5
        assert settings.policy.require_images is False
        assert settings.scheduler.enabled is False
        assert settings.scheduler.cron == '0 */6 * * *'

    def test_primary_and_secondary(self, env_file, monkeypatch):
        """Test: Fuentes primaria y secundaria en orden"""
        monkeypatch.setenv('FEED_PRIMARY_URL', 'http://feeds.test/a.csv')
        monkeypatch.setenv('FEED_SECONDARY_URL', 'http://feeds.test/b.json')
        monkeypatch.setenv('FEED_SECONDARY_FORMAT', 'JSON')
        monkeypatch.setenv('FEED_CSV_DELIMITER', ',')

        sources = load_settings(env_file).sources

        assert [s.name for s in sources] == ['primary', 'secondary']
        assert sources[0].delimiter == ','
        assert sources[1].format == 'json'

    def test_feed_sources_json_takes_precedence(self, env_file, monkeypatch):
        """Test: FEED_SOURCES tiene precedencia"""
        monkeypatch.setenv('FEED_PRIMARY_URL', 'http://ignored.test')
        monkeypatch.setenv('FEED_SOURCES', '[{"name": "erp", "url": "http://erp.test/x", '
                                           '"format": "json", "json_field": "items"}]')

        sources = load_settings(env_file).sources

        assert len(sources) == 1
        assert sources[0].name == 'erp'
        assert sources[0].json_field == 'items'

    def test_policy_values(self, env_file, monkeypatch):
        """Test: Política de precio, imágenes y batches"""
        monkeypatch.setenv('PRICE_MULTIPLIER', '1.35')
        monkeypatch.setenv('MIN_PRICE', '20')
        monkeypatch.setenv('REQUIRE_IMAGES', 'true')
        monkeypatch.setenv('IMAGE_ALLOWED_HOSTS', 'cdn.test, Img.Test')
        monkeypatch.setenv('BATCH_SIZE', '0')
        monkeypatch.setenv('CATEGORY_MAP', '{"Electronics": "101"}')
        monkeypatch.setenv('DEFAULT_CATEGORY_ID', '999')

        policy = load_settings(env_file).policy

        assert policy.price_multiplier == Decimal('1.35')
        assert policy.min_price == Decimal('20')
        assert policy.require_images is True
        assert policy.allowed_image_hosts == ('cdn.test', 'img.test')
        assert policy.batch_size == 1
        assert policy.category_map == {'Electronics': 101}
        assert policy.default_category_id == 999

    def test_invalid_numbers_fall_back(self, env_file, monkeypatch):
        """Test: Números inválidos usan el valor por defecto"""
        monkeypatch.setenv('MAX_RETRIES', 'many')
        monkeypatch.setenv('PRICE_MULTIPLIER', 'x2')

        policy = load_settings(env_file).policy

        assert policy.max_retries == 5
        assert policy.price_multiplier == Decimal('1')

    def test_malformed_json_raises(self, env_file, monkeypatch):
        """Test: JSON inválido es un error de configuración"""
        monkeypatch.setenv('CATEGORY_MAP', '{not json')

        with pytest.raises(ConfigError):
            load_settings(env_file)

    def test_env_file_is_read(self, env_file, monkeypatch):
        """Test: Variables leídas del archivo .env"""
        with open(env_file, 'w') as f:
            f.write('DESTINATION_BASE_URL=http://from-dotenv.test\n')

        settings = load_settings(env_file)

        assert settings.destination.base_url == 'http://from-dotenv.test'

    def test_unsupported_feed_format(self):
        """Test: Formato de feed desconocido"""
        with pytest.raises(ConfigError):
            FeedSource(name='x', url='http://x.test', format='xml')

    @pytest.mark.parametrize('delimiter', [';;', ''])
    def test_delimiter_must_be_single_character(self, delimiter):
        """Test: Delimitador CSV de un único carácter"""
        with pytest.raises(ConfigError):
            FeedSource(name='x', url='http://x.test', delimiter=delimiter)

    @pytest.mark.parametrize('timeout', [0, -5.0, 'soon'])
    def test_timeout_must_be_positive(self, timeout):
        """Test: Timeout de fuente positivo y numérico"""
        with pytest.raises(ConfigError):
            FeedSource(name='x', url='http://x.test', timeout=timeout)

    def test_feed_sources_invalid_timeout(self, env_file, monkeypatch):
        """Test: Timeout no numérico en FEED_SOURCES es error de configuración"""
        monkeypatch.setenv('FEED_SOURCES', '[{"url": "http://erp.test/x", "timeout": "soon"}]')

        with pytest.raises(ConfigError, match='timeout'):
            load_settings(env_file)

    def test_feed_sources_invalid_delimiter(self, env_file, monkeypatch):
        """Test: Delimitador de varios caracteres en FEED_SOURCES"""
        monkeypatch.setenv('FEED_SOURCES', '[{"url": "http://erp.test/x", "delimiter": "||"}]')

        with pytest.raises(ConfigError, match='delimiter'):
            load_settings(env_file)


class TestMissingSettings:
    """Variables requeridas"""

    def test_all_missing(self, env_file):
        """Test: Sin destino ni feed se listan todas"""
        missing = missing_required_settings(env_file)

        assert missing == ['DESTINATION_BASE_URL', 'DESTINATION_API_TOKEN', 'FEED_PRIMARY_URL']

    def test_complete(self, env_file, monkeypatch):
        """Test: Configuración completa"""
        monkeypatch.setenv('DESTINATION_BASE_URL', 'http://catalog.test')
        monkeypatch.setenv('DESTINATION_API_TOKEN', 'token')
        monkeypatch.setenv('FEED_SECONDARY_URL', 'http://feeds.test/b.json')

        assert missing_required_settings(env_file) == []
