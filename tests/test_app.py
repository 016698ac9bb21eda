import logging

import pytest
from pythonjsonlogger import jsonlogger

from conftest import FakePlatform, make_config
from flipflow import create_app
from flipflow.config import Config
from flipflow.errors import ConfigurationError
from flipflow.utils.logging import RequestContextFilter


def test_config_sizes_accept_inline_comments(monkeypatch):
    monkeypatch.setenv('MAX_ASSET_SIZE', '1048576  # 1MB')
    config = Config(SECRET_KEY='x', MAX_PDF_SIZE='5242880  # 5MB')
    assert config.MAX_PDF_SIZE == 5242880
    assert config.MAX_ASSET_SIZE == 1048576


def test_config_strips_platform_url_slash():
    assert Config(SECRET_KEY='x', SUPABASE_URL='https://abc.supabase.co/').SUPABASE_URL == \
        'https://abc.supabase.co'


def test_production_promotes_secure_cookies(monkeypatch):
    monkeypatch.delenv('SESSION_COOKIE_SECURE', raising=False)
    config = Config(SECRET_KEY='x', APP_ENV='production')
    assert config.is_production
    assert config.SESSION_COOKIE_SECURE is True

    assert Config(SECRET_KEY='x', APP_ENV='development', SESSION_COOKIE_SECURE=True).SESSION_COOKIE_SECURE is False


def test_production_respects_explicit_cookie_setting(monkeypatch):
    monkeypatch.setenv('SESSION_COOKIE_SECURE', 'false')
    assert Config(SECRET_KEY='x', APP_ENV='production').SESSION_COOKIE_SECURE is False


def test_app_config_loaded(app):
    assert app.config['TESTING'] is True
    assert app.config['SUPABASE_URL'] == 'http://platform.test'
    assert 'flipflow' in app.extensions
    assert {'main', 'auth', 'dashboard', 'flipbooks', 'payments'} <= set(app.blueprints)


def test_json_logging():
    create_app(make_config(LOG_FORMAT='json'), platform_client=FakePlatform())
    handlers = logging.getLogger('flipflow').handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, jsonlogger.JsonFormatter)


def test_text_logging_level():
    create_app(make_config(LOG_LEVEL='debug'), platform_client=FakePlatform())
    package_logger = logging.getLogger('flipflow')
    assert package_logger.level == logging.DEBUG
    assert not isinstance(package_logger.handlers[0].formatter, jsonlogger.JsonFormatter)


def test_request_context_filter(app):
    record = logging.LogRecord('flipflow', logging.INFO, __file__, 1, 'hello', None, None)
    assert RequestContextFilter().filter(record)
    assert record.path is None

    with app.test_request_context('/pricing'):
        RequestContextFilter().filter(record)
    assert record.path == '/pricing'


def test_missing_payment_credentials():
    with pytest.raises(ConfigurationError):
        create_app(make_config(RAZORPAY_KEY_ID=None), platform_client=FakePlatform())


def test_payments_can_be_disabled():
    app = create_app(make_config(PAYMENTS_ENABLED=False, RAZORPAY_KEY_ID=None, RAZORPAY_KEY_SECRET=None),
                     platform_client=FakePlatform())
    assert app.extensions['flipflow'].payments is None
