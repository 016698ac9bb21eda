"""Application log setup: plain text for development, JSON lines otherwise."""

import logging

from flask import has_request_context, request
from pythonjsonlogger import jsonlogger

TEXT_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
JSON_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


class RequestContextFilter(logging.Filter):
    """Adds the request path and remote address when logging inside a request."""

    def filter(self, record):
        if has_request_context():
            record.path = request.path
            record.remote_addr = request.remote_addr
        else:
            record.path = None
            record.remote_addr = None
        return True


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    handler = logging.StreamHandler()
    if app.config.get('LOG_FORMAT') == 'json':
        handler.setFormatter(jsonlogger.JsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(RequestContextFilter())

    package_logger = logging.getLogger('flipflow')
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)

    app.logger.setLevel(level)
    return handler
