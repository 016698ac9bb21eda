"""
Platform, storage, PDF and payment services.

Services are built once per app in ``init_services`` and reached from views
through ``current_services()``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from flipflow.errors import ConfigurationError
from flipflow.services.analytics import AnalyticsService
from flipflow.services.flipbooks import FlipbookService
from flipflow.services.payments import RazorpayGateway
from flipflow.services.pdf_processor import PDFProcessor
from flipflow.services.permissions import PermissionValidator
from flipflow.services.plan_manager import PlanManager
from flipflow.services.platform import PlatformClient
from flipflow.services.profiles import ProfileService
from flipflow.services.query_client import QueryClient
from flipflow.services.storage import StorageService

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'flipflow'


@dataclass
class ServiceRegistry:
    platform: PlatformClient
    queries: QueryClient
    storage: StorageService
    profiles: ProfileService
    flipbooks: FlipbookService
    analytics: AnalyticsService
    payments: Optional[RazorpayGateway] = None

    def pdf_processor(self, **kwargs) -> PDFProcessor:
        return PDFProcessor.from_config(current_app.config, **kwargs)


def init_services(app, cache, platform_client=None) -> ServiceRegistry:
    platform = platform_client or PlatformClient.from_config(app.config)

    queries = QueryClient()
    queries.init_app(app, cache)

    storage = StorageService(platform,
                             max_pdf_size=app.config['MAX_PDF_SIZE'],
                             max_asset_size=app.config['MAX_ASSET_SIZE'])
    profiles = ProfileService(platform, queries)

    payments = None
    if app.config.get('PAYMENTS_ENABLED', True):
        try:
            payments = RazorpayGateway.from_config(app.config)
        except ConfigurationError:
            logger.error("Payments enabled but RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET are missing")
            raise

    registry = ServiceRegistry(
        platform=platform,
        queries=queries,
        storage=storage,
        profiles=profiles,
        flipbooks=FlipbookService(platform, queries, storage, profiles),
        analytics=AnalyticsService(platform, queries),
        payments=payments,
    )
    app.extensions[EXTENSION_KEY] = registry
    return registry


def current_services() -> ServiceRegistry:
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    'ServiceRegistry',
    'init_services',
    'current_services',
    'PlatformClient',
    'QueryClient',
    'StorageService',
    'ProfileService',
    'FlipbookService',
    'AnalyticsService',
    'RazorpayGateway',
    'PDFProcessor',
    'PermissionValidator',
    'PlanManager',
]
