import os
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

MB = 1024 * 1024


class Config(BaseSettings):
    # Security configuration
    SECRET_KEY: str

    # Application environment: development | staging | production
    APP_ENV: str = os.getenv('FLASK_ENV', 'development')
    TESTING: bool = False

    # Hosted data platform (auth, REST, storage)
    SUPABASE_URL: str = 'http://localhost:54321'
    SUPABASE_ANON_KEY: str = ''
    PLATFORM_TIMEOUT: float = 10.0

    # Payment gateway; credentials are required at startup when PAYMENTS_ENABLED is set
    PAYMENTS_ENABLED: bool = True
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    PREMIUM_PLAN_AMOUNT: int = 49900  # paise
    PAYMENT_CURRENCY: str = 'INR'

    # Upload limits
    MAX_PDF_SIZE: int = 100 * MB
    MAX_ASSET_SIZE: int = 5 * MB
    MAX_CONTENT_LENGTH: int = 101 * MB

    @field_validator('MAX_PDF_SIZE', 'MAX_ASSET_SIZE', 'MAX_CONTENT_LENGTH', mode='before')
    def _parse_size(cls, v):
        """Allow sizes to be given in .env with inline comments like '5242880  # 5MB'."""
        if isinstance(v, str):
            v = v.split('#', 1)[0].strip()
        return int(v)

    # PDF rendering
    PDF_RENDER_SCALE: float = 2.0
    PDF_JPEG_QUALITY: int = 90
    PDF_DOWNLOAD_TIMEOUT: float = 30.0

    # Retry with capped exponential backoff and jitter
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MULTIPLIER: float = 2.0
    RETRY_MAX_DELAY: float = 30.0
    RETRY_MAX_RETRIES: int = 3
    RETRY_JITTER: float = 0.1

    # Caching configuration
    CACHE_TYPE: str = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT: int = 600
    CACHE_THRESHOLD: int = 1000
    CACHE_PAGES_TIMEOUT: int = 3600  # rendered flipbook pages

    # Logging
    LOG_LEVEL: str = 'INFO'
    LOG_FORMAT: str = 'text'  # text | json

    # Error boundary
    SUPPORT_EMAIL: str = 'support@flipflow.com'
    ERROR_BOUNDARY_MAX_RETRIES: int = 3

    # Internationalization
    LANGUAGES: list = ['en']
    BABEL_DEFAULT_LOCALE: str = 'en'
    BABEL_DEFAULT_TIMEZONE: str = 'UTC'
    BABEL_TRANSLATION_DIRECTORIES: str = os.path.join(BASE_DIR, 'translations')

    WTF_CSRF_ENABLED: bool = True

    # Session and cookie security
    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SECURE: bool = False  # promoted in production
    SESSION_COOKIE_SAMESITE: str = 'Lax'
    PERMANENT_SESSION_LIFETIME: int = 3600

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    @model_validator(mode='after')
    def enforce_production_defaults(self) -> 'Config':
        """Secure cookies in production unless the environment says otherwise."""
        if self.APP_ENV.lower() != 'production':
            self.SESSION_COOKIE_SECURE = False
        elif 'SESSION_COOKIE_SECURE' not in os.environ:
            self.SESSION_COOKIE_SECURE = True
        self.SUPABASE_URL = self.SUPABASE_URL.rstrip('/')
        return self

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == 'production'
