"""
File storage for flipbook PDFs and branding assets.

Uploads are validated locally (type, size, emptiness) before any request is
made. Objects are stored under ``<user_id>/`` so that the storage policies can
restrict writes to the owner's folder.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from flipflow.errors import ValidationError
from flipflow.policies import ASSET_BUCKET, PDF_BUCKET
from flipflow.services.retry import RetryPolicy
from flipflow.utils.messages import (
    UPLOAD_EMPTY_FILE, UPLOAD_IMAGE_TOO_LARGE, UPLOAD_INVALID_IMAGE,
    UPLOAD_INVALID_PDF, UPLOAD_PDF_TOO_LARGE,
)

logger = logging.getLogger(__name__)

STORAGE_BUCKETS = {
    'FLIPBOOK_PDFS': PDF_BUCKET,
    'FLIPBOOK_ASSETS': ASSET_BUCKET,
}

MB = 1024 * 1024
PDF_MIME_TYPES = ('application/pdf',)
IMAGE_MIME_TYPES = ('image/png', 'image/jpeg', 'image/jpg', 'image/gif', 'image/webp', 'image/svg+xml')
PDF_URL_EXPIRY = 60 * 60 * 24


@dataclass
class FileValidation:
    is_valid: bool
    error: Optional[str] = None


def format_file_size(size: int) -> str:
    """Human readable size: 0 Bytes, 1.5 KB, 2 MB, ..."""
    if not size:
        return '0 Bytes'
    units = ('Bytes', 'KB', 'MB', 'GB')
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def _upload_size(upload) -> int:
    stream = getattr(upload, 'stream', upload)
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def _upload_bytes(upload) -> bytes:
    stream = getattr(upload, 'stream', upload)
    stream.seek(0)
    data = stream.read()
    stream.seek(0)
    return data


def _extension(filename: str, default: str) -> str:
    if filename and '.' in filename:
        return filename.rsplit('.', 1)[1].lower()
    return default


class StorageService:
    """Uploads, removes and signs URLs for stored files."""

    def __init__(self, platform, max_pdf_size: int = 100 * MB, max_asset_size: int = 5 * MB,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self.platform = platform
        self.max_pdf_size = max_pdf_size
        self.max_asset_size = max_asset_size
        self.sleep = sleep
        self.clock = clock

    def _retry(self, base_delay: float, max_retries: int) -> RetryPolicy:
        return RetryPolicy(base_delay=base_delay, max_retries=max_retries, sleep=self.sleep)

    def validate_pdf_file(self, upload) -> FileValidation:
        content_type = getattr(upload, 'mimetype', None) or getattr(upload, 'content_type', None)
        if content_type not in PDF_MIME_TYPES:
            return FileValidation(False, str(UPLOAD_INVALID_PDF))
        size = _upload_size(upload)
        if size > self.max_pdf_size:
            return FileValidation(False, str(UPLOAD_PDF_TOO_LARGE % {'size': format_file_size(self.max_pdf_size)}))
        if size == 0:
            return FileValidation(False, str(UPLOAD_EMPTY_FILE))
        return FileValidation(True)

    def validate_asset_file(self, upload) -> FileValidation:
        content_type = getattr(upload, 'mimetype', None) or getattr(upload, 'content_type', None)
        if content_type not in IMAGE_MIME_TYPES:
            return FileValidation(False, str(UPLOAD_INVALID_IMAGE))
        size = _upload_size(upload)
        if size > self.max_asset_size:
            return FileValidation(False, str(UPLOAD_IMAGE_TOO_LARGE % {'size': format_file_size(self.max_asset_size)}))
        if size == 0:
            return FileValidation(False, str(UPLOAD_EMPTY_FILE))
        return FileValidation(True)

    def upload_pdf(self, upload, user_id: str, flipbook_id: str, token: Optional[str] = None) -> str:
        """
        Upload a PDF to ``<user_id>/<flipbook_id>.<ext>``.

        Returns:
            Public URL of the stored file

        Raises:
            ValidationError: file rejected before upload
        """
        validation = self.validate_pdf_file(upload)
        if not validation.is_valid:
            raise ValidationError(validation.error)

        path = f"{user_id}/{flipbook_id}.{_extension(upload.filename, 'pdf')}"
        data = _upload_bytes(upload)

        def _do_upload():
            self.platform.upload(PDF_BUCKET, path, data, 'application/pdf', token=token)

        self._retry(base_delay=2.0, max_retries=3).call(_do_upload)
        logger.info(f"Storage: uploaded PDF {path} ({format_file_size(len(data))})")
        return self.platform.public_url(PDF_BUCKET, path)

    def upload_asset(self, upload, user_id: str, kind: str = 'logo', token: Optional[str] = None) -> str:
        validation = self.validate_asset_file(upload)
        if not validation.is_valid:
            raise ValidationError(validation.error)

        content_type = getattr(upload, 'mimetype', None) or 'application/octet-stream'
        path = f"{user_id}/{kind}_{int(self.clock() * 1000)}.{_extension(upload.filename, 'png')}"
        data = _upload_bytes(upload)

        self._retry(base_delay=1.5, max_retries=3).call(
            lambda: self.platform.upload(ASSET_BUCKET, path, data, content_type, token=token))
        logger.info(f"Storage: uploaded {kind} asset {path}")
        return self.platform.public_url(ASSET_BUCKET, path)

    def delete_file(self, bucket: str, path: str, token: Optional[str] = None) -> None:
        self.platform.remove(bucket, [path], token=token)
        logger.info(f"Storage: removed {bucket}/{path}")

    def get_signed_url(self, bucket: str, path: str, expires_in: int = 3600,
                       token: Optional[str] = None) -> str:
        return self._retry(base_delay=1.0, max_retries=2).call(
            lambda: self.platform.create_signed_url(bucket, path, expires_in, token=token))

    def get_public_url(self, bucket: str, path: str) -> str:
        return self.platform.public_url(bucket, path)

    def get_pdf_url(self, path: str, token: Optional[str] = None) -> str:
        return self.get_signed_url(PDF_BUCKET, path, PDF_URL_EXPIRY, token=token)

    @staticmethod
    def path_from_url(url: str, bucket: str) -> Optional[str]:
        """Object path inside ``bucket`` for a public or signed storage URL."""
        if not url:
            return None
        path = unquote(urlparse(url).path)
        for marker in (f'/object/public/{bucket}/', f'/object/sign/{bucket}/', f'/object/{bucket}/'):
            if marker in path:
                return path.split(marker, 1)[1]
        return None

    format_file_size = staticmethod(format_file_size)
