"""
PDF to page-image conversion for the flipbook viewer.

Each page is rasterized with PyMuPDF and re-encoded with Pillow as a JPEG
data URL, which the page-flip widget consumes directly.
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import fitz  # pymupdf
import requests
from PIL import Image

from flipflow.errors import PDFLoadError

logger = logging.getLogger(__name__)


@dataclass
class PDFPage:
    page_number: int
    image_data: str  # data:image/jpeg;base64,...
    width: int
    height: int


@dataclass
class PDFDocument:
    pages: List[PDFPage] = field(default_factory=list)
    total_pages: int = 0
    title: Optional[str] = None


class PDFProcessor:
    """Loads a PDF from a URL or bytes and renders every page."""

    def __init__(self, scale: float = 2.0, jpeg_quality: int = 90, max_bytes: int = 100 * 1024 * 1024,
                 timeout: float = 30.0, progress: Optional[Callable[[int, int], None]] = None):
        self.scale = scale
        self.jpeg_quality = jpeg_quality
        self.max_bytes = max_bytes
        self.timeout = timeout
        self.progress = progress
        self._doc = None

    @classmethod
    def from_config(cls, config, **kwargs) -> 'PDFProcessor':
        return cls(scale=config.get('PDF_RENDER_SCALE', 2.0),
                   jpeg_quality=config.get('PDF_JPEG_QUALITY', 90),
                   max_bytes=config.get('MAX_PDF_SIZE', 100 * 1024 * 1024),
                   timeout=config.get('PDF_DOWNLOAD_TIMEOUT', 30.0),
                   **kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.destroy()
        return False

    def load_pdf(self, url: str, max_pages: Optional[int] = None) -> PDFDocument:
        """Download a PDF and render its pages."""
        logger.info(f"PDFProcessor: Downloading {url[:80]}")
        data = self._download(url)
        return self.load_pdf_from_file(data, filename=url.rsplit('/', 1)[-1], max_pages=max_pages)

    def load_pdf_from_file(self, data: bytes, filename: Optional[str] = None,
                           max_pages: Optional[int] = None) -> PDFDocument:
        """
        Render PDF bytes into page images.

        Raises:
            PDFLoadError: the document is empty, corrupt, encrypted or fails to render
        """
        if not data:
            raise PDFLoadError()
        if len(data) > self.max_bytes:
            logger.warning(f"PDFProcessor: {filename} exceeds {self.max_bytes} bytes")
            raise PDFLoadError()

        self.destroy()
        try:
            self._doc = fitz.open(stream=data, filetype='pdf')
        except Exception as e:
            logger.warning(f"PDFProcessor: Cannot open {filename}: {e}")
            raise PDFLoadError() from e

        doc = self._doc
        if doc.needs_pass:
            logger.warning(f"PDFProcessor: {filename} is password protected")
            self.destroy()
            raise PDFLoadError()
        if doc.page_count == 0:
            self.destroy()
            raise PDFLoadError()

        total = doc.page_count if max_pages is None else min(doc.page_count, max_pages)
        title = (doc.metadata or {}).get('title') or None

        pages = []
        try:
            for index in range(total):
                pages.append(self._render_page(doc.load_page(index), index + 1))
                if self.progress:
                    self.progress(index + 1, total)
        except Exception as e:
            logger.error(f"PDFProcessor: Render failed for {filename}: {e}")
            self.destroy()
            raise PDFLoadError() from e

        logger.info(f"PDFProcessor: Rendered {total} pages from {filename}")
        return PDFDocument(pages=pages, total_pages=total, title=title)

    def _render_page(self, page, page_number: int) -> PDFPage:
        pix = page.get_pixmap(matrix=fitz.Matrix(self.scale, self.scale), alpha=False)
        image = Image.frombytes('RGB', (pix.width, pix.height), pix.samples)
        buffer = io.BytesIO()
        image.save(buffer, format='JPEG', quality=self.jpeg_quality)
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        return PDFPage(page_number=page_number,
                       image_data=f'data:image/jpeg;base64,{encoded}',
                       width=pix.width, height=pix.height)

    def _download(self, url: str) -> bytes:
        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            content_length = response.headers.get('content-length')
            if content_length and int(content_length) > self.max_bytes:
                logger.warning(f"PDFProcessor: File too large: {content_length} bytes")
                raise PDFLoadError()

            content = b''
            for chunk in response.iter_content(chunk_size=64 * 1024):
                content += chunk
                if len(content) > self.max_bytes:
                    logger.warning("PDFProcessor: Downloaded content exceeds limit")
                    raise PDFLoadError()
            return content
        except requests.exceptions.Timeout as e:
            logger.warning(f"PDFProcessor: Download timeout for {url[:80]}")
            raise PDFLoadError() from e
        except requests.exceptions.RequestException as e:
            logger.error(f"PDFProcessor: Download error: {e}")
            raise PDFLoadError() from e

    def destroy(self):
        """Release the open document, if any."""
        if self._doc is not None:
            self._doc.close()
            self._doc = None
