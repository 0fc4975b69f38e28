"""
Document loading - PDF bytes (uploaded or fetched) or pre-rendered page images.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import httpx

from signdesk.config import Settings, get_settings
from signdesk.pdf.pages import (
    PageImage,
    PageSource,
    RenderError,
    get_page_source,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
}


class DocumentLoadError(Exception):
    """Document could not be loaded."""

    def __init__(self, message: str, code: str = "LOAD_ERROR"):
        super().__init__(message)
        self.code = code
        self.message = message


class InvalidInputError(DocumentLoadError):
    """Wrong file type or oversized input. Nothing was loaded."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_INPUT")


class DocumentDecodeError(DocumentLoadError):
    """Input had the right type but could not be decoded."""

    def __init__(self, message: str):
        super().__init__(message, code="DECODE_ERROR")


@dataclass
class LoadedDocument:
    """A decoded document ready for editing and signing."""
    file_name: str
    source_url: str
    source: PageSource
    pdf_bytes: Optional[bytes] = None
    document_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def page_count(self) -> int:
        return self.source.page_count

    def page_sizes(self) -> Dict[int, Tuple[float, float]]:
        return self.source.page_sizes()

    def close(self) -> None:
        self.source.close()


def is_pdf_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and "pdf" in content_type.lower()


def is_page_size(size) -> bool:
    """(width, height): two positive numbers."""
    if not isinstance(size, (list, tuple)) or len(size) != 2:
        return False
    return all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0
        for v in size
    )


class DocumentLoader:
    """Validates and decodes incoming documents."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _check_size(self, data: bytes) -> None:
        if len(data) > self.settings.max_upload_bytes:
            raise InvalidInputError(
                f"File is too large ({len(data)} bytes, limit {self.settings.max_upload_bytes})"
            )

    def load_bytes(
        self,
        data: bytes,
        content_type: Optional[str],
        file_name: str,
        source_url: Optional[str] = None,
    ) -> LoadedDocument:
        """
        Decode a PDF.

        Raises:
            InvalidInputError: Not a PDF MIME type, or too large
            DocumentDecodeError: Corrupt, empty or encrypted PDF
        """
        if not is_pdf_content_type(content_type):
            raise InvalidInputError("Please upload a PDF file")
        self._check_size(data)
        if not data.lstrip()[:5] == PDF_MAGIC:
            raise DocumentDecodeError("File does not look like a PDF")

        try:
            source = get_page_source("pdf", pdf_bytes=data)
        except RenderError as e:
            raise DocumentDecodeError(f"Failed to load PDF: {e.message}")

        if source.page_count == 0:
            source.close()
            raise DocumentDecodeError("PDF has no pages")

        document = LoadedDocument(
            file_name=file_name,
            source_url=source_url or file_name,
            source=source,
            pdf_bytes=data,
        )
        logger.info(f"PDF loaded successfully: {document.page_count} page(s)")
        return document

    def load_images(
        self,
        images: Sequence[Tuple[bytes, Optional[str]]],
        file_name: str,
        source_url: Optional[str] = None,
        sizes: Optional[Sequence[Optional[Tuple[float, float]]]] = None,
    ) -> LoadedDocument:
        """
        Build a document from pre-rendered page images, in page order.

        Args:
            images: (bytes, content_type) per page
            sizes: Optional native (width, height) per page
        """
        if not images:
            raise InvalidInputError("At least one page image is required")

        pages = []
        for index, (data, content_type) in enumerate(images):
            if (content_type or "").lower() not in IMAGE_TYPES:
                raise InvalidInputError(f"Page {index + 1}: unsupported image type {content_type}")
            self._check_size(data)
            size = sizes[index] if sizes and index < len(sizes) else None
            if size is not None and not is_page_size(size):
                raise InvalidInputError(
                    f"Page {index + 1}: size must be [width, height] in positive points, got {size!r}"
                )
            pages.append(PageImage(
                data=data,
                width=size[0] if size else None,
                height=size[1] if size else None,
            ))

        source = get_page_source("images", images=pages)
        try:
            # Decode every page now so a broken image fails the load, not the export
            for page in range(1, source.page_count + 1):
                source.rasterize(page, 0.1)
        except RenderError as e:
            raise DocumentDecodeError(e.message)

        document = LoadedDocument(
            file_name=file_name,
            source_url=source_url or file_name,
            source=source,
        )
        logger.info(f"Loaded {document.page_count} pre-rendered page(s)")
        return document

    async def load(
        self,
        data: bytes,
        content_type: Optional[str],
        file_name: str,
        source_url: Optional[str] = None,
    ) -> LoadedDocument:
        """load_bytes() off the event loop."""
        return await asyncio.to_thread(self.load_bytes, data, content_type, file_name, source_url)

    async def load_url(
        self,
        url: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> LoadedDocument:
        """Fetch a PDF over HTTP(S) and decode it."""
        if not url.startswith(("http://", "https://")):
            raise InvalidInputError("Only http(s) URLs can be loaded")

        try:
            if http_client is not None:
                response = await http_client.get(url, timeout=30.0, follow_redirects=True)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=30.0, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DocumentLoadError(f"Failed to fetch document: HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise DocumentLoadError(f"Failed to fetch document: {e}")

        content_type = response.headers.get("content-type", "")
        file_name = url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0] or "document.pdf"
        return await self.load(response.content, content_type, file_name, source_url=url)
