"""
Page sources - "given a page number, give me its native size and a raster".

Two interchangeable backends:
- PdfPageSource: decode and rasterize the PDF with PyMuPDF
- ImagePageSource: pages that were pre-rendered to images elsewhere

Everything downstream (display geometry, export) only talks to PageSource.
"""
import base64
import io
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from signdesk.document.coordinates import DEFAULT_PAGE_HEIGHT, DEFAULT_PAGE_WIDTH

logger = logging.getLogger(__name__)


class RenderError(Exception):
    """A page could not be decoded or rasterized."""

    def __init__(self, message: str, page: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.page = page


@dataclass
class PageRaster:
    """A rasterized page as PNG bytes."""
    width: int
    height: int
    png: bytes

    def data_url(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")


class PageSource(ABC):
    """One document's pages, independent of how they are produced."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        ...

    @abstractmethod
    def page_size(self, page: int) -> Tuple[float, float]:
        """Native (width, height) of a 1-indexed page, in points."""

    @abstractmethod
    def rasterize(self, page: int, scale: float) -> PageRaster:
        """Render a 1-indexed page at scale x native size."""

    def page_sizes(self) -> Dict[int, Tuple[float, float]]:
        return {n: self.page_size(n) for n in range(1, self.page_count + 1)}

    def close(self) -> None:
        pass

    def _check_page(self, page: int) -> None:
        if page < 1 or page > self.page_count:
            raise RenderError(
                f"Page {page} does not exist. Document has {self.page_count} pages.",
                page=page,
            )


class PdfPageSource(PageSource):
    """
    Decode-and-rasterize backend using PyMuPDF.

    A fitz document is not safe to use from two threads at once; display
    renders and exports both run in worker threads, so access is serialized.
    """

    def __init__(self, pdf_bytes: bytes):
        self._lock = threading.Lock()
        try:
            self._doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            raise RenderError(f"Invalid PDF file: {e}")

        if self._doc.needs_pass:
            self._doc.close()
            raise RenderError("PDF is password protected")

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def page_size(self, page: int) -> Tuple[float, float]:
        self._check_page(page)
        with self._lock:
            rect = self._doc[page - 1].rect
        return rect.width, rect.height

    def rasterize(self, page: int, scale: float) -> PageRaster:
        self._check_page(page)
        try:
            with self._lock:
                pix = self._doc[page - 1].get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
                png = pix.tobytes("png")
            return PageRaster(width=pix.width, height=pix.height, png=png)
        except Exception as e:
            logger.exception(f"Failed to rasterize page {page}")
            raise RenderError(f"Failed to render page {page}: {e}", page=page)

    def close(self) -> None:
        with self._lock:
            self._doc.close()


@dataclass
class PageImage:
    """
    A pre-rendered page.

    width/height are the page's native size; when missing they are taken
    from the image itself, and failing that default to US Letter.
    """
    data: bytes
    width: Optional[float] = None
    height: Optional[float] = None


class ImagePageSource(PageSource):
    """Pre-rendered page images backend (Pillow)."""

    def __init__(self, images: Sequence[PageImage]):
        self._images: List[PageImage] = list(images)
        self._sizes: Dict[int, Tuple[float, float]] = {}

    @property
    def page_count(self) -> int:
        return len(self._images)

    def _open(self, page: int) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(self._images[page - 1].data))
            img.load()
            return img
        except (UnidentifiedImageError, OSError) as e:
            raise RenderError(f"Failed to decode image for page {page}: {e}", page=page)

    def page_size(self, page: int) -> Tuple[float, float]:
        self._check_page(page)
        if page not in self._sizes:
            entry = self._images[page - 1]
            width, height = entry.width, entry.height
            if not width or not height:
                try:
                    img = self._open(page)
                    width, height = float(img.width), float(img.height)
                except RenderError:
                    logger.warning(f"Page {page} image unreadable, assuming US Letter")
                    width, height = DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT
            self._sizes[page] = (float(width), float(height))
        return self._sizes[page]

    def rasterize(self, page: int, scale: float) -> PageRaster:
        self._check_page(page)
        native_w, native_h = self.page_size(page)
        img = self._open(page)
        target = (max(1, round(native_w * scale)), max(1, round(native_h * scale)))
        try:
            if img.mode != "RGB":
                img = img.convert("RGB")
            if img.size != target:
                img = img.resize(target, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            img.save(buffer, format="PNG")
        except OSError as e:
            raise RenderError(f"Failed to render page {page}: {e}", page=page)
        return PageRaster(width=target[0], height=target[1], png=buffer.getvalue())


def get_page_source(
    backend: str,
    pdf_bytes: Optional[bytes] = None,
    images: Optional[Sequence[PageImage]] = None,
) -> PageSource:
    """
    Pick the page source backend.

    Args:
        backend: "pdf" or "images" (settings.render_backend)
        pdf_bytes: Document bytes for the pdf backend
        images: Pre-rendered pages for the images backend
    """
    if backend == "pdf":
        if pdf_bytes is None:
            raise ValueError("The pdf backend needs the document bytes")
        return PdfPageSource(pdf_bytes)
    if backend == "images":
        if not images:
            raise ValueError("The images backend needs at least one page image")
        return ImagePageSource(images)
    raise ValueError(f"Unsupported render backend: {backend}")
