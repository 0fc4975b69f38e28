# PDF module
from signdesk.pdf.pages import (
    PageSource,
    PdfPageSource,
    ImagePageSource,
    PageImage,
    PageRaster,
    RenderError,
    get_page_source,
)
from signdesk.pdf.loader import (
    DocumentLoader,
    LoadedDocument,
    DocumentLoadError,
    DocumentDecodeError,
    InvalidInputError,
)
from signdesk.pdf.export import (
    SignedPdfExporter,
    PageTransform,
    compute_page_transform,
    place_field,
    get_pdf_exporter,
    A4_WIDTH_PT,
    A4_HEIGHT_PT,
)
from signdesk.pdf.capture import render_strokes, render_typed_name, CaptureRenderError

__all__ = [
    "PageSource",
    "PdfPageSource",
    "ImagePageSource",
    "PageImage",
    "PageRaster",
    "RenderError",
    "get_page_source",
    "DocumentLoader",
    "LoadedDocument",
    "DocumentLoadError",
    "DocumentDecodeError",
    "InvalidInputError",
    "SignedPdfExporter",
    "PageTransform",
    "compute_page_transform",
    "place_field",
    "get_pdf_exporter",
    "A4_WIDTH_PT",
    "A4_HEIGHT_PT",
    "render_strokes",
    "render_typed_name",
    "CaptureRenderError",
]
