"""
Signed PDF export using PyMuPDF (fitz).

Every source page is rasterized at a fixed quality scale, fitted and centered
onto an A4 output page, and the filled field values are composited on top:
date fields as centered text, signatures/initials as images stretched to
their box. The output does not depend on the scale used on screen.
"""
import base64
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import fitz  # PyMuPDF

from signdesk.models import FieldType, SignatureField, is_image_value
from signdesk.pdf.pages import PageSource, RenderError
from signdesk.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

# A4 in points (72 points per inch)
A4_WIDTH_PT = 595.28
A4_HEIGHT_PT = 841.89

# Date text size at fitScale 1.0
DATE_FONT_SIZE = 12
DATE_FONT = "helv"


@dataclass(frozen=True)
class PageTransform:
    """Fit-and-center placement of a native page on the output page."""
    fit_scale: float
    offset_x: float
    offset_y: float
    scaled_width: float
    scaled_height: float

    def place(self, x: float, y: float, width: float, height: float) -> Tuple[float, float, float, float]:
        """Native box -> (x, y, width, height) on the output page."""
        return (
            self.offset_x + x * self.fit_scale,
            self.offset_y + y * self.fit_scale,
            width * self.fit_scale,
            height * self.fit_scale,
        )

    def page_rect(self) -> fitz.Rect:
        return fitz.Rect(
            self.offset_x,
            self.offset_y,
            self.offset_x + self.scaled_width,
            self.offset_y + self.scaled_height,
        )


def compute_page_transform(
    native_width: float,
    native_height: float,
    output_width: float = A4_WIDTH_PT,
    output_height: float = A4_HEIGHT_PT,
) -> PageTransform:
    """
    Uniformly scale a page to fit the output page, centering the leftover margin.

    fitScale = min(outW / nativeW, outH / nativeH)
    offsetX  = (outW - nativeW * fitScale) / 2, same for Y
    """
    if native_width <= 0 or native_height <= 0:
        raise ValueError(f"Native page size must be positive, got {native_width}x{native_height}")
    fit_scale = min(output_width / native_width, output_height / native_height)
    scaled_width = native_width * fit_scale
    scaled_height = native_height * fit_scale
    return PageTransform(
        fit_scale=fit_scale,
        offset_x=(output_width - scaled_width) / 2,
        offset_y=(output_height - scaled_height) / 2,
        scaled_width=scaled_width,
        scaled_height=scaled_height,
    )


def place_field(field: SignatureField, transform: PageTransform) -> fitz.Rect:
    """Output-page rectangle of a field."""
    x, y, width, height = transform.place(field.x, field.y, field.width, field.height)
    return fitz.Rect(x, y, x + width, y + height)


def decode_image_data_url(value: str) -> bytes:
    """
    Decode a base64 image data URL ("data:image/png;base64,...").

    Raises:
        RenderError: If the value is not a base64 image data URL
    """
    if not is_image_value(value):
        raise RenderError("Field value is not image data")
    header, _, payload = value.partition(",")
    if not header.endswith(";base64") or not payload:
        raise RenderError("Field image is not base64 encoded")
    try:
        return base64.b64decode(payload, validate=True)
    except (ValueError, TypeError) as e:
        raise RenderError(f"Failed to decode field image: {e}")


def signed_file_name() -> str:
    return f"signed-document-{int(utc_now().timestamp() * 1000)}.pdf"


class SignedPdfExporter:
    """Renders a source document plus filled fields into a new PDF."""

    def __init__(
        self,
        render_scale: float = 2.0,
        output_size: Tuple[float, float] = (A4_WIDTH_PT, A4_HEIGHT_PT),
    ):
        self.render_scale = render_scale
        self.output_width, self.output_height = output_size

    def export(self, source: PageSource, fields: Iterable[SignatureField]) -> bytes:
        """
        Render the signed document.

        Returns:
            PDF bytes. Equal input always gives byte-identical output.

        Raises:
            RenderError: If any page or field image fails; no partial output
        """
        by_page: Dict[int, List[SignatureField]] = defaultdict(list)
        for field in fields:
            if field.is_filled and field.value:
                by_page[field.page].append(field)

        out = fitz.open()
        try:
            for page_num in range(1, source.page_count + 1):
                self._render_page(out, source, page_num, by_page.get(page_num, []))

            # no_new_id keeps the trailer /ID stable so both output paths match
            data = out.tobytes(garbage=3, deflate=True, no_new_id=True)
        except RenderError:
            raise
        except Exception as e:
            logger.exception("Failed to export signed PDF")
            raise RenderError(f"Failed to export signed PDF: {e}")
        finally:
            out.close()

        logger.info(
            f"Exported signed PDF: {source.page_count} page(s), "
            f"{sum(len(v) for v in by_page.values())} filled field(s), {len(data)} bytes"
        )
        return data

    def thumbnail_base64(self, source: PageSource, scale: float = 0.25) -> Optional[str]:
        """First page as a small PNG, base64 encoded. None for empty documents."""
        if source.page_count == 0:
            return None
        raster = source.rasterize(1, scale)
        return base64.b64encode(raster.png).decode("ascii")

    def _render_page(
        self,
        out: fitz.Document,
        source: PageSource,
        page_num: int,
        fields: List[SignatureField],
    ) -> None:
        native_width, native_height = source.page_size(page_num)
        raster = source.rasterize(page_num, self.render_scale)
        transform = compute_page_transform(
            native_width, native_height, self.output_width, self.output_height
        )

        page = out.new_page(width=self.output_width, height=self.output_height)
        page.insert_image(transform.page_rect(), stream=raster.png, keep_proportion=False)

        for field in fields:
            self._draw_field(page, field, transform)

    def _draw_field(self, page: fitz.Page, field: SignatureField, transform: PageTransform) -> None:
        rect = place_field(field, transform)
        x, y, width, height = rect.x0, rect.y0, rect.width, rect.height

        if field.type == FieldType.DATE:
            font_size = DATE_FONT_SIZE * transform.fit_scale
            text_width = fitz.get_text_length(field.value, fontname=DATE_FONT, fontsize=font_size)
            # Baseline sits ~0.35em below the box's vertical center
            origin = fitz.Point(
                x + width / 2 - text_width / 2,
                y + height / 2 + font_size * 0.35,
            )
            page.insert_text(origin, field.value, fontname=DATE_FONT, fontsize=font_size, color=(0, 0, 0))
        elif is_image_value(field.value):
            image = decode_image_data_url(field.value)
            try:
                page.insert_image(rect, stream=image, keep_proportion=False)
            except Exception as e:
                raise RenderError(f"Failed to place {field.type.value} image: {e}", page=field.page)
        else:
            logger.warning(f"Skipping {field.type.value} field {field.id[:8]}: value is not image data")


# Singleton instance
_exporter: Optional[SignedPdfExporter] = None


def get_pdf_exporter() -> SignedPdfExporter:
    """Get the exporter singleton, configured from settings."""
    global _exporter
    if _exporter is None:
        from signdesk.config import get_settings
        _exporter = SignedPdfExporter(render_scale=get_settings().export_render_scale)
    return _exporter
