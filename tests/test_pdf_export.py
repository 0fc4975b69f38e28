"""
Tests for signed PDF export.
"""
import base64

import fitz  # PyMuPDF
import pytest

from signdesk.models import FieldType, SignatureField
from signdesk.pdf.export import (
    A4_HEIGHT_PT,
    A4_WIDTH_PT,
    SignedPdfExporter,
    compute_page_transform,
    decode_image_data_url,
    place_field,
    signed_file_name,
)
from signdesk.pdf.pages import ImagePageSource, PageImage, PdfPageSource, RenderError

from conftest import make_pdf, make_png


def field(field_type, page=1, x=100, y=100, width=180, height=50, value=None):
    return SignatureField(
        type=field_type,
        page=page,
        x=x,
        y=y,
        width=width,
        height=height,
        is_filled=value is not None,
        value=value,
    )


class TestPageTransform:
    """Fit-and-center math."""

    def test_letter_into_a4(self):
        """612x792 into 595.28x841.89."""
        t = compute_page_transform(612, 792)
        fit = min(595.28 / 612, 841.89 / 792)
        assert t.fit_scale == pytest.approx(fit)
        assert t.offset_x == pytest.approx((595.28 - 612 * fit) / 2)
        assert t.offset_y == pytest.approx((841.89 - 792 * fit) / 2)
        # Width-limited: no horizontal margin
        assert t.offset_x == pytest.approx(0)
        assert t.offset_y > 0

    def test_a4_is_identity(self):
        t = compute_page_transform(A4_WIDTH_PT, A4_HEIGHT_PT)
        assert t.fit_scale == pytest.approx(1.0)
        assert t.offset_x == pytest.approx(0)
        assert t.offset_y == pytest.approx(0)

    def test_landscape_is_height_limited(self):
        t = compute_page_transform(842, 595)
        assert t.fit_scale == pytest.approx(595.28 / 842)
        assert t.offset_x == pytest.approx(0)
        assert t.scaled_height < A4_HEIGHT_PT

    def test_place_field(self):
        t = compute_page_transform(612, 792)
        rect = place_field(field(FieldType.SIGNATURE, x=100, y=200), t)
        assert rect.x0 == pytest.approx(t.offset_x + 100 * t.fit_scale)
        assert rect.y0 == pytest.approx(t.offset_y + 200 * t.fit_scale)
        assert rect.width == pytest.approx(180 * t.fit_scale)
        assert rect.height == pytest.approx(50 * t.fit_scale)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            compute_page_transform(0, 792)


class TestDecodeImageDataUrl:
    """Tests for decode_image_data_url()."""

    def test_decodes_png(self, signature_data_url):
        assert decode_image_data_url(signature_data_url)[:8] == b"\x89PNG\r\n\x1a\n"

    @pytest.mark.parametrize("value", [
        "03/07/2024",
        "data:image/png,rawdata",
        "data:image/png;base64,",
        "data:image/png;base64,@@not-base64@@",
    ])
    def test_rejects_non_image(self, value):
        with pytest.raises(RenderError):
            decode_image_data_url(value)


class TestSignedPdfExporter:
    """Tests for SignedPdfExporter."""

    @pytest.fixture
    def exporter(self):
        return SignedPdfExporter(render_scale=1.0)

    @pytest.fixture
    def source(self):
        source = PdfPageSource(make_pdf(((612, 792), (842, 595))))
        yield source
        source.close()

    def test_every_page_is_a4(self, exporter, source):
        data = exporter.export(source, [])
        with fitz.open(stream=data, filetype="pdf") as out:
            assert out.page_count == 2
            for page in out:
                assert page.rect.width == pytest.approx(A4_WIDTH_PT, abs=0.01)
                assert page.rect.height == pytest.approx(A4_HEIGHT_PT, abs=0.01)

    def test_date_text_drawn(self, exporter, source):
        data = exporter.export(source, [field(FieldType.DATE, width=150, height=35, value="03/07/2024")])
        with fitz.open(stream=data, filetype="pdf") as out:
            assert "03/07/2024" in out[0].get_text()
            assert "03/07/2024" not in out[1].get_text()

    def test_signature_image_placed(self, exporter, source, signature_data_url):
        data = exporter.export(source, [field(FieldType.SIGNATURE, page=2, value=signature_data_url)])
        with fitz.open(stream=data, filetype="pdf") as out:
            # Page raster plus the signature
            assert len(out[1].get_images()) == 2
            assert len(out[0].get_images()) == 1

    def test_unfilled_fields_skipped(self, exporter, source):
        data = exporter.export(source, [field(FieldType.SIGNATURE)])
        with fitz.open(stream=data, filetype="pdf") as out:
            assert len(out[0].get_images()) == 1

    def test_deterministic(self, exporter, source, signature_data_url):
        """Equal input gives byte-identical output."""
        fields = [
            field(FieldType.SIGNATURE, value=signature_data_url),
            field(FieldType.DATE, y=300, width=150, height=35, value="03/07/2024"),
        ]
        assert exporter.export(source, fields) == exporter.export(source, fields)

    def test_render_scale_independent_of_display(self, source):
        """Export at a higher scale produces a larger raster."""
        low = SignedPdfExporter(render_scale=0.5).export(source, [])
        high = SignedPdfExporter(render_scale=2.0).export(source, [])
        assert len(high) > len(low)

    def test_page_failure_aborts(self, exporter):
        """A page that cannot be rasterized fails the whole export."""
        source = ImagePageSource([
            PageImage(make_png(100, 100), width=612, height=792),
            PageImage(b"broken", width=612, height=792),
        ])
        with pytest.raises(RenderError):
            exporter.export(source, [])

    def test_corrupt_field_image_aborts(self, exporter, source):
        bad = field(FieldType.SIGNATURE, value="data:image/png;base64," + base64.b64encode(b"nope").decode())
        with pytest.raises(RenderError):
            exporter.export(source, [bad])

    def test_thumbnail(self, exporter, source):
        thumb = exporter.thumbnail_base64(source, 0.25)
        assert base64.b64decode(thumb)[:8] == b"\x89PNG\r\n\x1a\n"


def test_signed_file_name():
    name = signed_file_name()
    assert name.startswith("signed-document-")
    assert name.endswith(".pdf")
