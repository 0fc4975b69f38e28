"""
Tests for document loading.
"""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from signdesk.pdf.loader import (
    DocumentDecodeError,
    DocumentLoader,
    DocumentLoadError,
    InvalidInputError,
    is_page_size,
    is_pdf_content_type,
)

from conftest import make_png


@pytest.fixture
def loader(test_settings):
    return DocumentLoader(test_settings)


class TestLoadBytes:
    """Tests for load_bytes()."""

    def test_loads_pdf(self, loader, sample_pdf_bytes):
        document = loader.load_bytes(sample_pdf_bytes, "application/pdf", "contract.pdf")
        try:
            assert document.page_count == 2
            assert document.file_name == "contract.pdf"
            assert document.source_url == "contract.pdf"
            assert document.pdf_bytes == sample_pdf_bytes
            assert document.page_sizes()[1] == pytest.approx((612, 792))
        finally:
            document.close()

    @pytest.mark.parametrize("content_type", ["image/png", "text/plain", None, ""])
    def test_non_pdf_mime_rejected(self, loader, sample_pdf_bytes, content_type):
        with pytest.raises(InvalidInputError):
            loader.load_bytes(sample_pdf_bytes, content_type, "file")

    def test_corrupt_pdf_rejected(self, loader):
        with pytest.raises(DocumentDecodeError):
            loader.load_bytes(b"this is not a pdf", "application/pdf", "broken.pdf")

    def test_too_large_rejected(self, test_settings, sample_pdf_bytes):
        test_settings.max_upload_bytes = 10
        with pytest.raises(InvalidInputError):
            DocumentLoader(test_settings).load_bytes(sample_pdf_bytes, "application/pdf", "big.pdf")

    @pytest.mark.asyncio
    async def test_async_load(self, loader, sample_pdf_bytes):
        document = await loader.load(sample_pdf_bytes, "application/pdf", "a.pdf")
        assert document.page_count == 2
        document.close()


class TestLoadImages:
    """Tests for load_images()."""

    def test_loads_pages_in_order(self, loader):
        document = loader.load_images(
            [(make_png(100, 200), "image/png"), (make_png(300, 100), "image/png")],
            "scanned.pdf",
            sizes=[(612, 792), None],
        )
        assert document.page_count == 2
        assert document.page_sizes() == {1: (612, 792), 2: (300, 100)}
        assert document.pdf_bytes is None

    def test_unsupported_type_rejected(self, loader):
        with pytest.raises(InvalidInputError):
            loader.load_images([(b"GIF89a", "image/gif")], "x.pdf")

    def test_broken_image_rejected(self, loader):
        with pytest.raises(DocumentDecodeError):
            loader.load_images([(b"garbage", "image/png")], "x.pdf")

    def test_empty_rejected(self, loader):
        with pytest.raises(InvalidInputError):
            loader.load_images([], "x.pdf")

    @pytest.mark.parametrize("size", [(612,), (612, 0), (612, -1), ("a", "b"), 5, (612, 792, 1)])
    def test_malformed_size_rejected(self, loader, size):
        with pytest.raises(InvalidInputError):
            loader.load_images([(make_png(), "image/png")], "x.pdf", sizes=[size])


class TestLoadUrl:
    """Tests for load_url()."""

    @pytest.mark.asyncio
    async def test_fetches_and_loads(self, loader, sample_pdf_bytes):
        response = MagicMock()
        response.content = sample_pdf_bytes
        response.headers = {"content-type": "application/pdf"}
        response.raise_for_status.return_value = None
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = response

        document = await loader.load_url("https://files.example.com/docs/lease.pdf?sig=1", client)

        assert document.file_name == "lease.pdf"
        assert document.source_url == "https://files.example.com/docs/lease.pdf?sig=1"
        assert document.page_count == 2
        document.close()

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, loader):
        with pytest.raises(InvalidInputError):
            await loader.load_url("file:///etc/passwd")

    @pytest.mark.asyncio
    async def test_network_error(self, loader):
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = httpx.ConnectError("refused")
        with pytest.raises(DocumentLoadError):
            await loader.load_url("https://files.example.com/a.pdf", client)

    @pytest.mark.asyncio
    async def test_html_response_rejected(self, loader):
        response = MagicMock()
        response.content = b"<html></html>"
        response.headers = {"content-type": "text/html"}
        response.raise_for_status.return_value = None
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = response
        with pytest.raises(InvalidInputError):
            await loader.load_url("https://files.example.com/a.pdf", client)


def test_is_pdf_content_type():
    assert is_pdf_content_type("application/pdf") is True
    assert is_pdf_content_type("application/x-pdf; charset=binary") is True
    assert is_pdf_content_type("image/png") is False
    assert is_pdf_content_type(None) is False


def test_is_page_size():
    assert is_page_size((612, 792)) is True
    assert is_page_size([595.28, 841.89]) is True
    assert is_page_size((612,)) is False
    assert is_page_size((True, 792)) is False
    assert is_page_size(None) is False
