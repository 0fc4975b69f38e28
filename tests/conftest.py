"""
Pytest configuration and fixtures.
"""
import base64
import io
import os
import sys
from datetime import date
from unittest.mock import MagicMock

import pytest
import fitz  # PyMuPDF
from PIL import Image, ImageDraw

# Add signdesk to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from signdesk.config import Settings
from signdesk.document import FieldStore, ModeController, SigningFlow

FIXED_TODAY = date(2024, 3, 7)


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_png(width: int = 40, height: int = 20, color=(0, 0, 0, 255)) -> bytes:
    img = Image.new("RGBA", (width, height), (255, 255, 255, 0))
    ImageDraw.Draw(img).line((2, height - 4, width - 2, 4), fill=color, width=2)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_png_base64():
    """A small valid PNG as base64."""
    return base64.b64encode(make_png()).decode()


@pytest.fixture
def signature_data_url(sample_png_base64):
    return f"data:image/png;base64,{sample_png_base64}"


@pytest.fixture
def initial_data_url():
    return "data:image/png;base64," + base64.b64encode(make_png(30, 30, (0, 0, 128, 255))).decode()


def make_pdf(page_sizes=((612, 792),)) -> bytes:
    """Create a PDF with one page per (width, height)."""
    doc = fitz.open()
    for number, (width, height) in enumerate(page_sizes, start=1):
        page = doc.new_page(width=width, height=height)
        page.insert_text((50, 100), f"Test Document - page {number}", fontsize=18)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def sample_pdf_bytes():
    """Two US Letter pages."""
    return make_pdf(((612, 792), (612, 792)))


@pytest.fixture
def test_settings():
    """Settings with no upload endpoint and no .env influence."""
    return Settings(
        _env_file=None,
        environment="test",
        upload_endpoint_url="",
        metadata_callback_url="",
    )


@pytest.fixture
def mock_settings():
    """Create mock settings for the upload client."""
    settings = MagicMock()
    settings.upload_endpoint_url = "https://uploads.example.com/signed"
    settings.upload_api_key = "test-upload-key"
    settings.upload_timeout_seconds = 60
    settings.get_metadata_callback_url.return_value = None
    settings.environment = "test"
    settings.debug = True
    return settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Field store for a two-page Letter document, today pinned."""
    return FieldStore(
        page_sizes={1: (612.0, 792.0), 2: (612.0, 792.0)},
        today=lambda: FIXED_TODAY,
    )


@pytest.fixture
def modes(store):
    return ModeController(store)


@pytest.fixture
def flow(store, modes, clock):
    return SigningFlow(store, modes, clock=clock)
