"""
Signature capture rendering with Pillow.

Both capture methods - drawing with the pointer and typing a name - end up as
the same thing: one 550x200 PNG data URL. Drawn strokes are rescaled from the
canvas they were drawn on; typed names are set in a script-like font when
one is installed.
"""
import base64
import io
import logging
import os
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from signdesk.models import FieldType

logger = logging.getLogger(__name__)

CAPTURE_WIDTH = 550
CAPTURE_HEIGHT = 200
STROKE_WIDTH = 3
INK = (0, 0, 0, 255)

# Handwriting-ish fonts first, plain sans as fallback
FONT_PATHS = [
    "/usr/share/fonts/truetype/dancing-script/DancingScript-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSerifItalic.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Italic.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSerif-Italic.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]


class CaptureRenderError(Exception):
    """Capture input cannot be turned into an image."""
    pass


def _find_font() -> Optional[str]:
    for path in FONT_PATHS:
        if os.path.exists(path):
            return path
    return None


def _load_font(size: int) -> ImageFont.ImageFont:
    path = _find_font()
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError as e:
            logger.warning(f"Font {path} failed: {e}")
    return ImageFont.load_default(size=size)


def _to_data_url(img: Image.Image) -> str:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def _blank() -> Image.Image:
    return Image.new("RGBA", (CAPTURE_WIDTH, CAPTURE_HEIGHT), (255, 255, 255, 0))


def render_strokes(
    strokes: Sequence[Sequence[Tuple[float, float]]],
    canvas_width: float = CAPTURE_WIDTH,
    canvas_height: float = CAPTURE_HEIGHT,
) -> str:
    """
    Render pointer strokes drawn on a canvas of the given size.

    Args:
        strokes: One list of (x, y) points per pointer-down..pointer-up
        canvas_width, canvas_height: Size of the surface they were drawn on

    Returns:
        PNG data URL, 550x200, black ink on transparent background
    """
    if not any(len(stroke) for stroke in strokes):
        raise CaptureRenderError("Signature is empty")

    sx = CAPTURE_WIDTH / canvas_width
    sy = CAPTURE_HEIGHT / canvas_height

    img = _blank()
    draw = ImageDraw.Draw(img)
    for stroke in strokes:
        points = [(x * sx, y * sy) for x, y in stroke]
        if len(points) == 1:
            # A tap leaves a dot
            px, py = points[0]
            r = STROKE_WIDTH / 2
            draw.ellipse((px - r, py - r, px + r, py + r), fill=INK)
        elif points:
            draw.line(points, fill=INK, width=STROKE_WIDTH, joint="curve")
    return _to_data_url(img)


def typed_text(field_type: FieldType, first_name: str, last_name: str) -> str:
    """Text a typed capture should show: full name, or initials for initial fields."""
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if field_type == FieldType.INITIAL:
        return "".join(part[0].upper() for part in (first, last) if part)
    return " ".join(part for part in (first, last) if part)


def render_typed_name(
    first_name: str,
    last_name: str,
    field_type: FieldType = FieldType.SIGNATURE,
) -> str:
    """
    Synthesize a signature (or initials) from a typed name.

    Returns:
        PNG data URL, 550x200, text centered and shrunk to fit
    """
    text = typed_text(field_type, first_name, last_name)
    if not text:
        raise CaptureRenderError("Name is empty")

    img = _blank()
    draw = ImageDraw.Draw(img)
    margin = 20
    size = 96
    while True:
        font = _load_font(size)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        if right - left <= CAPTURE_WIDTH - 2 * margin or size <= 12:
            break
        size -= 4

    x = (CAPTURE_WIDTH - (right - left)) / 2 - left
    y = (CAPTURE_HEIGHT - (bottom - top)) / 2 - top
    draw.text((x, y), text, font=font, fill=INK)
    return _to_data_url(img)

