"""
Mapping between on-screen page pixels and native PDF points.

Fields are always stored at native scale (points, origin top-left, y grows
downward). Anything coming from the screen - a click that places a field, a
drag update - goes through PageGeometry.to_native() first, and anything
drawn over the rendered page goes through to_display().
"""
from dataclasses import dataclass
from typing import Optional, Tuple

# US Letter in points, used when a page's native size is unknown
DEFAULT_PAGE_WIDTH = 612.0
DEFAULT_PAGE_HEIGHT = 792.0


def _or_default(value: Optional[float], default: float) -> float:
    if value is None or value <= 0:
        return default
    return float(value)


@dataclass(frozen=True)
class PageGeometry:
    """
    Native and rendered size of one page.

    Args:
        original_width, original_height: Native page size in points
        rendered_width, rendered_height: Size the page is currently drawn at
    """
    original_width: float
    original_height: float
    rendered_width: float
    rendered_height: float

    @classmethod
    def create(
        cls,
        original_width: Optional[float],
        original_height: Optional[float],
        rendered_width: Optional[float] = None,
        rendered_height: Optional[float] = None,
    ) -> "PageGeometry":
        """
        Build a geometry, substituting US Letter for unknown native sizes.

        A missing rendered size means the page is displayed at native scale.
        """
        ow = _or_default(original_width, DEFAULT_PAGE_WIDTH)
        oh = _or_default(original_height, DEFAULT_PAGE_HEIGHT)
        return cls(
            original_width=ow,
            original_height=oh,
            rendered_width=_or_default(rendered_width, ow),
            rendered_height=_or_default(rendered_height, oh),
        )

    @property
    def scale_x(self) -> float:
        return self.rendered_width / self.original_width

    @property
    def scale_y(self) -> float:
        return self.rendered_height / self.original_height

    def to_native(self, x: float, y: float) -> Tuple[float, float]:
        """Display pixels -> native points."""
        return x / self.scale_x, y / self.scale_y

    def to_display(self, x: float, y: float) -> Tuple[float, float]:
        """Native points -> display pixels."""
        return x * self.scale_x, y * self.scale_y

    def size_to_native(self, width: float, height: float) -> Tuple[float, float]:
        return width / self.scale_x, height / self.scale_y

    def size_to_display(self, width: float, height: float) -> Tuple[float, float]:
        return width * self.scale_x, height * self.scale_y

    def resized(self, rendered_width: float, rendered_height: float) -> "PageGeometry":
        """Same page drawn at a different size (zoom, viewport change)."""
        return PageGeometry.create(
            self.original_width,
            self.original_height,
            rendered_width,
            rendered_height,
        )


def rescale(
    x: float,
    y: float,
    old_size: Tuple[float, float],
    new_size: Tuple[float, float],
) -> Tuple[float, float]:
    """
    Re-derive a display position after the rendered page size changed.

    Multiplies by the new-to-old ratio per axis.
    """
    old_w, old_h = old_size
    new_w, new_h = new_size
    if old_w <= 0 or old_h <= 0:
        raise ValueError(f"Old rendered size must be positive, got {old_size}")
    return x * (new_w / old_w), y * (new_h / old_h)


def clamp_position(
    x: float,
    y: float,
    width: float,
    height: float,
    container_width: float,
    container_height: float,
) -> Tuple[float, float]:
    """
    Keep a box fully inside its container.

    Guarantees 0 <= x <= container_width - width (same for y). A box larger
    than its container is pinned to the top-left edge rather than going
    negative.
    """
    max_x = max(0.0, container_width - width)
    max_y = max(0.0, container_height - height)
    return min(max(0.0, x), max_x), min(max(0.0, y), max_y)
