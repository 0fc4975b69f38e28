"""
Tests for display <-> native coordinate mapping.
"""
import pytest

from signdesk.document.coordinates import (
    DEFAULT_PAGE_HEIGHT,
    DEFAULT_PAGE_WIDTH,
    PageGeometry,
    clamp_position,
    rescale,
)


class TestPageGeometry:
    """Tests for PageGeometry."""

    def test_native_scale_when_rendered_size_missing(self):
        """No rendered size means the page is shown at native scale."""
        geometry = PageGeometry.create(612, 792)
        assert geometry.scale_x == 1.0
        assert geometry.scale_y == 1.0
        assert geometry.to_native(100, 200) == (100, 200)

    def test_unknown_native_size_defaults_to_letter(self):
        """Missing or zero native size falls back to US Letter."""
        geometry = PageGeometry.create(None, 0)
        assert geometry.original_width == DEFAULT_PAGE_WIDTH
        assert geometry.original_height == DEFAULT_PAGE_HEIGHT

    def test_to_native_divides_by_scale(self):
        """A page drawn at 1.5x maps clicks back to points."""
        geometry = PageGeometry.create(612, 792, 918, 1188)
        x, y = geometry.to_native(153, 297)
        assert x == pytest.approx(102)
        assert y == pytest.approx(198)

    def test_to_display_inverts_to_native(self):
        """to_display(to_native(p)) == p."""
        geometry = PageGeometry.create(595.28, 841.89, 800, 1131.4)
        nx, ny = geometry.to_native(321.5, 654.25)
        dx, dy = geometry.to_display(nx, ny)
        assert dx == pytest.approx(321.5)
        assert dy == pytest.approx(654.25)

    def test_non_uniform_scale(self):
        """Axes scale independently."""
        geometry = PageGeometry.create(600, 800, 300, 1600)
        assert geometry.to_native(150, 400) == pytest.approx((300, 200))
        assert geometry.size_to_display(180, 50) == pytest.approx((90, 100))
        assert geometry.size_to_native(90, 100) == pytest.approx((180, 50))

    def test_resized_keeps_native_size(self):
        """Zooming changes only the rendered size."""
        geometry = PageGeometry.create(612, 792, 612, 792).resized(1224, 1584)
        assert geometry.original_width == 612
        assert geometry.scale_x == pytest.approx(2.0)

    def test_native_position_survives_resize(self):
        """A stored native position lands on the same spot after a zoom."""
        before = PageGeometry.create(612, 792, 612, 792)
        after = before.resized(918, 1188)
        native = before.to_native(100, 100)
        assert after.to_display(*native) == pytest.approx((150, 150))


class TestRescale:
    """Tests for rescale()."""

    def test_scales_by_ratio(self):
        """Position multiplies by new/old per axis."""
        assert rescale(100, 50, (500, 500), (1000, 250)) == pytest.approx((200, 25))

    def test_zero_old_size_rejected(self):
        """A zero-sized old page cannot be rescaled from."""
        with pytest.raises(ValueError):
            rescale(10, 10, (0, 100), (100, 100))


class TestClampPosition:
    """Tests for clamp_position()."""

    @pytest.mark.parametrize("x,y,expected", [
        (100, 100, (100, 100)),
        (-20, 50, (0, 50)),
        (50, -5, (50, 0)),
        (500, 100, (432, 100)),
        (100, 780, (100, 742)),
        (9999, 9999, (432, 742)),
    ])
    def test_box_stays_inside(self, x, y, expected):
        """Signature box (180x50) on a Letter page."""
        assert clamp_position(x, y, 180, 50, 612, 792) == expected

    def test_box_larger_than_container_pinned_top_left(self):
        """Oversized box never gets a negative position."""
        assert clamp_position(30, 30, 200, 100, 150, 80) == (0, 0)

    def test_exact_fit(self):
        """Box exactly at the far edge is allowed."""
        assert clamp_position(432, 742, 180, 50, 612, 792) == (432, 742)
