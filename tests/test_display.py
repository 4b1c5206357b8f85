"""Tests for the 64x32 framebuffer."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.display import DARK, HEIGHT, LIT, WIDTH, Display, ScreenParseError
from chip8_vm.quirks import SpriteEdge


@pytest.fixture
def display():
    return Display()


def lit_pixels(display):
    return {
        (x, y)
        for y, row in enumerate(display.snapshot())
        for x, value in enumerate(row)
        if value
    }


class TestDraw:
    """Test XOR sprite drawing and collision."""

    def test_blank_on_construction(self, display):
        assert display.lit_count() == 0
        assert len(display.snapshot()) == HEIGHT
        assert all(len(row) == WIDTH for row in display.snapshot())

    def test_single_row(self, display):
        """0xFF at (0, 0) lights the first eight pixels of row 0."""
        assert display.draw(0, 0, b"\xFF") is False
        assert lit_pixels(display) == {(x, 0) for x in range(8)}

    def test_msb_is_leftmost(self, display):
        """The most significant bit of a row is its leftmost pixel."""
        display.draw(10, 5, b"\x81")
        assert lit_pixels(display) == {(10, 5), (17, 5)}

    def test_draw_twice_restores_and_collides(self, display):
        """Drawing the same sprite twice erases it and reports a collision."""
        sprite = bytes([0xF0, 0x90, 0xF0])
        display.draw(3, 4, sprite)
        assert display.draw(3, 4, sprite) is True
        assert display.lit_count() == 0

    def test_no_collision_on_disjoint_pixels(self, display):
        """Lighting unlit pixels is not a collision."""
        display.draw(0, 0, b"\xF0")
        assert display.draw(0, 0, b"\x0F") is False
        assert display.lit_count() == 8

    def test_empty_sprite(self, display):
        """A zero-row sprite changes nothing."""
        assert display.draw(0, 0, b"") is False
        assert display.lit_count() == 0

    def test_clear(self, display):
        display.draw(0, 0, b"\xFF\xFF")
        display.clear()
        assert display.lit_count() == 0


class TestEdges:
    """Test start-coordinate wrapping and the edge policy."""

    def test_start_coordinates_wrap(self, display):
        """Start coordinates are taken modulo the screen size."""
        display.draw(WIDTH + 2, HEIGHT + 1, b"\x80")
        assert lit_pixels(display) == {(2, 1)}

    def test_clip_right_edge(self, display):
        """Pixels past the right edge are dropped when clipping."""
        display.draw(60, 0, b"\xFF")
        assert lit_pixels(display) == {(60, 0), (61, 0), (62, 0), (63, 0)}

    def test_clip_bottom_edge(self, display):
        """Rows past the bottom edge are dropped when clipping."""
        display.draw(0, 30, b"\x80\x80\x80\x80")
        assert lit_pixels(display) == {(0, 30), (0, 31)}

    def test_wrap_right_edge(self):
        """Pixels past the right edge reappear on the left when wrapping."""
        display = Display(SpriteEdge.WRAP)
        display.draw(62, 0, b"\xF0")
        assert lit_pixels(display) == {(62, 0), (63, 0), (0, 0), (1, 0)}

    def test_wrap_bottom_edge(self):
        """Rows past the bottom edge reappear at the top when wrapping."""
        display = Display(SpriteEdge.WRAP)
        display.draw(0, 31, b"\x80\x80")
        assert lit_pixels(display) == {(0, 31), (0, 0)}

    def test_pixel_bounds(self, display):
        with pytest.raises(IndexError):
            display.pixel(WIDTH, 0)


class TestText:
    """Test the text screen format."""

    def test_render_dimensions(self, display):
        lines = display.render().splitlines()
        assert len(lines) == HEIGHT
        assert all(len(line) == WIDTH * len(LIT) for line in lines)

    def test_render_then_parse(self, display):
        """A rendered screen parses back into an equal display."""
        display.draw(5, 7, bytes([0x3C, 0x42, 0x81]))
        assert Display.from_text(display.render()) == display

    def test_render_markers(self, display):
        display.draw(0, 0, b"\x80")
        assert display.render().splitlines()[0].startswith(LIT + DARK)

    def test_parse_rejects_bad_width(self):
        with pytest.raises(ScreenParseError):
            Display.from_text("\n".join([DARK * (WIDTH - 1)] * HEIGHT))

    def test_parse_rejects_bad_height(self):
        with pytest.raises(ScreenParseError):
            Display.from_text("\n".join([DARK * WIDTH] * (HEIGHT - 1)))

    def test_parse_rejects_unknown_cell(self):
        line = "xx" + DARK * (WIDTH - 1)
        with pytest.raises(ScreenParseError):
            Display.from_text("\n".join([line] + [DARK * WIDTH] * (HEIGHT - 1)))
