"""Monochrome 64x32 framebuffer with XOR sprite drawing."""

from typing import List, Tuple

from .quirks import SpriteEdge


WIDTH = 64
HEIGHT = 32
SPRITE_WIDTH = 8

LIT = "██"
DARK = "  "


class ScreenParseError(ValueError):
    """Raised when a text screen does not describe a 64x32 grid."""


class Display:
    """CHIP-8 screen.

    Sprite start coordinates always wrap modulo the screen size. Pixels that
    run past an edge follow the ``edge`` policy: clipped, or wrapped around to
    the opposite side.

    Attributes:
        edge: SpriteEdge policy for pixels past the screen edge
    """

    def __init__(self, edge: SpriteEdge = SpriteEdge.CLIP):
        self.edge = edge
        self._pixels = bytearray(WIDTH * HEIGHT)

    def clear(self) -> None:
        """Turn every pixel off."""
        self._pixels = bytearray(WIDTH * HEIGHT)

    def pixel(self, x: int, y: int) -> bool:
        """Whether the pixel at (x, y) is lit.

        Raises:
            IndexError: If (x, y) is outside the screen
        """
        if not (0 <= x < WIDTH and 0 <= y < HEIGHT):
            raise IndexError(f"Pixel ({x}, {y}) is outside the {WIDTH}x{HEIGHT} screen")
        return bool(self._pixels[y * WIDTH + x])

    def draw(self, x: int, y: int, sprite: bytes) -> bool:
        """XOR a sprite onto the screen.

        Each byte of ``sprite`` is one 8-pixel row, most significant bit on
        the left.

        Args:
            x: Column of the sprite's top-left corner
            y: Row of the sprite's top-left corner
            sprite: Sprite rows

        Returns:
            True if any lit pixel was turned off (collision)
        """
        x %= WIDTH
        y %= HEIGHT
        wrap = self.edge is SpriteEdge.WRAP
        collision = False

        for row, bits in enumerate(sprite):
            screen_y = y + row
            if screen_y >= HEIGHT:
                if not wrap:
                    break
                screen_y %= HEIGHT

            for column in range(SPRITE_WIDTH):
                if not bits & (0x80 >> column):
                    continue

                screen_x = x + column
                if screen_x >= WIDTH:
                    if not wrap:
                        break
                    screen_x %= WIDTH

                offset = screen_y * WIDTH + screen_x
                if self._pixels[offset]:
                    collision = True
                self._pixels[offset] ^= 1

        return collision

    def snapshot(self) -> Tuple[Tuple[bool, ...], ...]:
        """Immutable copy of the framebuffer, one tuple of 64 bools per row."""
        return tuple(
            tuple(bool(value) for value in self._pixels[row * WIDTH:(row + 1) * WIDTH])
            for row in range(HEIGHT)
        )

    def lit_count(self) -> int:
        return sum(self._pixels)

    def render(self, lit: str = LIT, dark: str = DARK) -> str:
        """Render the screen as text, one line per row."""
        lines = []
        for row in range(HEIGHT):
            pixels = self._pixels[row * WIDTH:(row + 1) * WIDTH]
            lines.append("".join(lit if value else dark for value in pixels))
        return "\n".join(lines)

    @classmethod
    def from_text(cls, text: str, lit: str = LIT, dark: str = DARK,
                  edge: SpriteEdge = SpriteEdge.CLIP) -> "Display":
        """Parse a screen produced by ``render``.

        Raises:
            ScreenParseError: If a cell is not ``lit``/``dark`` or the grid is
                not 64x32
        """
        cell = len(lit)
        if len(dark) != cell:
            raise ValueError("lit and dark markers must have the same length")

        rows: List[List[int]] = []
        for line_num, line in enumerate(text.splitlines(), start=1):
            line = line.rstrip("\n")
            if len(line) != WIDTH * cell:
                raise ScreenParseError(
                    f"Expected {WIDTH * cell} chars, found {len(line)} (line {line_num})"
                )
            pixels = []
            for column in range(WIDTH):
                chunk = line[column * cell:(column + 1) * cell]
                if chunk == lit:
                    pixels.append(1)
                elif chunk == dark:
                    pixels.append(0)
                else:
                    raise ScreenParseError(
                        f"Invalid pixel {chunk!r} (line {line_num}:{column})"
                    )
            rows.append(pixels)

        if len(rows) != HEIGHT:
            raise ScreenParseError(f"Expected {HEIGHT} lines, found {len(rows)}")

        display = cls(edge)
        display._pixels = bytearray(value for row in rows for value in row)
        return display

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Display):
            return NotImplemented
        return self._pixels == other._pixels

    def __str__(self) -> str:
        border = "─" * (WIDTH * len(LIT))
        body = "\n".join(f"│{line}│" for line in self.render().splitlines())
        return f"╭{border}╮\n{body}\n╰{border}╯"
