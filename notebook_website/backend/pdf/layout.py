"""Page geometry, the page cursor and the page-break aware writers.

Coordinates are millimetres measured from the top-left corner of the page,
the way the notes are laid out; ``CanvasSurface`` converts them to PDF points.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Sequence, Tuple

from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

RGB = Tuple[int, int, int]
BLACK: RGB = (0, 0, 0)


class LayoutError(Exception):
    """A layout precondition does not hold (a programming error, not bad input)."""


@dataclass(frozen=True)
class PageGeometry:
    width: float = 210.0
    height: float = 297.0
    margin_top: float = 20.0
    margin_bottom: float = 20.0
    margin_left: float = 20.0
    margin_right: float = 20.0

    @property
    def bottom_limit(self) -> float:
        return self.height - self.margin_bottom

    @property
    def usable_height(self) -> float:
        return self.height - self.margin_top - self.margin_bottom

    @property
    def content_width(self) -> float:
        return self.width - self.margin_left - self.margin_right


@dataclass(frozen=True)
class PageCursor:
    """Next free vertical offset and the 1-based page it belongs to."""

    y: float
    page_index: int = 1

    def moved(self, dy: float) -> "PageCursor":
        return replace(self, y=self.y + dy)


@dataclass(frozen=True)
class TextStyle:
    font: str = "Helvetica"
    size: float = 12
    color: RGB = BLACK


class Surface(Protocol):
    """Drawing operations the renderer needs from a page set."""

    geometry: PageGeometry
    page_count: int

    def new_page(self) -> None: ...

    def draw_text(self, text: str, x: float, y: float, style: TextStyle, align: str = "left") -> None: ...

    def draw_lines(self, lines: Sequence[str], x: float, y: float, style: TextStyle, line_height: float) -> None: ...

    def draw_rule(self, x1: float, x2: float, y: float, color: RGB, width: float) -> None: ...

    def fill_rect(self, x: float, y: float, width: float, height: float, color: RGB) -> None: ...

    def draw_image(self, data: bytes, x: float, y: float, width: float, height: float) -> None: ...

    def finish(self) -> bytes: ...


def _rgb(color: RGB) -> Tuple[float, float, float]:
    return color[0] / 255, color[1] / 255, color[2] / 255


class CanvasSurface:
    """``Surface`` backed by a reportlab canvas writing to memory."""

    def __init__(self, geometry: Optional[PageGeometry] = None, title: str = "", author: str = ""):
        self.geometry = geometry or PageGeometry()
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(
            self._buffer, pagesize=(self.geometry.width * mm, self.geometry.height * mm)
        )
        if title:
            self._canvas.setTitle(title)
        if author:
            self._canvas.setAuthor(author)
        self.page_count = 1

    def _x(self, x: float) -> float:
        return x * mm

    def _y(self, y: float) -> float:
        return (self.geometry.height - y) * mm

    def new_page(self) -> None:
        self._canvas.showPage()
        self.page_count += 1

    def draw_text(self, text: str, x: float, y: float, style: TextStyle, align: str = "left") -> None:
        c = self._canvas
        c.setFont(style.font, style.size)
        c.setFillColorRGB(*_rgb(style.color))
        if align == "center":
            c.drawCentredString(self._x(x), self._y(y), text)
        elif align == "right":
            c.drawRightString(self._x(x), self._y(y), text)
        else:
            c.drawString(self._x(x), self._y(y), text)

    def draw_lines(self, lines: Sequence[str], x: float, y: float, style: TextStyle, line_height: float) -> None:
        text = self._canvas.beginText(self._x(x), self._y(y))
        text.setFont(style.font, style.size, leading=line_height * mm)
        text.setFillColorRGB(*_rgb(style.color))
        for line in lines:
            text.textLine(line)
        self._canvas.drawText(text)

    def draw_rule(self, x1: float, x2: float, y: float, color: RGB, width: float) -> None:
        c = self._canvas
        c.setStrokeColorRGB(*_rgb(color))
        c.setLineWidth(width * mm)
        c.line(self._x(x1), self._y(y), self._x(x2), self._y(y))

    def fill_rect(self, x: float, y: float, width: float, height: float, color: RGB) -> None:
        c = self._canvas
        c.setFillColorRGB(*_rgb(color))
        c.rect(self._x(x), self._y(y + height), width * mm, height * mm, stroke=0, fill=1)

    def draw_image(self, data: bytes, x: float, y: float, width: float, height: float) -> None:
        self._canvas.drawImage(
            ImageReader(io.BytesIO(data)), self._x(x), self._y(y + height), width * mm, height * mm
        )

    def finish(self) -> bytes:
        self._canvas.showPage()
        self._canvas.save()
        return self._buffer.getvalue()


def wrap_text(text: str, width: float, style: TextStyle) -> List[str]:
    """Split ``text`` into lines no wider than ``width`` millimetres.

    Explicit newlines are kept and blank paragraphs become empty lines.
    """
    lines: List[str] = []
    for paragraph in (text or "").replace("\r\n", "\n").split("\n"):
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(simpleSplit(paragraph, style.font, style.size, width * mm))
    return lines


def check_line_height(geometry: PageGeometry, line_height: float) -> None:
    if line_height <= 0 or line_height >= geometry.usable_height:
        raise LayoutError(
            f"line height {line_height} must be positive and below the usable page height {geometry.usable_height}"
        )


def start_new_page(surface: Surface, cursor: PageCursor) -> PageCursor:
    surface.new_page()
    return PageCursor(y=surface.geometry.margin_top, page_index=cursor.page_index + 1)


def ensure_space(surface: Surface, cursor: PageCursor, height: float) -> PageCursor:
    """Break to a new page when ``height`` more millimetres would cross the bottom margin."""
    if cursor.y + height > surface.geometry.bottom_limit:
        return start_new_page(surface, cursor)
    return cursor


def write_line(surface: Surface, cursor: PageCursor, text: str, x: float,
               style: TextStyle, advance: float, align: str = "left") -> PageCursor:
    cursor = ensure_space(surface, cursor, advance)
    surface.draw_text(text, x, cursor.y, style, align)
    return cursor.moved(advance)


def write_rule(surface: Surface, cursor: PageCursor, color: RGB, width: float, gap: float) -> PageCursor:
    """Horizontal rule across the content width at the cursor, then advance by ``gap``."""
    cursor = ensure_space(surface, cursor, gap)
    geometry = surface.geometry
    surface.draw_rule(geometry.margin_left, geometry.width - geometry.margin_right, cursor.y, color, width)
    return cursor.moved(gap)


def write_wrapped_body(surface: Surface, cursor: PageCursor, lines: Sequence[str], x: float,
                       line_height: float, style: TextStyle) -> PageCursor:
    """Write pre-wrapped lines in page-sized blocks, breaking pages as needed.

    Every line is written exactly once and in order. The returned cursor sits
    just below the last written line; no page break follows the final block.
    """
    geometry = surface.geometry
    check_line_height(geometry, line_height)
    written = 0
    while written < len(lines):
        remaining_height = geometry.height - cursor.y - geometry.margin_bottom
        lines_per_page = math.floor(remaining_height / line_height)
        if lines_per_page <= 0:
            cursor = start_new_page(surface, cursor)
            continue
        count = min(lines_per_page, len(lines) - written)
        surface.draw_lines(lines[written:written + count], x, cursor.y, style, line_height)
        written += count
        if written < len(lines):
            cursor = start_new_page(surface, cursor)
        else:
            cursor = cursor.moved(count * line_height)
    return cursor
