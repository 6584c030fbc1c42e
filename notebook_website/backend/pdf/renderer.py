"""Lays a Document out onto A4 pages: banner, front matter, contents, notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from .images import ImageResult, fetch_image
from .layout import (
    RGB,
    CanvasSurface,
    PageCursor,
    PageGeometry,
    Surface,
    TextStyle,
    check_line_height,
    wrap_text,
    write_line,
    write_rule,
    write_wrapped_body,
)
from .model import Banner, Document, ExportArtifact, Section

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[PageGeometry, str], Surface]
ImageFetcher = Callable[[str, float], ImageResult]


@dataclass(frozen=True)
class RenderStyle:
    accent: RGB = (0, 76, 153)
    separator: RGB = (200, 200, 200)
    banner_height: float = 40.0
    banner_gap: float = 10.0
    banner_title: TextStyle = TextStyle("Helvetica-Bold", 28, (255, 255, 255))
    banner_label: TextStyle = TextStyle("Helvetica-Oblique", 12, (255, 255, 255))
    image_size: float = 20.0
    image_offset: Tuple[float, float] = (35.0, 5.0)
    front_heading: TextStyle = TextStyle("Helvetica-Bold", 22)
    heading: TextStyle = TextStyle("Helvetica-Bold", 16)
    heading_advance: float = 8.0
    metadata: TextStyle = TextStyle("Helvetica-Oblique", 10)
    metadata_advance: float = 5.0
    metadata_gap: float = 3.0
    toc_entry: TextStyle = TextStyle("Helvetica", 12)
    toc_advance: float = 6.0
    toc_gap: float = 5.0
    body: TextStyle = TextStyle("Helvetica", 12)
    body_indent: float = 5.0
    line_height: float = 5.0
    separator_gap: float = 10.0
    section_gap: float = 15.0

    @property
    def body_width_offset(self) -> float:
        return 2 * self.body_indent


def _default_surface(geometry: PageGeometry, title: str) -> Surface:
    return CanvasSurface(geometry, title=title)


class DocumentRenderer:
    """Renders one Document per ``export_document`` call; holds no per-export state."""

    def __init__(self, surface_factory: Optional[SurfaceFactory] = None,
                 image_fetcher: Optional[ImageFetcher] = None,
                 geometry: Optional[PageGeometry] = None,
                 style: Optional[RenderStyle] = None,
                 image_timeout: float = 10.0):
        self.surface_factory = surface_factory or _default_surface
        self.image_fetcher = image_fetcher or fetch_image
        self.geometry = geometry or PageGeometry()
        self.style = style or RenderStyle()
        self.image_timeout = image_timeout
        check_line_height(self.geometry, self.style.line_height)

    def render_banner(self, surface: Surface, cursor: PageCursor, banner: Banner) -> Tuple[PageCursor, ImageResult]:
        """Draw the coloured header on page 1 and return the cursor below it."""
        if cursor.page_index != 1:
            raise ValueError("the banner is drawn on the first page only")
        style, geometry = self.style, self.geometry
        surface.fill_rect(0, 0, geometry.width, style.banner_height, style.accent)

        image = ImageResult.omitted("no image url")
        if banner.image_url:
            image = self.image_fetcher(banner.image_url, self.image_timeout)
            if image.embedded:
                dx, dy = style.image_offset
                surface.draw_image(image.data, geometry.width - dx, dy, style.image_size, style.image_size)

        surface.draw_text(banner.title, geometry.width / 2, style.banner_height / 2, style.banner_title, "center")
        if banner.prepared_by:
            surface.draw_text(
                f"Prepared by: {banner.prepared_by}",
                geometry.width - geometry.margin_right,
                style.banner_height - 10,
                style.banner_label,
                "right",
            )
        return PageCursor(style.banner_height + style.banner_gap, cursor.page_index), image

    def render_table_of_contents(self, surface: Surface, cursor: PageCursor, entries: Sequence[str]) -> PageCursor:
        style = self.style
        x = self.geometry.margin_left
        cursor = write_line(surface, cursor, "Notes in this Group:", x, style.heading, style.heading_advance)
        cursor = write_rule(surface, cursor, style.accent, 0.3, style.heading_advance)
        width = self.geometry.content_width - style.body_indent
        for index, entry in enumerate(entries):
            for line in wrap_text(f"{index + 1}. {entry}", width, style.toc_entry):
                cursor = write_line(surface, cursor, line, x + style.body_indent, style.toc_entry, style.toc_advance)
        return cursor.moved(style.toc_gap)

    def render_section(self, surface: Surface, cursor: PageCursor, section: Section,
                       first: bool = False, heading_style: Optional[TextStyle] = None) -> PageCursor:
        style = self.style
        x = self.geometry.margin_left
        if not first:
            cursor = write_rule(surface, cursor, style.separator, 0.2, style.separator_gap)
        if section.heading:
            heading_style = heading_style or style.heading
            for line in wrap_text(section.heading, self.geometry.content_width, heading_style):
                cursor = write_line(surface, cursor, line, x, heading_style, style.heading_advance)
            cursor = write_rule(surface, cursor, style.accent, 0.5, style.heading_advance)
        for line in section.metadata_lines:
            cursor = write_line(surface, cursor, line, x, style.metadata, style.metadata_advance)
        if section.metadata_lines:
            cursor = cursor.moved(style.metadata_gap)
        cursor = write_wrapped_body(
            surface, cursor, section.body_lines, x + style.body_indent, style.line_height, style.body
        )
        return cursor.moved(style.section_gap)

    def export_document(self, document: Document) -> ExportArtifact:
        """Banner, front matter, optional contents, then every section in order."""
        surface = self.surface_factory(self.geometry, document.title)
        cursor = PageCursor(self.geometry.margin_top)
        cursor, image = self.render_banner(surface, cursor, document.banner)
        if document.front_matter is not None:
            cursor = self.render_section(surface, cursor, document.front_matter, first=True,
                                         heading_style=self.style.front_heading)
        if document.toc:
            cursor = self.render_table_of_contents(surface, cursor, document.toc)
        for index, section in enumerate(document.sections):
            cursor = self.render_section(surface, cursor, section, first=index == 0)
        content = surface.finish()
        logger.info("Rendered %s: %d page(s), image %s", document.filename, surface.page_count,
                    "embedded" if image.embedded else "omitted")
        return ExportArtifact(document.filename, content, surface.page_count, image.embedded)


def body_wrap_width(geometry: PageGeometry, style: RenderStyle) -> float:
    return geometry.content_width - style.body_width_offset


__all__ = ["DocumentRenderer", "RenderStyle", "body_wrap_width"]
