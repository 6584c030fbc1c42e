import httpx
import pytest
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from notebook_website.backend.pdf.images import ImageResult, fetch_image
from notebook_website.backend.pdf.layout import LayoutError, PageCursor
from notebook_website.backend.pdf.model import Banner, Document, Section
from notebook_website.backend.pdf.renderer import DocumentRenderer, RenderStyle

from conftest import stub_image_fetcher

SEPARATOR = RenderStyle().separator


def _renderer(recorder, fetcher=stub_image_fetcher):
    return DocumentRenderer(surface_factory=recorder, image_fetcher=fetcher)


def _section(title, lines=3):
    return Section(heading=title, metadata_lines=["Created: today"],
                   body_lines=[f"{title} body {i}" for i in range(lines)])


def test_banner_sits_on_first_page_and_returns_cursor_below_it(recorder, surface):
    renderer = _renderer(recorder)
    cursor, image = renderer.render_banner(surface, PageCursor(20), Banner("Goggins NoteBook", "Ann"))

    assert cursor == PageCursor(50, 1)
    assert not image.embedded
    (rect,) = surface.of_kind("rect")
    assert (rect["x"], rect["y"], rect["width"], rect["height"]) == (0, 0, 210, 40)
    title, label = surface.of_kind("text")
    assert (title["text"], title["align"], title["x"]) == ("Goggins NoteBook", "center", 105)
    assert (label["text"], label["align"]) == ("Prepared by: Ann", "right")


def test_banner_draws_fetched_image_top_right(recorder, surface):
    calls = []

    def fetcher(url, timeout):
        calls.append((url, timeout))
        return ImageResult(data=b"jpeg-bytes")

    renderer = DocumentRenderer(surface_factory=recorder, image_fetcher=fetcher, image_timeout=2.5)
    _, image = renderer.render_banner(surface, PageCursor(20), Banner("T", image_url="http://img/a.png"))

    assert image.embedded
    assert calls == [("http://img/a.png", 2.5)]
    (op,) = surface.of_kind("image")
    assert (op["x"], op["y"], op["width"], op["height"]) == (175, 5, 20, 20)


def test_banner_is_refused_after_first_page(recorder, surface):
    with pytest.raises(ValueError):
        _renderer(recorder).render_banner(surface, PageCursor(20, 2), Banner("T"))


def test_table_of_contents_numbers_entries_and_breaks_pages(recorder, surface):
    entries = [f"Note {i}" for i in range(60)]
    cursor = _renderer(recorder).render_table_of_contents(surface, PageCursor(50), entries)

    texts = surface.texts()
    assert texts[0] == "Notes in this Group:"
    assert texts[1:] == [f"{i + 1}. Note {i}" for i in range(60)]
    assert surface.page_count > 1
    for op in surface.of_kind("text"):
        assert op["y"] + 6 <= surface.geometry.bottom_limit or op["text"] == "Notes in this Group:"
    assert cursor.page_index == surface.page_count


def test_first_section_has_no_separator(recorder, surface):
    renderer = _renderer(recorder)
    cursor = renderer.render_section(surface, PageCursor(50), _section("A"), first=True)
    renderer.render_section(surface, cursor, _section("B"))

    separators = [op for op in surface.of_kind("rule") if op["color"] == SEPARATOR]
    assert len(separators) == 1
    heading_b = next(op for op in surface.of_kind("text") if op["text"] == "B")
    assert separators[0]["y"] < heading_b["y"]


def test_section_layout_advances(recorder, surface):
    cursor = _renderer(recorder).render_section(surface, PageCursor(50), _section("A", lines=2), first=True)

    # heading 8, rule 8, one metadata line 5, gap 3, two body lines 10, section gap 15
    assert cursor == PageCursor(99, 1)
    (block,) = surface.of_kind("lines")
    assert (block["x"], block["y"]) == (25, 74)


def test_export_document_keeps_every_body_line_across_pages(recorder):
    sections = [_section(f"Note {i}", lines=40) for i in range(5)]
    document = Document(
        title="Group",
        filename="Group_group.pdf",
        banner=Banner("Goggins NoteBook", "Ann"),
        front_matter=Section(heading="Group", metadata_lines=["Exported on: now"]),
        toc=[s.heading for s in sections],
        sections=sections,
    )
    artifact = _renderer(recorder).export_document(document)

    surface = recorder.last
    assert surface.finished
    assert surface.body_lines() == [line for s in sections for line in s.body_lines]
    assert artifact.page_count == surface.page_count > 1
    assert artifact.filename == "Group_group.pdf"
    assert artifact.content == b"%PDF-recorded"
    separators = [op for op in surface.of_kind("rule") if op["color"] == SEPARATOR]
    assert len(separators) == len(sections) - 1
    assert surface.of_kind("rect")[0]["page"] == 1


def test_export_document_renders_real_pdf():
    renderer = DocumentRenderer(image_fetcher=stub_image_fetcher)
    document = Document(
        title="Note",
        filename="Note.pdf",
        banner=Banner("Goggins NoteBook", "Ann"),
        front_matter=Section(heading="Note", body_lines=[f"line {i}" for i in range(80)]),
    )
    artifact = renderer.export_document(document)

    assert artifact.content.startswith(b"%PDF")
    assert artifact.page_count == 2
    assert not artifact.image_embedded


def test_unreachable_avatar_still_produces_pdf(dns):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    renderer = DocumentRenderer(image_fetcher=lambda url, timeout: fetch_image(url, timeout, client=client))
    document = Document(
        title="Note",
        filename="Note.pdf",
        banner=Banner("Goggins NoteBook", "Ann", "http://avatars.local/ann.png"),
        front_matter=Section(heading="Note", body_lines=["hello"]),
    )
    artifact = renderer.export_document(document)

    assert artifact.content.startswith(b"%PDF")
    assert len(artifact.content) > 0
    assert not artifact.image_embedded


def test_renderer_rejects_line_height_taller_than_page():
    with pytest.raises(LayoutError):
        DocumentRenderer(style=RenderStyle(line_height=400))


def test_malformed_avatar_url_still_produces_pdf():
    renderer = DocumentRenderer(image_timeout=1.0)
    document = Document(
        title="Note",
        filename="Note.pdf",
        banner=Banner("Goggins NoteBook", "Ann", "http://[::1"),
        front_matter=Section(heading="Note", body_lines=["hello"]),
    )
    artifact = renderer.export_document(document)

    assert artifact.content.startswith(b"%PDF")
    assert not artifact.image_embedded


def _fits(op, right_edge):
    style = op["style"]
    return op["x"] + stringWidth(op["text"], style.font, style.size) / mm <= right_edge


def test_long_heading_wraps_inside_right_margin(recorder, surface):
    title = " ".join(["Quarterly"] * 30)
    _renderer(recorder).render_section(surface, PageCursor(50), _section(title), first=True)

    right_edge = surface.geometry.width - surface.geometry.margin_right
    headings = [op for op in surface.of_kind("text") if op["text"].startswith("Quarterly")]
    assert len(headings) > 1
    assert " ".join(op["text"] for op in headings) == title
    assert all(_fits(op, right_edge) for op in headings)


def test_long_contents_entry_wraps_inside_right_margin(recorder, surface):
    title = " ".join(["Itinerary"] * 30)
    _renderer(recorder).render_table_of_contents(surface, PageCursor(50), ["Short", title])

    right_edge = surface.geometry.width - surface.geometry.margin_right
    entries = surface.of_kind("text")[1:]
    assert entries[0]["text"] == "1. Short"
    assert entries[1]["text"].startswith("2. Itinerary")
    assert len(entries) > 2
    assert all(_fits(op, right_edge) for op in entries)
