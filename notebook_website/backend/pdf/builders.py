"""Turn note and group payloads into renderable Documents, and export them."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from ..utils import format_date, sanitize_filename, time_now
from .layout import PageGeometry, wrap_text
from .model import Banner, Document, ExportArtifact, Section
from .renderer import DocumentRenderer, RenderStyle, body_wrap_width

logger = logging.getLogger(__name__)

APP_TITLE = "Goggins NoteBook"
COLLECTION_TITLE = "My Notes Collection"

Payload = Mapping[str, Any]


def note_filename(title: str) -> str:
    return f"{sanitize_filename(title)}.pdf"


def group_filename(name: str) -> str:
    return f"{sanitize_filename(name)}_group.pdf"


def _timestamps(item: Payload) -> List[str]:
    return [
        f"Created: {format_date(item.get('created_time', ''))}",
        f"Last Updated: {format_date(item.get('updated_time', ''))}",
    ]


def _exported_on() -> str:
    return f"Exported on: {format_date(time_now())}"


def _banner(user: Optional[Payload], app_title: str) -> Banner:
    user = user or {}
    return Banner(title=app_title, prepared_by=user.get("name") or None, image_url=user.get("avatar") or None)


class DocumentBuilder:
    """Wraps note text to the renderer's body width and assembles Documents."""

    def __init__(self, geometry: Optional[PageGeometry] = None, style: Optional[RenderStyle] = None,
                 app_title: str = APP_TITLE):
        self.geometry = geometry or PageGeometry()
        self.style = style or RenderStyle()
        self.app_title = app_title

    def wrap_body(self, text: str) -> List[str]:
        return wrap_text(text, body_wrap_width(self.geometry, self.style), self.style.body)

    def note_section(self, note: Payload) -> Section:
        return Section(
            heading=note.get("title") or "Untitled",
            metadata_lines=_timestamps(note),
            body_lines=self.wrap_body(note.get("content", "")),
        )

    def single_note(self, note: Payload, user: Optional[Payload] = None) -> Document:
        title = note.get("title") or "Untitled"
        return Document(
            title=title,
            filename=note_filename(title),
            banner=_banner(user, self.app_title),
            front_matter=self.note_section(note),
        )

    def collection(self, notes: Sequence[Payload], user: Optional[Payload] = None) -> Document:
        return Document(
            title=COLLECTION_TITLE,
            filename=note_filename(COLLECTION_TITLE),
            banner=_banner(user, self.app_title),
            front_matter=Section(heading=COLLECTION_TITLE, metadata_lines=[_exported_on()]),
            sections=[self.note_section(note) for note in notes],
        )

    def notes(self, notes: Sequence[Payload], user: Optional[Payload] = None) -> Optional[Document]:
        """One note gets its own layout, several become a collection, none gives None."""
        if not notes:
            return None
        if len(notes) == 1:
            return self.single_note(notes[0], user)
        return self.collection(notes, user)

    def group(self, group_note: Payload, user: Optional[Payload] = None) -> Optional[Document]:
        members = group_note.get("note_objects") or []
        if not members:
            return None
        name = group_note.get("name") or "Untitled group"
        metadata: List[str] = []
        if group_note.get("description"):
            metadata.extend(wrap_text(
                f"Description: {group_note['description']}",
                self.geometry.content_width,
                self.style.metadata,
            ))
        metadata.extend(_timestamps(group_note))
        metadata.append(_exported_on())
        return Document(
            title=name,
            filename=group_filename(name),
            banner=_banner(user, self.app_title),
            front_matter=Section(heading=name, metadata_lines=metadata),
            toc=[note.get("title") or "Untitled" for note in members],
            sections=[self.note_section(note) for note in members],
        )


def export_notes(notes: Sequence[Payload], user: Optional[Payload] = None,
                 renderer: Optional[DocumentRenderer] = None) -> Optional[ExportArtifact]:
    """Render notes to a PDF; returns None (and draws nothing) when there are no notes."""
    renderer = renderer or DocumentRenderer()
    document = DocumentBuilder(renderer.geometry, renderer.style).notes(notes, user)
    if document is None:
        logger.warning("No notes to export")
        return None
    return renderer.export_document(document)


def export_group(group_note: Payload, user: Optional[Payload] = None,
                 renderer: Optional[DocumentRenderer] = None) -> Optional[ExportArtifact]:
    """Render a group with its notes; returns None when the group has no live notes."""
    renderer = renderer or DocumentRenderer()
    document = DocumentBuilder(renderer.geometry, renderer.style).group(group_note, user)
    if document is None:
        logger.warning("No notes available in group %s for export", group_note.get("id", "?"))
        return None
    return renderer.export_document(document)
