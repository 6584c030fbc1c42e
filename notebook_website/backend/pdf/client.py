"""Fetch export data from the notes API and write the rendered PDF to disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .builders import export_group, export_notes
from .model import ExportArtifact
from .renderer import DocumentRenderer

logger = logging.getLogger(__name__)


class NotesExportClient:
    """Mirrors the browser export flow: GET the data, render, save, report a bool."""

    def __init__(self, base_url: str, token: str, output_dir: str = ".",
                 renderer: Optional[DocumentRenderer] = None,
                 client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.output_dir = Path(output_dir)
        self.renderer = renderer or DocumentRenderer()
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.client.headers["Authorization"] = f"Bearer {token}"

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "NotesExportClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self.client.get(path, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("unexpected export payload")
        return data

    def _save(self, artifact: Optional[ExportArtifact]) -> bool:
        if artifact is None:
            return False
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / artifact.filename
        target.write_bytes(artifact.content)
        logger.info("Saved %s (%d page(s))", target, artifact.page_count)
        return True

    def fetch_and_export_all_notes(self) -> bool:
        try:
            data = self._get_json("/export-pdf")
            return self._save(export_notes(data.get("notes") or [], data.get("user"), self.renderer))
        except (httpx.HTTPError, ValueError, OSError) as e:
            logger.error("Error exporting notes to PDF: %s", e)
            return False

    def fetch_and_export_single_note(self, note_id: str) -> bool:
        try:
            data = self._get_json("/export-pdf", params={"note_id": note_id})
            notes = data.get("notes") or []
            return self._save(export_notes(notes[:1], data.get("user"), self.renderer))
        except (httpx.HTTPError, ValueError, OSError) as e:
            logger.error("Error exporting note %s to PDF: %s", note_id, e)
            return False

    def fetch_and_export_group_note(self, group_id: str) -> bool:
        if not group_id:
            logger.error("Group ID is required")
            return False
        try:
            data = self._get_json("/group-pdf", params={"group_id": group_id})
            group_note = data.get("group_note") or {}
            return self._save(export_group(group_note, data.get("user"), self.renderer))
        except (httpx.HTTPError, ValueError, OSError) as e:
            logger.error("Error exporting group note %s to PDF: %s", group_id, e)
            return False
