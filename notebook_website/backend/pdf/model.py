from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Section:
    heading: Optional[str] = None
    metadata_lines: List[str] = field(default_factory=list)
    body_lines: List[str] = field(default_factory=list)


@dataclass
class Banner:
    title: str
    prepared_by: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class Document:
    title: str
    filename: str
    banner: Banner
    sections: List[Section] = field(default_factory=list)
    front_matter: Optional[Section] = None
    toc: Optional[List[str]] = None


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    content: bytes
    page_count: int
    image_embedded: bool = False
