from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class Candidate:
    url: str
    domain: str
    discovered_via: str = ""


@dataclass(slots=True)
class RenderedPage:
    url: str
    final_url: str
    html: str
    fetched_from: str
    screenshot: Optional[bytes] = None


@dataclass(slots=True)
class ImageRef:
    url: str
    alt: str = ""
    title: str = ""


@dataclass(slots=True)
class VideoRef:
    url: str
    kind: str = "file"  # "file" or "embed"


@dataclass(slots=True)
class Article:
    url: str
    title: str
    author: str
    publish_date: str
    body_text: str
    tags: List[str] = field(default_factory=list)
    images: List[ImageRef] = field(default_factory=list)
    videos: List[VideoRef] = field(default_factory=list)
    raw_markup: Optional[str] = None
    extracted_at: str = ""
    screenshot: Optional[bytes] = None

    @property
    def word_count(self) -> int:
        return len(self.body_text.split())


@dataclass(slots=True)
class MediaAsset:
    source_url: str
    local_path: str
    kind: str
    alt: str = ""
    title: str = ""
    content_type: Optional[str] = None
    size_bytes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalUrl": self.source_url,
            "localPath": self.local_path,
            "kind": self.kind,
            "alt": self.alt,
            "title": self.title,
            "contentType": self.content_type,
            "sizeBytes": self.size_bytes,
        }


@dataclass(slots=True)
class MediaManifest:
    staging_dir: Optional[Path] = None
    images: List[MediaAsset] = field(default_factory=list)
    videos: List[MediaAsset] = field(default_factory=list)
    embeds: List[str] = field(default_factory=list)
    screenshot: Optional[MediaAsset] = None

    def assets(self) -> List[MediaAsset]:
        items = [*self.images, *self.videos]
        if self.screenshot is not None:
            items.append(self.screenshot)
        return items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [a.to_dict() for a in self.images],
            "videos": [a.to_dict() for a in self.videos]
            + [{"originalUrl": url, "kind": "embed"} for url in self.embeds],
            "screenshot": self.screenshot.local_path if self.screenshot else None,
        }


@dataclass(slots=True)
class ArchiveEntry:
    id: str
    folder_path: str
    metadata: Dict[str, Any]
    media_manifest: Optional[MediaManifest] = None

    @property
    def image_count(self) -> int:
        return len(self.metadata.get("mediaFiles", {}).get("images", []))

    @property
    def video_count(self) -> int:
        return len(self.metadata.get("mediaFiles", {}).get("videos", []))
