"""
Library record types and tag helpers.
"""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

# Orientation stored when extraction ran but found no valid value
ORIENTATION_NONE_FOUND = 0


def normalize_tags(tags: Iterable[Any] | None) -> list[str]:
    """Trim, drop empties and de-duplicate case-insensitively keeping the first spelling."""
    out: list[str] = []
    seen: set[str] = set()
    for tag in tags or []:
        if tag is None:
            continue
        text = str(tag).strip()
        if not text:
            continue
        key = text.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(text)
    return out


def tags_to_json(tags: Iterable[str] | None) -> str:
    return json.dumps(list(tags or []), ensure_ascii=False)


def tags_from_json(raw: Any) -> list[str]:
    """Decode the stored tags column; anything but a JSON list of strings reads as []."""
    if raw is None:
        return []
    if isinstance(raw, list):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return []
    if not isinstance(data, list):
        return []
    return [str(t) for t in data if isinstance(t, str)]


@dataclass(frozen=True)
class FileRecord:
    path: str
    file_size: int
    last_modified: int
    camera_rating: int | None = None
    user_rating: int | None = None
    tags: list[str] = field(default_factory=list)
    gps_lat: float | None = None
    gps_lon: float | None = None
    taken_at: str | None = None
    orientation: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FileRecord":
        return cls(
            path=str(row["path"]),
            file_size=int(row.get("file_size") or 0),
            last_modified=int(row.get("last_modified") or 0),
            camera_rating=row.get("camera_rating"),
            user_rating=row.get("user_rating"),
            tags=tags_from_json(row.get("tags")),
            gps_lat=row.get("gps_lat"),
            gps_lon=row.get("gps_lon"),
            taken_at=row.get("taken_at"),
            orientation=row.get("orientation"),
        )

    def with_path(self, path: str) -> "FileRecord":
        return replace(self, path=path)

    def to_view(self) -> dict[str, Any]:
        """Client-facing shape; the orientation sentinel is shown as absent."""
        orientation = self.orientation
        if orientation is not None and not 1 <= orientation <= 8:
            orientation = None
        return {
            "path": self.path,
            "camera_rating": self.camera_rating,
            "user_rating": self.user_rating,
            "tags": list(self.tags),
            "gps_lat": self.gps_lat,
            "gps_lon": self.gps_lon,
            "taken_at": self.taken_at,
            "orientation": orientation,
            "file_size": self.file_size,
            "last_modified": self.last_modified,
        }


EntryKind = Literal["dir", "file"]


@dataclass(frozen=True)
class BrowseEntry:
    name: str
    path: str
    kind: EntryKind
    size: int | None = None
    modified: int | None = None
    record: FileRecord | None = None
    needs_scan: bool = False

    def to_view(self) -> dict[str, Any]:
        view: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "kind": self.kind,
            "size": self.size,
            "modified": self.modified,
        }
        if self.kind == "file":
            record_view = self.record.to_view() if self.record else {}
            view.update(
                {
                    "camera_rating": record_view.get("camera_rating"),
                    "user_rating": record_view.get("user_rating"),
                    "tags": record_view.get("tags", []),
                    "gps_lat": record_view.get("gps_lat"),
                    "gps_lon": record_view.get("gps_lon"),
                    "taken_at": record_view.get("taken_at"),
                    "orientation": record_view.get("orientation"),
                    "needs_scan": self.needs_scan,
                }
            )
        return view
