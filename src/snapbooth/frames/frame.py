"""
Frame data structures: slot geometry, template frames and custom frames.
"""

import base64
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class FrameKind(str, Enum):
    """How frame art is scaled onto the strip."""

    VECTOR = "vector"  # stretched to fill the canvas
    RASTER = "raster"  # uniform scale, centred


@dataclass(frozen=True)
class SlotGeometry:
    """Rectangle of the first photo slot plus vertical spacing between slots."""

    x: int
    y: int
    width: int
    height: int
    spacing: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def slot_top(self, index: int) -> int:
        """Top edge of slot ``index``."""
        return self.y + index * self.spacing

    def to_dict(self) -> dict[str, int]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "spacing": self.spacing,
        }


DEFAULT_SLOT_GEOMETRY = SlotGeometry(x=100, y=80, width=1000, height=700, spacing=760)


@dataclass(frozen=True)
class TemplateFrame:
    """Built-in frame from the catalog."""

    id: str
    name: str
    image_ref: str
    slot: SlotGeometry | None = None
    kind: FrameKind = FrameKind.VECTOR

    is_custom = False

    @property
    def ref(self) -> str:
        return f"template:{self.id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ref": self.ref,
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "image_ref": self.image_ref,
            "slot": self.slot.to_dict() if self.slot else None,
        }


def is_svg(data: bytes) -> bool:
    """Sniff SVG markup at the start of the data."""
    head = data[:512].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:4096].lower())


def _detect_kind(data: bytes) -> FrameKind:
    return FrameKind.VECTOR if is_svg(data) else FrameKind.RASTER


@dataclass(frozen=True)
class CustomFrame:
    """User-supplied frame art with a stable generated id."""

    id: str
    name: str
    data: bytes = field(repr=False)
    kind: FrameKind
    created_at: datetime = field(default_factory=datetime.now)

    is_custom = True
    slot = None

    @property
    def ref(self) -> str:
        return f"custom:{self.id}"

    @classmethod
    def create(cls, data: bytes, name: str = "", kind: "FrameKind | str | None" = None) -> "CustomFrame":
        """Create a new custom frame, detecting SVG vs bitmap when kind is omitted."""
        if not data:
            raise ValueError("frame data is empty")
        kind = FrameKind(kind) if kind else _detect_kind(data)
        frame_id = uuid.uuid4().hex
        return cls(id=frame_id, name=name or f"Custom {frame_id[:6]}", data=data, kind=kind)

    def to_dict(self, include_data: bool = True) -> dict[str, Any]:
        d: dict[str, Any] = {
            "ref": self.ref,
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "size_bytes": len(self.data),
        }
        if include_data:
            d["data"] = base64.b64encode(self.data).decode("ascii")
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "CustomFrame":
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            data=base64.b64decode(d["data"]),
            kind=FrameKind(d.get("kind", FrameKind.RASTER.value)),
            created_at=datetime.fromisoformat(d["created_at"]) if d.get("created_at") else datetime.now(),
        )


FrameSelection = TemplateFrame | CustomFrame


def parse_ref(ref: str) -> tuple[str, str]:
    """
    Split a frame reference into (source, id).

    Raises:
        ValueError: If the reference is not 'template:<id>' or 'custom:<id>'
    """
    source, sep, frame_id = ref.partition(":")
    if not sep or source not in ("template", "custom") or not frame_id:
        raise ValueError(f"invalid frame reference: {ref!r}")
    return source, frame_id
