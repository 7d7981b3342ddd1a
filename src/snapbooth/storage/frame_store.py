"""
Frame Store - persistence for custom frames and the last selection.

Custom frames and the selected frame reference are kept in a single JSON
file. Every change is written atomically (temp file + replace). The
serialized store has to fit within max_bytes; an addition that does not
fit is dropped and the previous file is left untouched.
"""

import errno
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from snapbooth.errors import StorageQuotaExceeded
from snapbooth.frames.catalog import FrameCatalog, get_frame_catalog
from snapbooth.frames.frame import CustomFrame, FrameKind, FrameSelection, parse_ref

logger = logging.getLogger(__name__)

STORE_VERSION = 1
DEFAULT_MAX_BYTES = 5 * 1024 * 1024

# Write failures that mean "no room left"
_NO_SPACE_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class FrameStore:
    """
    Custom frame persistence with quota enforcement.

    Frames are addressed by reference strings: 'template:<id>' for catalog
    entries and 'custom:<id>' for stored frames.
    """

    def __init__(
        self,
        path: str | Path,
        max_bytes: int = DEFAULT_MAX_BYTES,
        catalog: FrameCatalog | None = None,
    ):
        """
        Initialize the frame store and load saved state.

        Args:
            path: JSON file holding the store
            max_bytes: Quota for the serialized store
            catalog: Template catalog used to resolve 'template:' references
        """
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.catalog = catalog or get_frame_catalog()

        self._frames: dict[str, CustomFrame] = {}
        self._selected_ref: str | None = None

        self._load()
        logger.info(
            f"FrameStore initialized: {self.path} ({len(self._frames)} custom frames, "
            f"selected={self._selected_ref}, quota={max_bytes} bytes)"
        )

    # ==================== Persistence ====================

    def _load(self) -> None:
        """Load the store. An unreadable file is treated as empty."""
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                payload = json.load(f)
            frames = [CustomFrame.from_dict(d) for d in payload.get("frames", [])]
            selected = payload.get("selected")
        except Exception as e:
            logger.error(f"Failed to load frame store {self.path}: {e}")
            return

        self._frames = {f.id: f for f in frames}
        if selected and self.resolve(selected) is not None:
            self._selected_ref = selected
        elif selected:
            logger.warning(f"Saved selection {selected} no longer exists - cleared")

    def _serialize(self, frames: dict[str, CustomFrame], selected: str | None) -> bytes:
        payload: dict[str, Any] = {
            "version": STORE_VERSION,
            "selected": selected,
            "frames": [f.to_dict(include_data=True) for f in frames.values()],
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    def _write(self, data: bytes) -> None:
        """Atomically replace the store file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".frames-", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def _commit(self, frames: dict[str, CustomFrame], selected: str | None) -> None:
        """
        Persist a candidate state, then adopt it.

        Raises:
            StorageQuotaExceeded: The state does not fit or the disk is full
        """
        data = self._serialize(frames, selected)
        if len(data) > self.max_bytes:
            raise StorageQuotaExceeded(
                f"frame storage is full ({len(data)} > {self.max_bytes} bytes)"
            )
        try:
            self._write(data)
        except OSError as e:
            if e.errno in _NO_SPACE_ERRNOS:
                raise StorageQuotaExceeded(f"no space left to save frames: {e}") from e
            raise
        self._frames = frames
        self._selected_ref = selected

    # ==================== Queries ====================

    @property
    def custom_frames(self) -> list[CustomFrame]:
        """Custom frames in creation order."""
        return list(self._frames.values())

    @property
    def selected_ref(self) -> str | None:
        return self._selected_ref

    @property
    def selection(self) -> FrameSelection | None:
        """Currently selected frame, or None."""
        if self._selected_ref is None:
            return None
        return self.resolve(self._selected_ref)

    @property
    def size_bytes(self) -> int:
        return len(self._serialize(self._frames, self._selected_ref))

    def get_custom(self, frame_id: str) -> CustomFrame | None:
        return self._frames.get(frame_id)

    def resolve(self, ref: str) -> FrameSelection | None:
        """Look up a 'template:<id>' or 'custom:<id>' reference."""
        try:
            source, frame_id = parse_ref(ref)
        except ValueError:
            return None
        if source == "template":
            return self.catalog.get(frame_id)
        return self._frames.get(frame_id)

    # ==================== Mutations ====================

    def add(
        self,
        data: bytes,
        name: str = "",
        kind: "FrameKind | str | None" = None,
        select: bool = True,
    ) -> CustomFrame:
        """
        Store a new custom frame.

        Args:
            data: Frame art bytes (SVG or bitmap)
            name: Display name
            kind: 'vector' or 'raster' (detected from the bytes if omitted)
            select: Make the new frame the current selection

        Returns:
            The stored CustomFrame

        Raises:
            ValueError: Empty data or unknown kind
            StorageQuotaExceeded: The frame was dropped; store and selection unchanged
        """
        frame = CustomFrame.create(data, name=name, kind=kind)
        frames = dict(self._frames)
        frames[frame.id] = frame
        selected = frame.ref if select else self._selected_ref

        try:
            self._commit(frames, selected)
        except StorageQuotaExceeded as e:
            logger.warning(f"Custom frame '{frame.name}' dropped: {e.message}")
            raise

        logger.info(f"Custom frame added: {frame.ref} ({len(data)} bytes, {frame.kind.value})")
        return frame

    def delete(self, frame_id: str) -> bool:
        """
        Delete a custom frame. Clears the selection if it was selected.

        Returns:
            True if the frame existed
        """
        if frame_id not in self._frames:
            return False
        frames = {k: v for k, v in self._frames.items() if k != frame_id}
        selected = self._selected_ref
        if selected == f"custom:{frame_id}":
            selected = None
            logger.info("Deleted frame was selected - selection cleared")
        self._commit(frames, selected)
        logger.info(f"Custom frame deleted: custom:{frame_id}")
        return True

    def select(self, ref: str | None) -> FrameSelection | None:
        """
        Set the current selection (None clears it).

        Raises:
            KeyError: The reference does not resolve to a frame
            StorageQuotaExceeded: The new state does not fit; the previous
                selection is kept
        """
        if ref is None:
            selection = None
        else:
            selection = self.resolve(ref)
            if selection is None:
                raise KeyError(f"unknown frame: {ref}")
            ref = selection.ref

        self._commit(dict(self._frames), ref)
        logger.info(f"Frame selected: {ref}")
        return selection

    def get_status(self) -> dict:
        """Get frame store status."""
        return {
            "path": str(self.path),
            "custom_frames": len(self._frames),
            "selected": self._selected_ref,
            "size_bytes": self.size_bytes,
            "max_bytes": self.max_bytes,
        }


# Factory function
def create_frame_store_from_config() -> FrameStore:
    """Create a frame store from storage config."""
    from snapbooth.config import storage_config

    return FrameStore(path=storage_config.frames_file, max_bytes=storage_config.max_bytes)
