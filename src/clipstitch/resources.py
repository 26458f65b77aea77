"""Ephemeral binary resources — clip previews and the exported video.

Every handle has exactly one owner (a ResourceLifecycle). The owner
releases it when it is replaced or when the session ends. A released
handle drops its data and refuses further reads, so a handle is never
both released and reused.

Handles come in two flavours:
  - in-memory: wraps a bytes buffer (the export output).
  - file-backed: points at an existing file without copying it (previews
    of imported clips). Releasing never deletes the underlying file.
"""

import itertools
import logging
from pathlib import Path

from .errors import ResourceReleasedError

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


class ResourceHandle:
    """One ephemeral resource. Create through ResourceLifecycle."""

    def __init__(
        self,
        name: str,
        media_type: str,
        data: bytes | None = None,
        path: Path | None = None,
    ):
        if (data is None) == (path is None):
            raise ValueError("ResourceHandle needs exactly one of data or path")
        self.id = f"res-{next(_handle_ids)}"
        self.name = name
        self.media_type = media_type
        self._data = bytes(data) if data is not None else None
        self._path = Path(path) if path is not None else None
        self.released = False

    def __repr__(self):
        state = "released" if self.released else "active"
        return f"<ResourceHandle {self.id} {self.name!r} {state}>"

    def _check(self):
        if self.released:
            raise ResourceReleasedError(f"Resource {self.name!r} was released")

    @property
    def path(self) -> Path | None:
        self._check()
        return self._path

    @property
    def size(self) -> int:
        self._check()
        if self._data is not None:
            return len(self._data)
        return self._path.stat().st_size

    def read_bytes(self) -> bytes:
        self._check()
        if self._data is not None:
            return self._data
        return self._path.read_bytes()

    def save(self, destination: str | Path) -> Path:
        """Write the resource to destination (parent dirs created)."""
        self._check()
        dest = Path(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.read_bytes())
        return dest

    def _release(self):
        self._data = None
        self._path = None
        self.released = True


class ResourceLifecycle:
    """Owns a set of handles and guarantees they get released.

    Usable as a context manager: everything still active is released on
    exit, whether or not the block raised.
    """

    def __init__(self):
        self._handles: dict[str, ResourceHandle] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release_all()
        return False

    @property
    def active(self) -> list[ResourceHandle]:
        return list(self._handles.values())

    def create(self, data: bytes, name: str, media_type: str) -> ResourceHandle:
        handle = ResourceHandle(name, media_type, data=data)
        self._handles[handle.id] = handle
        logger.debug("Created %s (%d bytes)", handle.id, len(data))
        return handle

    def create_from_path(
        self, path: str | Path, name: str, media_type: str,
    ) -> ResourceHandle:
        handle = ResourceHandle(name, media_type, path=Path(path))
        self._handles[handle.id] = handle
        logger.debug("Created %s -> %s", handle.id, path)
        return handle

    def release(self, handle: ResourceHandle | None) -> None:
        """Release a handle. Releasing None or an already released handle is a no-op."""
        if handle is None or handle.released:
            return
        self._handles.pop(handle.id, None)
        handle._release()
        logger.debug("Released %s", handle.id)

    def replace(
        self, old: ResourceHandle | None, new: ResourceHandle,
    ) -> ResourceHandle:
        """Release old and return new, for owners that swap outputs."""
        if old is not new:
            self.release(old)
        return new

    def release_all(self) -> None:
        for handle in list(self._handles.values()):
            self.release(handle)
