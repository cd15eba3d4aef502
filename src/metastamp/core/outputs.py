"""Retrieval handles for rendered outputs.

Every rendered blob is written to a private scratch directory and addressed
by an opaque handle. A handle stays valid until it is released; the batch
orchestrator releases all of its items' handles when the batch is cleared.
"""

import shutil
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Dict, Optional

from .logging_config import get_logger
from .models import OUTPUT_EXTENSIONS


class OutputRegistry:
    """Owns the files behind output handles."""

    def __init__(self, root: Optional[Path] = None):
        self._owns_root = root is None
        self._root = Path(root) if root is not None else Path(tempfile.mkdtemp(prefix="metastamp_"))
        self._root.mkdir(parents=True, exist_ok=True)
        self._paths: Dict[str, Path] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("outputs")

    @property
    def root(self) -> Path:
        return self._root

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, handle: object) -> bool:
        return handle in self._paths

    def mint(self, data: bytes, format_type: str = "JPEG") -> str:
        """Store ``data`` and return a fresh handle for it."""
        handle = uuid.uuid4().hex
        extension = OUTPUT_EXTENSIONS.get(format_type.upper(), "bin")
        path = self._root / f"{handle}.{extension}"
        path.write_bytes(data)
        with self._lock:
            self._paths[handle] = path
        self._logger.debug(f"Minted output handle {handle} ({len(data)} bytes)")
        return handle

    def path(self, handle: str) -> Path:
        """Filesystem location behind a live handle.

        Raises:
            KeyError: If the handle is unknown or released
        """
        return self._paths[handle]

    def read(self, handle: str) -> bytes:
        return self.path(handle).read_bytes()

    def release(self, handle: str) -> bool:
        """Delete the blob behind ``handle``; unknown handles are ignored."""
        with self._lock:
            path = self._paths.pop(handle, None)
        if path is None:
            return False
        path.unlink(missing_ok=True)
        self._logger.debug(f"Released output handle {handle}")
        return True

    def release_all(self) -> int:
        """Release every live handle and return how many there were."""
        with self._lock:
            handles = list(self._paths)
        return sum(1 for handle in handles if self.release(handle))

    def close(self) -> None:
        """Release everything and remove the scratch directory if we created it."""
        self.release_all()
        if self._owns_root:
            shutil.rmtree(self._root, ignore_errors=True)

    def __enter__(self) -> "OutputRegistry":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
