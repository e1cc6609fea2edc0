"""Session-scoped staging area.

Every local file a pipeline run creates is registered here, and all of them
are removed when the workspace closes, whatever the pipeline outcome.
"""

import logging
import uuid
from pathlib import Path

from app.core.logging import log_info, log_warning
from app.core.metrics import STAGING_CLEANUP_ERRORS_TOTAL

logger = logging.getLogger(__name__)


class SessionWorkspace:
    """Tracks and removes the filesystem artifacts of one session.

    File names are prefixed with the session identifier so concurrent
    sessions sharing a staging root never collide.
    """

    def __init__(self, root: Path, session_id: str):
        self.root = Path(root)
        self.session_id = session_id
        self._owned: list[Path] = []

    def __enter__(self) -> "SessionWorkspace":
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def owned_paths(self) -> list[Path]:
        return list(self._owned)

    def track(self, path: Path) -> Path:
        """Register a path for removal at cleanup."""
        path = Path(path)
        if path not in self._owned:
            self._owned.append(path)
        return path

    def staged_path(self, index: int) -> Path:
        return self.track(self.root / f"{self.session_id}_video_{index + 1}.mp4")

    def concat_path(self) -> Path:
        return self.track(self.root / f"merged_{self.session_id}.mp4")

    def transform_path(self, kind: str) -> Path:
        return self.track(self.root / f"{kind}_{self.session_id}.mp4")

    def manifest_path(self) -> Path:
        return self.track(self.root / f"input_list_{self.session_id}_{uuid.uuid4()}.txt")

    def release(self, path: Path) -> None:
        """Remove one artifact early and stop tracking it."""
        path = Path(path)
        _remove(path)
        if path in self._owned:
            self._owned.remove(path)

    def cleanup(self) -> None:
        """Remove every tracked artifact. Never raises."""
        removed = 0
        for path in self._owned:
            if _remove(path):
                removed += 1
        self._owned.clear()
        log_info(logger, "Session workspace cleaned", session_id=self.session_id, removed=removed)


def _remove(path: Path) -> bool:
    """Delete a file; missing files are not an error and failures are logged."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        STAGING_CLEANUP_ERRORS_TOTAL.inc()
        log_warning(logger, "Error cleaning up file", path=str(path), error=str(e))
        return False
