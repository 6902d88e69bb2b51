"""File checkpoints of the shared cache."""

import os
import tempfile
from pathlib import Path

import structlog

from ldap_poller.errors import PersistenceFailure
from ldap_poller.sync.cache import SyncCache

log = structlog.stdlib.get_logger()


class CacheStore:
    """Saves and loads cache checkpoints to and from a file."""

    def __init__(self, path: str | Path):
        """
        Initialize the cache store.

        Args:
            path: File the checkpoint is written to
        """
        self._path = Path(path)
        log.info("cache_store_initialized", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    def save(self, cache: SyncCache) -> None:
        """
        Write a consistent snapshot of the cache to the checkpoint file.

        The document is written to a temporary file in the same directory and
        then moved into place, so a crash never leaves a partial checkpoint.

        Args:
            cache: Shared cache to export

        Raises:
            PersistenceFailure: If the cache cannot be serialized or written
        """
        document = cache.export()

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(document)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            log.error("failed_to_save_cache", path=str(self._path), error=str(e))
            raise PersistenceFailure(f"Failed to save cache to {self._path}: {e}") from e

        log.info("cache_saved", path=str(self._path), size_bytes=len(document))

    def load(self) -> SyncCache | None:
        """
        Load the cache from the checkpoint file.

        Returns:
            SyncCache if a checkpoint exists, None otherwise

        Raises:
            PersistenceFailure: If the checkpoint cannot be read or is invalid
        """
        if not self._path.exists():
            log.info("no_cache_checkpoint_found", path=str(self._path))
            return None

        try:
            document = self._path.read_text(encoding="utf-8")
        except OSError as e:
            log.error("failed_to_load_cache", path=str(self._path), error=str(e))
            raise PersistenceFailure(f"Failed to read cache from {self._path}: {e}") from e

        cache = SyncCache.restore(document)
        log.info("cache_loaded", path=str(self._path))
        return cache
