"""
save_analyzer/storage.py
-----------------------------------------------------------------------------
Flat-directory storage for uploaded save archives.

Every upload is written to the storage root under a generated name
(``<uuid4 hex><extension>``).  The generated name is the only handle clients
ever see; the client's own file name is kept only as metadata in the upload
response.  There is no index file: the directory listing *is* the store.

Exports
-------
StorageManager(root)
    store(data, original_filename, mime_type) -> StoredArchive
    resolve(generated_name) -> Path | None
    enforce_retention(max_count) -> list[str]

Concurrency
-----------
Nothing here takes a lock.  ``enforce_retention`` may run concurrently with
``store`` or with another ``enforce_retention``; two pruners can race on the
same file, in which case the loser's delete is a no-op.  Retention is
therefore advisory: the cap holds eventually, not at every instant.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePath

from save_analyzer.errors import InternalError, ValidationError
from save_analyzer.filename_normalizer import normalize_filename
from save_analyzer.schema import StoredArchive

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION: str = ".zip"

# Extensions kept on generated names; anything else falls back to the default.
_SAFE_EXTENSION = re.compile(r"\.[A-Za-z0-9]{1,16}")


class StorageManager:
    """Persist, look up, and prune uploaded archives under a single directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def _ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def store(
        self,
        data: bytes,
        original_filename: str | None,
        mime_type: str = "application/zip",
    ) -> StoredArchive:
        """
        Write *data* to the storage root under a freshly generated name.

        The extension of the (repaired) original name is preserved so the
        stored file still looks like what it is; a name without one, or
        with one that is not plain alphanumerics, gets ``.zip``.

        Raises
        ------
        InternalError
            If the directory cannot be created or the file cannot be written.
            The OS error is logged; the caller only sees a generic message.
        """
        original_name = normalize_filename(original_filename)
        extension = PurePath(original_name).suffix
        if not _SAFE_EXTENSION.fullmatch(extension):
            extension = DEFAULT_EXTENSION
        generated_name = f"{uuid.uuid4().hex}{extension}"
        path = self.root / generated_name

        try:
            self._ensure_root()
            path.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to store upload %r at %s: %s", original_name, path, exc)
            raise InternalError("An error occurred while storing the file.") from exc

        logger.info(
            "Stored upload %r as %s (%d bytes)", original_name, generated_name, len(data)
        )
        return StoredArchive(
            generated_name=generated_name,
            storage_path=str(path),
            original_name=original_name,
            size_bytes=len(data),
            mime_type=mime_type,
            stored_at=datetime.now(timezone.utc),
        )

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def resolve(self, generated_name: str) -> Path | None:
        """
        Return the path of a stored file, or ``None`` if there is none.

        Names that would escape the storage root (separators, ``..``) never
        resolve.  This method does not raise.
        """
        if (
            not generated_name
            or "/" in generated_name
            or "\\" in generated_name
            or generated_name in (".", "..")
        ):
            return None

        path = self.root / generated_name
        return path if path.is_file() else None

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def _list_files(self) -> list[tuple[float, str, Path]]:
        entries: list[tuple[float, str, Path]] = []
        for child in self.root.iterdir():
            try:
                if not child.is_file():
                    continue
                mtime = child.stat().st_mtime
            except FileNotFoundError:
                # Deleted by a concurrent pruner between listing and stat.
                continue
            entries.append((mtime, child.name, child))
        return entries

    def enforce_retention(self, max_count: int) -> list[str]:
        """
        Delete the oldest stored files until at most *max_count* remain.

        Files are ordered by modification time (ties broken by name) and the
        surplus is removed oldest first, one file at a time.  A file that
        cannot be deleted is logged and skipped; the rest are still removed.
        A file that has already vanished counts as removed.

        Returns
        -------
        list[str] : Names of the files removed by this call, oldest first.

        Raises
        ------
        ValidationError
            If *max_count* is negative.
        """
        if max_count < 0:
            raise ValidationError("max_count must be zero or greater.")

        self._ensure_root()
        files = self._list_files()
        if len(files) <= max_count:
            return []

        files.sort(key=lambda entry: (entry[0], entry[1]))
        surplus = files[: len(files) - max_count]

        removed: list[str] = []
        for _, name, path in surplus:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.error("Failed to prune %s: %s", path, exc)
                continue
            removed.append(name)

        logger.info(
            "Retention cap %d: removed %d of %d stored files", max_count, len(removed), len(files)
        )
        return removed

    def count(self) -> int:
        if not self.root.is_dir():
            return 0
        return len(self._list_files())
