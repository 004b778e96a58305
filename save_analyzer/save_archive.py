"""
save_analyzer/save_archive.py
-----------------------------------------------------------------------------
Locate and decode the header entry inside a save archive.

A game save is a zip whose header lives in ``level-init.dat``.  The game puts
that file inside a directory named after the *in-game* save name, which need
not match the zip's own file name (players rename zips, upload services
rename them again).  So the header is found by base name at any depth rather
than by a computed path.

Sections
--------
1. **Archive locator** – pick the header entry out of a member listing.
2. **Decode pipeline** – open the zip, read the entry, hand the bytes to the
   configured codec, and wrap every failure into one ``DecodeError``.
"""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from save_analyzer.errors import DecodeError, InternalError, NotFoundError
from save_analyzer.header_codec import HeaderCodec
from save_analyzer.schema import SaveHeader

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEADER_ENTRY_NAME: str = "level-init.dat"

# How many member names a "header not found" diagnostic lists.
DIAGNOSTIC_ENTRY_LIMIT: int = 10

# Upper bound on the inflated size of the header entry (zip-bomb guard).
MAX_HEADER_SIZE: int = 32 * 1024 * 1024  # 32 MiB


# ---------------------------------------------------------------------------
# Section 1: Archive locator
# ---------------------------------------------------------------------------


def _matches(entry_name: str, target: str) -> bool:
    normalised = entry_name.replace("\\", "/")
    return normalised == target or normalised.endswith("/" + target)


def locate_entry(entry_names: Sequence[str], target: str = HEADER_ENTRY_NAME) -> str:
    """
    Return the first archive member whose base name is exactly *target*.

    Backslash separators (written by some Windows zip tools) are treated as
    forward slashes for matching; the returned name is the original one so
    it can be passed straight to ``ZipFile.read``.

    Parameters
    ----------
    entry_names : Member names in archive order.
    target      : Base name to look for.

    Returns
    -------
    str : The matching member name.

    Raises
    ------
    DecodeError
        If no member matches.  ``entries`` holds the first 10 member names.
    """
    for name in entry_names:
        if _matches(name, target):
            return name

    listed = list(entry_names[:DIAGNOSTIC_ENTRY_LIMIT])
    more = "..." if len(entry_names) > DIAGNOSTIC_ENTRY_LIMIT else ""
    raise DecodeError(
        f"{target} not found in archive; a native save contains "
        f"<save-name>/{target}. First entries: {', '.join(listed)}{more}",
        entries=listed,
    )


# ---------------------------------------------------------------------------
# Section 2: Decode pipeline
# ---------------------------------------------------------------------------


def _read_header_bytes(container: bytes | Path) -> bytes:
    source = io.BytesIO(container) if isinstance(container, bytes) else container

    with zipfile.ZipFile(source, mode="r") as zf:
        entry = locate_entry(zf.namelist())
        info = zf.getinfo(entry)
        if info.file_size > MAX_HEADER_SIZE:
            raise DecodeError(
                f"{HEADER_ENTRY_NAME} is {info.file_size:,} bytes, "
                f"exceeding the {MAX_HEADER_SIZE:,}-byte limit"
            )
        data = zf.read(info)

    if not data:
        raise DecodeError(f"{HEADER_ENTRY_NAME} is empty or could not be read.")
    return data


def decode_save(container: bytes | Path, codec: HeaderCodec) -> Mapping[str, Any]:
    """
    Decode a save archive into the codec's record.

    Parameters
    ----------
    container : Raw zip bytes, or the path of a stored zip.
    codec     : Callable turning ``level-init.dat`` bytes into a mapping.

    Returns
    -------
    Mapping[str, Any] : Whatever the codec produced (header fields, plus
                        ``game``/``map`` when it decodes a full snapshot).

    Raises
    ------
    DecodeError
        On any archive or codec failure: not a zip, header entry missing,
        empty or over ``MAX_HEADER_SIZE``, codec error, or a codec result that
        is not a mapping.  The underlying exception is chained as
        ``__cause__``; a missing-entry error keeps its ``entries``.
    NotFoundError
        If *container* is a path that no longer exists, e.g. pruned by
        retention after it was resolved.
    InternalError
        If the stored file exists but cannot be read.  The OS error is
        logged, not echoed.
    """
    try:
        data = _read_header_bytes(container)
    except DecodeError as exc:
        logger.error("Save decode failed: %s", exc.message)
        raise DecodeError(_diagnostic(exc.message), entries=exc.entries) from exc
    except zipfile.BadZipFile as exc:
        logger.error("Save decode failed: not a zip archive: %s", exc)
        raise DecodeError(_diagnostic(f"not a valid zip archive ({exc})")) from exc
    except FileNotFoundError as exc:
        logger.warning("Stored save vanished before it could be read: %s", exc)
        raise NotFoundError(f'Game save file "{Path(container).name}" not found.') from exc
    except OSError as exc:
        logger.error("Failed to read stored save: %s", exc)
        raise InternalError("An error occurred while reading the stored file.") from exc
    except Exception as exc:
        logger.error("Save decode failed: %s: %s", type(exc).__name__, exc)
        raise DecodeError(_diagnostic(str(exc) or type(exc).__name__)) from exc

    try:
        record = codec(data)
        if not isinstance(record, Mapping):
            raise TypeError(
                f"codec returned {type(record).__name__}, expected a mapping"
            )
    except Exception as exc:
        logger.error("Save decode failed: %s: %s", type(exc).__name__, exc)
        raise DecodeError(_diagnostic(str(exc) or type(exc).__name__)) from exc

    return record


def decode_header(container: bytes | Path, codec: HeaderCodec) -> SaveHeader:
    """Decode a save archive and keep only its identity header."""
    return SaveHeader.from_record(decode_save(container, codec))


def _diagnostic(reason: str) -> str:
    return (
        f"Failed to decode save: {reason}. "
        "Make sure the upload is a native game save zip."
    )
