"""
save_analyzer/filename_normalizer.py
-----------------------------------------------------------------------------
Best-effort repair of mis-decoded upload file names.

Browsers and multipart parsers disagree on how a non-ASCII file name travels
in ``Content-Disposition``.  In practice a Chinese name such as ``教学.zip``
reaches the server in one of three shapes:

1. percent-encoded: ``%E6%95%99%E5%AD%A6.zip``
2. raw UTF-8 bytes that were smuggled through as undecodable surrogates
3. UTF-8 bytes mis-read as Latin-1: ``æ\\x95\\x99å\\xad¦.zip``

Repair is guesswork, so it is implemented as an ordered chain of strategies.
Each strategy either returns a confident result or ``None``; the first
confident result wins and the untouched input is the final fallback.  A
decode error inside one strategy only disqualifies that strategy.

Known approximation
-------------------
``_looks_garbled`` flags any name containing Latin-1 accented letters and no
CJK ideographs.  A legitimately accented name such as ``café.zip`` matches
the heuristic too; it survives only because its Latin-1 bytes are not valid
UTF-8, so the reinterpretation fails and the chain falls through.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from urllib.parse import unquote

logger = logging.getLogger(__name__)

UNNAMED: str = "unnamed"

_CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")
_GARBLED_PATTERN = re.compile(r"[æåèéêëìíîïðñòóôõöøùúûüýþÿ]")


# -----------------------------------------------------------------------------
# Predicates
# -----------------------------------------------------------------------------


def is_valid_utf8(text: str) -> bool:
    """True when *text* round-trips through UTF-8 (no lone surrogates)."""
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def contains_cjk(text: str) -> bool:
    return _CJK_PATTERN.search(text) is not None


def _looks_garbled(text: str) -> bool:
    return _GARBLED_PATTERN.search(text) is not None and not contains_cjk(text)


def _reinterpret_latin1(text: str) -> str:
    """
    Treat each code point of *text* as one byte and decode the bytes as UTF-8.

    Surrogate escapes (U+DC80–U+DCFF) map back to their original bytes.  Code
    points above U+00FF cannot be a byte and raise ``UnicodeEncodeError``;
    byte sequences that are not UTF-8 raise ``UnicodeDecodeError``.
    """
    return text.encode("latin-1", errors="surrogateescape").decode("utf-8")


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------


def _percent_decoded(text: str) -> str | None:
    if "%" not in text:
        return None
    decoded = unquote(text, errors="strict")
    return decoded if is_valid_utf8(decoded) else None


def _latin1_to_cjk(text: str) -> str | None:
    if is_valid_utf8(text):
        return None
    decoded = _reinterpret_latin1(text)
    return decoded if contains_cjk(decoded) else None


def _garbled_repair(text: str) -> str | None:
    if not _looks_garbled(text):
        return None
    return _reinterpret_latin1(text)


_STRATEGIES: tuple[Callable[[str], str | None], ...] = (
    _percent_decoded,
    _latin1_to_cjk,
    _garbled_repair,
)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def normalize_filename(raw: str | None) -> str:
    """
    Return a human-readable version of a possibly mis-encoded file name.

    Parameters
    ----------
    raw : The file name as received from the multipart parser.  ``None`` and
          the empty string are both treated as missing.

    Returns
    -------
    str : The first confident repair, the input unchanged when no strategy
          applies, or ``"unnamed"`` for missing input.
    """
    if not raw:
        return UNNAMED

    for strategy in _STRATEGIES:
        try:
            result = strategy(raw)
        except UnicodeError as exc:
            logger.debug("Filename strategy %s failed: %s", strategy.__name__, exc)
            continue
        if result:
            return result

    return raw
