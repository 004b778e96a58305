"""
save_analyzer/header_codec.py
-----------------------------------------------------------------------------
Boundary to the external ``level-init.dat`` decoder.

The save header is a proprietary binary format versioned by the game itself,
so this service does not decode it.  A codec is any callable that takes the
raw bytes of ``level-init.dat`` and returns a mapping; at minimum the mapping
carries ``name``, ``version`` and ``modList``.  A codec that can also decode
the full simulation state adds ``game`` and ``map`` keys, which switches the
analysis engine into full mode.

The codec is selected by import path so deployments can plug in whichever
decoder library matches their game version:

    SAVE_HEADER_CODEC=my_factorio_decoder.level_init:parse_level_init

Malformed input must make the codec raise; any exception it raises is
wrapped into a ``DecodeError`` by ``save_archive.decode_save``.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

HeaderCodec = Callable[[bytes], Mapping[str, Any]]


class CodecNotConfigured(RuntimeError):
    """Raised by the placeholder codec used when no decoder is configured."""


def unconfigured_codec(data: bytes) -> Mapping[str, Any]:
    raise CodecNotConfigured(
        "no save-header codec is configured; set SAVE_HEADER_CODEC to "
        "'package.module:callable'"
    )


def load_header_codec(import_path: str | None) -> HeaderCodec:
    """
    Resolve a ``"module:attribute"`` import path to a codec callable.

    Parameters
    ----------
    import_path : Dotted module path and attribute name separated by a colon.
                  ``None`` or an empty string selects ``unconfigured_codec``.

    Returns
    -------
    HeaderCodec : The resolved callable.

    Raises
    ------
    ValueError
        If the path is malformed or the attribute is not callable.
    ImportError / AttributeError
        If the module or attribute does not exist.
    """
    if not import_path:
        return unconfigured_codec

    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"Codec path '{import_path}' must look like 'package.module:callable'."
        )

    module = importlib.import_module(module_name)
    codec = getattr(module, attr)
    if not callable(codec):
        raise ValueError(f"Codec '{import_path}' is not callable.")

    logger.info("Using save-header codec %s", import_path)
    return codec
