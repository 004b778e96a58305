"""
save_analyzer/main.py
-----------------------------------------------------------------------------
FastAPI application entrypoint for the Factory Save Analyzer.

This module is a **thin routing layer**: each route handler validates its
input, calls the domain modules, and wraps the result in a
``ServiceResponse`` envelope.  All business logic lives elsewhere:

Domain modules
~~~~~~~~~~~~~~
- ``save_analyzer.filename_normalizer`` – repair of mis-encoded upload names.
- ``save_analyzer.storage``             – flat-directory store + retention.
- ``save_analyzer.save_archive``        – header entry locator + decode pipeline.
- ``save_analyzer.header_codec``        – pluggable ``level-init.dat`` decoder.
- ``save_analyzer.analysis``            – header-only / full analysis engine.
- ``save_analyzer.analysis_rules``      – catalogs and threshold tables.
- ``save_analyzer.schema``              – Pydantic v2 request / response models.
- ``save_analyzer.errors``              – caller-visible exception taxonomy.

Run with:
    uvicorn save_analyzer.main:app --reload --host 127.0.0.1 --port 8080

Endpoints
---------
POST /api/game-save/upload              → store an uploaded save archive
POST /api/game-save/analyze/{filename}  → decode + analyse a stored save
POST /api/game-save/retention           → prune the store to N newest files

Architecture notes
------------------
- Blocking I/O lives in regular ``def`` handlers, which FastAPI runs in a
  threadpool.  The upload handler is ``async`` only because ``UploadFile``
  is read with ``await``; the store itself is a single small write.
- Domain exceptions and request-validation errors are turned into
  ``ServiceResponse`` failures by exception handlers, so every response
  has the same shape and the HTTP status mirrors ``status_code``.
- Analyze responses carry no-cache headers (set by middleware, so error
  responses get them too): a stale 304 must never stand in for a report.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from save_analyzer.analysis import analyze
from save_analyzer.errors import (
    InternalError,
    NotFoundError,
    SaveAnalyzerError,
    ValidationError,
)
from save_analyzer.header_codec import HeaderCodec, load_header_codec
from save_analyzer.save_archive import decode_save
from save_analyzer.schema import (
    AnalysisReport,
    RetentionRequest,
    RetentionResult,
    ServiceResponse,
    StoredArchive,
)
from save_analyzer.storage import StorageManager

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------

load_dotenv()

logger = logging.getLogger(__name__)
logging.getLogger("save_analyzer").setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

_HERE = Path(__file__).parent
_STORAGE_DIR = Path(os.getenv("SAVE_STORAGE_DIR", str(_HERE.parent / "game-saves")))

# When > 0, retention runs after every successful upload with this cap.
_RETENTION_MAX: int = int(os.getenv("SAVE_RETENTION_MAX", "0"))

_HEADER_CODEC_PATH: str | None = os.getenv("SAVE_HEADER_CODEC")

# Read version from pyproject.toml (single source of truth).
_PYPROJECT = _HERE.parent / "pyproject.toml"
with open(_PYPROJECT, "rb") as _f:
    _APP_VERSION: str = tomllib.load(_f)["project"]["version"]

# -----------------------------------------------------------------------------
# Upload limits
# -----------------------------------------------------------------------------

MAX_UPLOAD_SIZE: int = 200 * 1024 * 1024  # 200 MiB

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/zip",
        "application/x-zip-compressed",
        "application/x-rar-compressed",
        "application/x-rar",
        "application/x-7z-compressed",
        "application/gzip",
        "application/x-gzip",
        "application/x-tar",
    }
)

_ANALYZE_PREFIX = "/api/game-save/analyze/"
_NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------

_storage = StorageManager(_STORAGE_DIR)
_codec: HeaderCodec = load_header_codec(_HEADER_CODEC_PATH)


def get_storage() -> StorageManager:
    return _storage


def get_header_codec() -> HeaderCodec:
    return _codec


# -----------------------------------------------------------------------------
# FastAPI app, middleware, and exception handlers
# -----------------------------------------------------------------------------

app = FastAPI(
    title="Factory Save Analyzer",
    description=(
        "Upload factory-game save archives, keep a bounded number of them, "
        "and derive a structured development / resource / production / "
        "power / threat report from each."
    ),
    version=_APP_VERSION,
)


@app.middleware("http")
async def no_cache_for_analysis(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(_ANALYZE_PREFIX):
        response.headers.update(_NO_CACHE_HEADERS)
    return response


def _envelope(failure: ServiceResponse) -> JSONResponse:
    return JSONResponse(status_code=failure.status_code, content=failure.model_dump(mode="json"))


@app.exception_handler(SaveAnalyzerError)
async def handle_domain_error(request: Request, exc: SaveAnalyzerError) -> JSONResponse:
    detail = getattr(exc, "entries", None) or None
    return _envelope(ServiceResponse.failure(exc.message, exc.status_code, detail))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    missing_file = any(
        err.get("type") == "missing" and tuple(err.get("loc", ()))[-1:] == ("file",)
        for err in errors
    )
    message = "No file uploaded" if missing_file else "Invalid request."
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in errors
    ]
    return _envelope(ServiceResponse.failure(message, 400, details))


# -----------------------------------------------------------------------------
# POST /api/game-save/upload
# -----------------------------------------------------------------------------


@app.post(
    "/api/game-save/upload",
    response_model=ServiceResponse[StoredArchive],
    summary="Upload a game save archive",
)
async def upload_game_save(
    file: UploadFile,
    storage: StorageManager = Depends(get_storage),
) -> ServiceResponse[StoredArchive]:
    """
    Validate and persist one uploaded archive.

    Checks run before anything touches the disk: the declared content type
    must be one of ``ALLOWED_MIME_TYPES`` and the body must not exceed
    ``MAX_UPLOAD_SIZE``.  On success the response carries the generated
    name that ``/api/game-save/analyze/{filename}`` expects.

    Raises
    ------
    ValidationError (400) : Disallowed content type or oversized upload.
    InternalError (500)   : The file could not be written.

    A failure of the automatic retention run is logged; the stored upload is
    still returned.
    """
    mime_type = (file.content_type or "").split(";")[0].strip().lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            "Invalid file type. Only compressed files (zip, rar, 7z, gz, tar) are allowed."
        )

    data = await file.read()
    if len(data) > MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"Upload size ({len(data):,} bytes) exceeds the "
            f"{MAX_UPLOAD_SIZE:,}-byte limit."
        )

    stored = storage.store(data, file.filename, mime_type)

    if _RETENTION_MAX > 0:
        # The upload is already on disk; a pruning failure must not hide it.
        try:
            storage.enforce_retention(_RETENTION_MAX)
        except OSError as exc:
            logger.error("Automatic retention failed in %s: %s", storage.root, exc)

    return ServiceResponse[StoredArchive].ok("File uploaded successfully", stored)


# -----------------------------------------------------------------------------
# POST /api/game-save/analyze/{filename}
# -----------------------------------------------------------------------------


@app.post(
    "/api/game-save/analyze/{filename}",
    response_model=ServiceResponse[AnalysisReport],
    summary="Analyse a previously uploaded save",
)
def analyze_game_save(
    filename: str,
    storage: StorageManager = Depends(get_storage),
    codec: HeaderCodec = Depends(get_header_codec),
) -> ServiceResponse[AnalysisReport]:
    """
    Resolve a stored save, decode it, and return its analysis report.

    Parameters
    ----------
    filename : Generated name returned by the upload endpoint.

    Raises
    ------
    NotFoundError (404)  : No stored file has that name, or it was pruned
                           before it could be read.
    DecodeError (400)    : Not a zip, no ``level-init.dat``, empty or oversized
                           header, or codec failure.  ``response_object``
                           lists up to 10 archive entries when the header
                           entry is missing.
    AnalysisError (500)  : The engine failed on a full snapshot.
    """
    logger.info("Analyze requested for %s", filename)

    path = storage.resolve(filename)
    if path is None:
        logger.warning("Analyze target %s not found", filename)
        raise NotFoundError(f'Game save file "{filename}" not found.')

    save_data = decode_save(path, codec)
    logger.info("Decoded %s, running analysis", filename)

    report = analyze(save_data)
    logger.info(
        "Analysis of %s complete (full=%s)", filename, report.full_analysis_available
    )
    return ServiceResponse[AnalysisReport].ok("Game save analyzed successfully", report)


# -----------------------------------------------------------------------------
# POST /api/game-save/retention
# -----------------------------------------------------------------------------


@app.post(
    "/api/game-save/retention",
    response_model=ServiceResponse[RetentionResult],
    summary="Keep only the newest N stored saves",
)
def enforce_retention(
    req: RetentionRequest,
    storage: StorageManager = Depends(get_storage),
) -> ServiceResponse[RetentionResult]:
    """
    Delete the oldest stored saves until at most ``max_files`` remain.

    Individual delete failures are logged and skipped; the response lists
    only the files actually removed.
    """
    try:
        removed = storage.enforce_retention(req.max_files)
        remaining = storage.count()
    except OSError as exc:
        logger.error("Retention failed in %s: %s", storage.root, exc)
        raise InternalError("An error occurred while pruning stored saves.") from exc

    return ServiceResponse[RetentionResult].ok(
        "Retention applied",
        RetentionResult(removed=removed, remaining=remaining),
    )
