"""
save_analyzer/schema.py
-----------------------------------------------------------------------------
Pydantic v2 models for every request / response object in the Factory Save
Analyzer API, plus the value types that flow between the domain modules.

Design principles
-----------------
• Keep models thin – no business logic here beyond tolerant construction
  of ``SaveHeader`` from a codec record.
• Every request/response field has a ``description`` so FastAPI's
  auto-generated OpenAPI UI is immediately useful.
• The analysis report is an explicit two-variant value (``HeaderOnlyReport``
  vs ``FullReport``) rather than one model full of optional fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# -----------------------------------------------------------------------------
# Report vocabulary
# -----------------------------------------------------------------------------

Stage = Literal[
    "前期（手动/半自动化）",
    "中期（全自动化）",
    "后期（规模化）",
    "末期（无限升级）",
]
PowerType = Literal["热能", "蒸汽", "太阳能", "核能"]
PowerStatus = Literal["充足", "紧张", "不足"]
ThreatLevel = Literal["低", "中", "高", "极高"]


# -----------------------------------------------------------------------------
# Response envelope
# -----------------------------------------------------------------------------


class ServiceResponse(BaseModel, Generic[T]):
    """
    Uniform success/failure envelope returned by every endpoint.

    The HTTP status code of the response always equals ``status_code`` so
    clients can branch on either.
    """

    success: bool = Field(..., description="True when the operation succeeded.")
    message: str = Field(..., description="Human-readable outcome summary.")
    response_object: T | None = Field(
        default=None,
        description="Operation result on success; diagnostic detail or null on failure.",
    )
    status_code: int = Field(..., description="HTTP status code mirrored into the body.")

    @classmethod
    def ok(cls, message: str, response_object: Any) -> ServiceResponse:
        return cls(success=True, message=message, response_object=response_object, status_code=200)

    @classmethod
    def failure(
        cls, message: str, status_code: int, response_object: Any = None
    ) -> ServiceResponse:
        return cls(
            success=False,
            message=message,
            response_object=response_object,
            status_code=status_code,
        )


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------


class StoredArchive(BaseModel):
    """
    A persisted upload.

    ``generated_name`` is the only handle ever exchanged with clients.  It is
    decoupled from ``original_name`` so that two uploads of ``save.zip`` never
    collide and mis-encoded names never reach the filesystem.
    """

    generated_name: str = Field(
        ...,
        description="Opaque unique file name under the storage root (uuid + extension).",
        examples=["3f2c9a0e6b7d4c1e9f0a1b2c3d4e5f60.zip"],
    )
    storage_path: str = Field(..., description="Path of the stored file on the server.")
    original_name: str = Field(
        ...,
        description="Client-supplied file name after encoding repair.",
        examples=["我的基地.zip"],
    )
    size_bytes: int = Field(..., ge=0, description="Size of the stored file in bytes.")
    mime_type: str = Field(..., description="Content type declared by the client.")
    stored_at: datetime = Field(..., description="UTC timestamp of when the file was written.")


class RetentionRequest(BaseModel):
    """Request body for POST /api/game-save/retention."""

    max_files: int = Field(
        ...,
        ge=0,
        description="Maximum number of stored saves to keep; the oldest surplus is deleted.",
        examples=[20],
    )


class RetentionResult(BaseModel):
    removed: list[str] = Field(
        default_factory=list,
        description="Generated names that were deleted, oldest first.",
    )
    remaining: int = Field(..., description="Number of files left in the storage root.")


# -----------------------------------------------------------------------------
# Save header
# -----------------------------------------------------------------------------


class SaveHeader(BaseModel):
    """Identity metadata decoded from a save's ``level-init.dat``."""

    display_name: str | None = None
    version_string: str | None = None
    mod_list: list[str] | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | None) -> SaveHeader:
        """
        Build a header from the codec's raw record.

        Codecs differ in how they spell the version and mod fields, so a few
        shapes are accepted:

        - ``version``: ``"1.1.110"`` or ``{"asString": "1.1.110"}``;
          ``factorioVersion`` is read when ``version`` is absent.
        - ``modList`` / ``mods``: a list of names or of ``{"name": ...}``.

        Unknown or malformed values become ``None`` rather than raising.
        """
        record = record if isinstance(record, Mapping) else {}

        name = record.get("name")
        version = record.get("version", record.get("factorioVersion"))
        if isinstance(version, Mapping):
            version = version.get("asString")

        raw_mods = record.get("modList", record.get("mods"))
        mods: list[str] | None = None
        if isinstance(raw_mods, list):
            mods = []
            for mod in raw_mods:
                if isinstance(mod, Mapping):
                    mod = mod.get("name")
                if isinstance(mod, str) and mod:
                    mods.append(mod)

        return cls(
            display_name=name if isinstance(name, str) and name else None,
            version_string=version if isinstance(version, str) and version else None,
            mod_list=mods,
        )


# -----------------------------------------------------------------------------
# Analysis report sections
# -----------------------------------------------------------------------------


class BasicInfo(BaseModel):
    save_name: str
    game_time_hour: str = Field(
        ..., description="Elapsed in-game hours with two decimals, or '—' when unknown."
    )
    game_version: str
    mods: list[str] = Field(default_factory=list)


class TechStatus(BaseModel):
    researched_count: int = 0
    total_tech_count: int = 0
    tech_rate: str = "0.00%"


class DevelopSection(BaseModel):
    stage: Stage = "前期（手动/半自动化）"
    score: int = Field(default=0, ge=0, le=100)
    tech_status: TechStatus = Field(default_factory=TechStatus)
    main_power_type: PowerType = "热能"


class ResourceSection(BaseModel):
    mined: dict[str, int | float] = Field(default_factory=dict)
    remaining: dict[str, int | float] = Field(default_factory=dict)
    storage: dict[str, int | float] = Field(default_factory=dict)
    core_res_alert: list[str] = Field(default_factory=list)


class ProductionSection(BaseModel):
    machines: dict[str, int] = Field(default_factory=dict)
    efficiency_rate: str = "—"
    efficiency_alert: list[str] = Field(default_factory=list)


class PowerSection(BaseModel):
    total_production: int = 0
    total_consumption: int = 0
    power_ratio: str = "—"
    power_status: PowerStatus = "充足"


class EnemySection(BaseModel):
    total_count: int = 0
    nest_count: int = 0
    threat_level: ThreatLevel = "低"
    threat_alert: list[str] = Field(default_factory=list)


class OptimizeSuggestions(BaseModel):
    urgent: list[str] = Field(default_factory=list)
    important: list[str] = Field(default_factory=list)
    suggest: list[str] = Field(default_factory=list)


class _ReportBase(BaseModel):
    basic: BasicInfo
    develop: DevelopSection = Field(default_factory=DevelopSection)
    resource: ResourceSection = Field(default_factory=ResourceSection)
    production: ProductionSection = Field(default_factory=ProductionSection)
    power: PowerSection = Field(default_factory=PowerSection)
    enemy: EnemySection = Field(default_factory=EnemySection)
    optimize_suggestions: OptimizeSuggestions = Field(default_factory=OptimizeSuggestions)


class HeaderOnlyReport(_ReportBase):
    """Degraded report built from header fields alone."""

    full_analysis_available: Literal[False] = False


class FullReport(_ReportBase):
    """Report computed from a complete simulation snapshot."""

    full_analysis_available: Literal[True] = True


AnalysisReport = HeaderOnlyReport | FullReport
