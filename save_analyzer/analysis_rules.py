"""
save_analyzer/analysis_rules.py
-----------------------------------------------------------------------------
Catalogs and threshold tables used by the analysis engine.

Everything the engine "knows" about the game lives here: which entity names
count as furnaces or enemies, which items are core resources, and where the
stage / power / threat boundaries sit.  The tables are plain module-level
constants so tests can check their structure without building a snapshot,
and ``analysis.py`` stays a sequence of small computations over them.

Threshold semantics
-------------------
``POWER_STATUS_THRESHOLDS`` and ``THREAT_LEVEL_THRESHOLDS`` are ordered lists
checked top to bottom; the first row whose condition holds wins.  Power uses
inclusive lower bounds (``ratio >= bound``); threat uses exclusive upper
bounds (``nests < bound``).  ``STAGE_THRESHOLDS`` rows require *both* axes to
be under their bound.
"""

from __future__ import annotations

from save_analyzer.schema import PowerStatus, PowerType, Stage, ThreatLevel

# -----------------------------------------------------------------------------
# Time
# -----------------------------------------------------------------------------

TICKS_PER_SECOND: int = 60
TICKS_PER_HOUR: int = TICKS_PER_SECOND * 3600

# -----------------------------------------------------------------------------
# Development
# -----------------------------------------------------------------------------

STAGE_EARLY: Stage = "前期（手动/半自动化）"
STAGE_MID: Stage = "中期（全自动化）"
STAGE_LATE: Stage = "后期（规模化）"
STAGE_END: Stage = "末期（无限升级）"

# (hours upper bound, researched upper bound, stage).  Anything past the last
# row is end-game.
STAGE_THRESHOLDS: list[tuple[float, int, Stage]] = [
    (10, 30, STAGE_EARLY),
    (50, 80, STAGE_MID),
    (200, 150, STAGE_LATE),
]

# Production counters checked in priority order; thermal is the fallback.
POWER_SOURCE_PRIORITY: list[tuple[str, PowerType]] = [
    ("nuclear", "核能"),
    ("solar", "太阳能"),
    ("steam", "蒸汽"),
]
FALLBACK_POWER_TYPE: PowerType = "热能"

# Each half of the 0-100 development score.
TECH_SCORE_CAP: float = 50.0
STAGE_SCORE_CAP: float = 50.0
EARLY_STAGE_FULL_HOURS: float = 10.0

# -----------------------------------------------------------------------------
# Resources
# -----------------------------------------------------------------------------

# Item/entity name -> display label, in report order.
CORE_ORES: dict[str, str] = {
    "iron-ore": "铁矿",
    "copper-ore": "铜矿",
    "coal": "煤",
    "crude-oil": "原油",
}

STORAGE_ITEMS: dict[str, str] = {
    "iron-plate": "铁板",
    "copper-plate": "铜板",
    "iron-gear-wheel": "铁齿轮",
    "copper-cable": "铜缆",
}

# Remaining reserves below this share of what was already mined raise an alert.
DEPLETION_RATIO: float = 0.1

# Labels whose combined stock is the "core material" reserve.
CORE_MATERIAL_LABELS: tuple[str, ...] = ("铁板", "铜板")
CORE_MATERIAL_MIN_STOCK: float = 1000

# -----------------------------------------------------------------------------
# Production
# -----------------------------------------------------------------------------

MACHINE_CATALOG: dict[str, str] = {
    "stone-furnace": "石炉",
    "steel-furnace": "钢炉",
    "assembling-machine-1": "组装机1",
    "assembling-machine-2": "组装机2",
    "assembling-machine-3": "组装机3",
    "lab": "研究中心",
    "electric-mining-drill": "电力采矿机",
    "burner-mining-drill": "热能采矿机",
}

# (obsolete label, upgraded label, upgrade advice).  Both sides of every pair
# feed the efficiency ratio; a non-zero obsolete count raises an alert.
UPGRADE_PAIRS: list[tuple[str, str, str]] = [
    ("石炉", "钢炉", "建议升级为钢炉（冶炼效率翻倍，耗煤不变）"),
    ("热能采矿机", "电力采矿机", "建议升级为电力采矿机（采矿效率提升50%）"),
]

RESEARCH_LABEL: str = "研究中心"
MIN_EARLY_LABS: int = 5

# -----------------------------------------------------------------------------
# Power
# -----------------------------------------------------------------------------

POWER_SUFFICIENT: PowerStatus = "充足"
POWER_TIGHT: PowerStatus = "紧张"
POWER_INSUFFICIENT: PowerStatus = "不足"

POWER_STATUS_THRESHOLDS: list[tuple[float, PowerStatus]] = [
    (1.10, POWER_SUFFICIENT),
    (0.90, POWER_TIGHT),
]

# -----------------------------------------------------------------------------
# Enemies
# -----------------------------------------------------------------------------

ENEMY_UNITS: frozenset[str] = frozenset(
    {
        "small-biter",
        "medium-biter",
        "big-biter",
        "behemoth-biter",
        "small-spitter",
        "medium-spitter",
        "big-spitter",
        "behemoth-spitter",
    }
)
ENEMY_NESTS: frozenset[str] = frozenset({"biter-nest", "spitter-nest"})

THREAT_LOW: ThreatLevel = "低"
THREAT_MEDIUM: ThreatLevel = "中"
THREAT_HIGH: ThreatLevel = "高"
THREAT_CRITICAL: ThreatLevel = "极高"

# (nest count upper bound, level).  Counts at or past the last bound are
# critical.
THREAT_LEVEL_THRESHOLDS: list[tuple[int, ThreatLevel]] = [
    (1, THREAT_LOW),
    (10, THREAT_MEDIUM),
    (30, THREAT_HIGH),
]

# -----------------------------------------------------------------------------
# Suggestions
# -----------------------------------------------------------------------------

LOW_TECH_RATE_PERCENT: float = 50.0

HEADER_ONLY_NOTICE: str = (
    "当前仅解析了存档头信息；全维度分析（资源/电力/敌人等）需要完整的存档快照。"
)


# -----------------------------------------------------------------------------
# Classifiers
# -----------------------------------------------------------------------------


def classify_stage(hours: float, researched: int) -> Stage:
    for max_hours, max_researched, stage in STAGE_THRESHOLDS:
        if hours < max_hours and researched < max_researched:
            return stage
    return STAGE_END


def classify_power(ratio: float) -> PowerStatus:
    """Map a production/consumption ratio to a supply status."""
    for lower_bound, status in POWER_STATUS_THRESHOLDS:
        if ratio >= lower_bound:
            return status
    return POWER_INSUFFICIENT


def classify_threat(nest_count: int) -> ThreatLevel:
    """Map a hostile-nest count to a threat level."""
    for upper_bound, level in THREAT_LEVEL_THRESHOLDS:
        if nest_count < upper_bound:
            return level
    return THREAT_CRITICAL
