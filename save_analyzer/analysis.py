"""
save_analyzer/analysis.py
-----------------------------------------------------------------------------
Multi-dimensional analysis of a decoded game save.

The engine receives whatever the header codec produced and picks one of two
modes:

- **Header-only** – the record has no simulation snapshot (no ``game`` or no
  first ``map.surfaces`` entry).  The report carries the save's name, version
  and mods, zeroed dimensions, and a single notice.  This path is total: it
  accepts any input, including ``None`` and ``{}``, and never raises.
- **Full** – the record carries a snapshot.  Six dimensions are computed
  deterministically from it and folded into prioritised suggestions.

Snapshot shape read in full mode
--------------------------------
::

    game.tick
    game.forces.player.technologies.<name>.researched
    game.forces.player.electric_network_statistics.production.{total,nuclear,solar,steam}
    game.forces.player.electric_network_statistics.consumption.total
    game.forces.player.item_production_statistics.output_counts.<item>
    game.forces.player.items.<item>
    game_version
    map.name
    map.surfaces[0].entities  (list or mapping of {name, amount})

Every lookup below the mode decision is tolerant: a missing or mistyped
substructure reads as zero / empty.

Exports
-------
analyze(save_data) -> HeaderOnlyReport | FullReport
build_header_only_report(record) -> HeaderOnlyReport
build_full_report(record) -> FullReport
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from save_analyzer import analysis_rules as rules
from save_analyzer.errors import AnalysisError
from save_analyzer.schema import (
    AnalysisReport,
    BasicInfo,
    DevelopSection,
    EnemySection,
    FullReport,
    HeaderOnlyReport,
    OptimizeSuggestions,
    PowerSection,
    ProductionSection,
    ResourceSection,
    SaveHeader,
    TechStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_SAVE_NAME: str = "未命名基地"
DEFAULT_VERSION: str = "未知版本"
UNKNOWN_TIME: str = "—"


# -----------------------------------------------------------------------------
# Tolerant readers
# -----------------------------------------------------------------------------


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _number(value: Any) -> int | float:
    """Return *value* if it is a finite real number, else 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return value


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _percent(ratio: float) -> str:
    return f"{ratio * 100:.2f}%"


def _main_surface(map_data: Any) -> Mapping[str, Any] | None:
    surfaces = _mapping(map_data).get("surfaces")
    if isinstance(surfaces, list) and surfaces:
        first = surfaces[0]
    elif isinstance(surfaces, Mapping) and surfaces:
        first = next(iter(surfaces.values()))
    else:
        return None
    return first if isinstance(first, Mapping) else None


def _entities(surface: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    raw = surface.get("entities")
    if isinstance(raw, Mapping):
        raw = raw.values()
    if not isinstance(raw, Iterable) or isinstance(raw, (str, bytes)):
        return []
    return [entity for entity in raw if isinstance(entity, Mapping)]


def has_full_snapshot(save_data: Any) -> bool:
    """
    True when the record carries a ``game`` mapping and a first map surface.

    Presence is what counts: an empty ``game`` or an empty first surface still
    selects full mode, and the missing values inside read as zero.
    """
    data = _mapping(save_data)
    return isinstance(data.get("game"), Mapping) and _main_surface(data.get("map")) is not None


# -----------------------------------------------------------------------------
# Header-only mode
# -----------------------------------------------------------------------------


def build_header_only_report(record: Any) -> HeaderOnlyReport:
    header = SaveHeader.from_record(_mapping(record))
    return HeaderOnlyReport(
        basic=BasicInfo(
            save_name=header.display_name or DEFAULT_SAVE_NAME,
            game_time_hour=UNKNOWN_TIME,
            game_version=header.version_string or DEFAULT_VERSION,
            mods=header.mod_list or [],
        ),
        optimize_suggestions=OptimizeSuggestions(suggest=[rules.HEADER_ONLY_NOTICE]),
    )


# -----------------------------------------------------------------------------
# Full mode: one function per dimension
# -----------------------------------------------------------------------------


def _develop(force: Mapping[str, Any], hours: float) -> DevelopSection:
    technologies = _mapping(force.get("technologies"))
    total = len(technologies)
    researched = sum(
        1 for tech in technologies.values() if _mapping(tech).get("researched")
    )
    ratio = researched / total if total else 0.0

    production = _mapping(_mapping(force.get("electric_network_statistics")).get("production"))
    main_power = next(
        (label for key, label in rules.POWER_SOURCE_PRIORITY if _number(production.get(key))),
        rules.FALLBACK_POWER_TYPE,
    )

    stage = rules.classify_stage(hours, researched)
    if stage == rules.STAGE_EARLY:
        stage_component = min(
            rules.STAGE_SCORE_CAP, hours / rules.EARLY_STAGE_FULL_HOURS * rules.STAGE_SCORE_CAP
        )
    else:
        stage_component = rules.STAGE_SCORE_CAP
    tech_component = min(rules.TECH_SCORE_CAP, ratio * rules.TECH_SCORE_CAP)

    return DevelopSection(
        stage=stage,
        score=min(100, _round_half_up(tech_component + stage_component)),
        tech_status=TechStatus(
            researched_count=researched,
            total_tech_count=total,
            tech_rate=_percent(ratio),
        ),
        main_power_type=main_power,
    )


def _resource(
    force: Mapping[str, Any], entities: list[Mapping[str, Any]]
) -> ResourceSection:
    output_counts = _mapping(
        _mapping(force.get("item_production_statistics")).get("output_counts")
    )
    items = _mapping(force.get("items"))

    mined = {label: _number(output_counts.get(name)) for name, label in rules.CORE_ORES.items()}
    remaining = {
        label: sum(_number(e.get("amount")) for e in entities if e.get("name") == name)
        for name, label in rules.CORE_ORES.items()
    }
    storage = {label: _number(items.get(name)) for name, label in rules.STORAGE_ITEMS.items()}

    alerts = [
        f"{label}剩余量不足已开采的10%，存在枯竭风险"
        for label in rules.CORE_ORES.values()
        if remaining[label] < mined[label] * rules.DEPLETION_RATIO
    ]
    return ResourceSection(mined=mined, remaining=remaining, storage=storage, core_res_alert=alerts)


def _production(name_counts: Counter[str], stage: str) -> ProductionSection:
    machines = {label: name_counts.get(name, 0) for name, label in rules.MACHINE_CATALOG.items()}

    upgraded = sum(machines[new] for _, new, _ in rules.UPGRADE_PAIRS)
    paired = sum(machines[old] + machines[new] for old, new, _ in rules.UPGRADE_PAIRS)
    efficiency = upgraded / paired if paired else 1.0

    alerts = [
        f"仍有{machines[old]}个{old}，{advice}"
        for old, _, advice in rules.UPGRADE_PAIRS
        if machines[old] > 0
    ]
    labs = machines[rules.RESEARCH_LABEL]
    if labs < rules.MIN_EARLY_LABS and stage == rules.STAGE_EARLY:
        alerts.append(f"研究中心数量不足（当前{labs}个），科技解锁速度慢")

    return ProductionSection(
        machines=machines, efficiency_rate=_percent(efficiency), efficiency_alert=alerts
    )


def _power(force: Mapping[str, Any]) -> PowerSection:
    stats = _mapping(force.get("electric_network_statistics"))
    production = _round_half_up(_number(_mapping(stats.get("production")).get("total")))
    consumption = max(1, _round_half_up(_number(_mapping(stats.get("consumption")).get("total"))))

    power_ratio = f"{production / consumption:.2f}"
    return PowerSection(
        total_production=production,
        total_consumption=consumption,
        power_ratio=power_ratio,
        power_status=rules.classify_power(float(power_ratio)),
    )


def _enemy(name_counts: Counter[str]) -> EnemySection:
    units = sum(count for name, count in name_counts.items() if name in rules.ENEMY_UNITS)
    nests = sum(count for name, count in name_counts.items() if name in rules.ENEMY_NESTS)
    level = rules.classify_threat(nests)

    alerts: list[str] = []
    if level in (rules.THREAT_HIGH, rules.THREAT_CRITICAL):
        alerts.append(f"当前虫巢{nests}个，敌人{units}只，威胁等级{level}，建议加强基地防御")
    return EnemySection(total_count=units, nest_count=nests, threat_level=level, threat_alert=alerts)


def build_suggestions(
    develop: DevelopSection,
    resource: ResourceSection,
    production: ProductionSection,
    power: PowerSection,
    enemy: EnemySection,
) -> OptimizeSuggestions:
    """
    Fold dimension results into three priority buckets.

    Every rule adds at most one message.  Rules that summarise a list of
    alerts join them into a single message.  Buckets are not deduplicated
    against each other.
    """
    suggestions = OptimizeSuggestions()

    # Urgent
    if power.power_status == rules.POWER_INSUFFICIENT:
        if develop.main_power_type == "蒸汽":
            remedy = "请按1泵:20锅炉:40蒸汽机补充发电设备"
        else:
            remedy = "建议增加太阳能板/储能箱/核能反应堆"
        suggestions.urgent.append(f"供电不足（供电比{power.power_ratio}），{remedy}")
    if resource.core_res_alert:
        suggestions.urgent.append("；".join(resource.core_res_alert))
    if enemy.threat_level == rules.THREAT_CRITICAL and enemy.threat_alert:
        suggestions.urgent.append(enemy.threat_alert[0])

    # Important
    if power.power_status == rules.POWER_TIGHT:
        suggestions.important.append(
            f"供电紧张（供电比{power.power_ratio}），建议适当增加发电设备，避免设备停机"
        )
    if production.efficiency_alert:
        suggestions.important.append("；".join(production.efficiency_alert))
    if enemy.threat_level == rules.THREAT_HIGH and enemy.threat_alert:
        suggestions.important.append(enemy.threat_alert[0])

    # Suggest
    tech_rate = develop.tech_status.tech_rate
    if float(tech_rate.rstrip("%")) < rules.LOW_TECH_RATE_PERCENT:
        suggestions.suggest.append(
            f"科技解锁率仅{tech_rate}，建议优化科技包生产线，增加研究中心数量"
        )
    core_stock = sum(resource.storage.get(label, 0) for label in rules.CORE_MATERIAL_LABELS)
    if core_stock < rules.CORE_MATERIAL_MIN_STOCK:
        suggestions.suggest.append(
            f"核心基础材料（铁板+铜板）储备不足{rules.CORE_MATERIAL_MIN_STOCK}，建议提升冶炼产能"
        )

    return suggestions


def build_full_report(record: Mapping[str, Any]) -> FullReport:
    game = _mapping(record.get("game"))
    map_data = _mapping(record.get("map"))
    surface = _main_surface(map_data) or {}
    force = _mapping(_mapping(game.get("forces")).get("player"))
    entities = _entities(surface)
    name_counts: Counter[str] = Counter(
        e["name"] for e in entities if isinstance(e.get("name"), str)
    )

    hours = max(0.0, _number(game.get("tick")) / rules.TICKS_PER_HOUR)
    header = SaveHeader.from_record(record)

    develop = _develop(force, hours)
    resource = _resource(force, entities)
    production = _production(name_counts, develop.stage)
    power = _power(force)
    enemy = _enemy(name_counts)

    return FullReport(
        basic=BasicInfo(
            save_name=_text(map_data.get("name")) or header.display_name or DEFAULT_SAVE_NAME,
            game_time_hour=f"{hours:.2f}",
            game_version=_text(record.get("game_version"))
            or header.version_string
            or DEFAULT_VERSION,
            mods=header.mod_list or [],
        ),
        develop=develop,
        resource=resource,
        production=production,
        power=power,
        enemy=enemy,
        optimize_suggestions=build_suggestions(develop, resource, production, power, enemy),
    )


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def analyze(save_data: Any) -> AnalysisReport:
    """
    Produce the analysis report for a decoded save.

    Parameters
    ----------
    save_data : The codec's record.  Anything that is not a mapping is
                treated as an empty header.

    Returns
    -------
    HeaderOnlyReport when no simulation snapshot is present, else FullReport.

    Raises
    ------
    AnalysisError
        Only in full mode, if computing the report fails unexpectedly.  The
        header-only path never raises.
    """
    if not has_full_snapshot(save_data):
        return build_header_only_report(save_data)

    try:
        return build_full_report(save_data)
    except Exception as exc:
        logger.error("Full analysis failed: %s: %s", type(exc).__name__, exc)
        raise AnalysisError(f"Failed to analyze game save: {exc}") from exc
