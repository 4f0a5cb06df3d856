"""
Superfan tracker widget.

Merges the authenticity pillar's community hierarchy with the
engagement pillar's gamification levels into a fan ladder, scores each
touchpoint per level and spreads the engagement KPIs across levels.
"""

from pydantic import BaseModel

from app.services.widgets.base import (
    WidgetComputeError,
    WidgetDescriptor,
    WidgetHandler,
    WidgetInput,
    as_list,
    text,
)


class FanLevel(BaseModel):
    level: int
    name: str
    description: str
    privileges: str
    points_threshold: int
    engagement_actions: list[str]


class EngagementRow(BaseModel):
    touchpoint: str
    canal: str
    level_scores: dict[str, int]


class Kpi(BaseModel):
    name: str
    target: str
    frequency: str


class LevelKpis(BaseModel):
    level: str
    kpis: list[Kpi]


class SuperfanOutput(BaseModel):
    fan_levels: list[FanLevel]
    engagement_matrix: list[EngagementRow]
    tracking_kpis: list[LevelKpis]
    readiness_score: int
    insights: list[str]


DESCRIPTOR = WidgetDescriptor(
    id="superfan_tracker",
    name="Superfan Tracker",
    description="Fan scoring model and engagement matrix to grow brand superfans",
    category="community",
    required_pillars=("A", "E"),
    minimum_phase="implementation",
    output_schema=SuperfanOutput,
    size="large",
)


def _priority_bonus(priority) -> int:
    if not isinstance(priority, (int, float)):
        return 0
    if priority <= 2:
        return 20
    if priority <= 4:
        return 10
    return 0


def compute(inp: WidgetInput) -> dict:
    authenticity = inp.pillars.get("A")
    engagement = inp.pillars.get("E")
    if not isinstance(authenticity, dict) or not isinstance(engagement, dict):
        raise WidgetComputeError("Pillar A or E data not available")

    hierarchy = [h for h in as_list(authenticity.get("hierarchieCommunautaire")) if isinstance(h, dict)]
    gamification = [g for g in as_list(engagement.get("gamification")) if isinstance(g, dict)]
    touchpoints = [t for t in as_list(engagement.get("touchpoints")) if isinstance(t, dict)]
    kpis = [k for k in as_list(engagement.get("kpis")) if isinstance(k, dict)]

    rewards = {g.get("niveau"): g for g in gamification}
    fan_levels = []
    for h in hierarchy:
        level = int(h.get("niveau") or len(fan_levels) + 1)
        reward = rewards.get(level)
        actions = [text(reward.get("condition")), text(reward.get("recompense"))] if reward else []
        fan_levels.append({
            "level": level,
            "name": text(h.get("nom")) or f"Level {level}",
            "description": text(h.get("description")),
            "privileges": text(h.get("privileges")),
            "points_threshold": level * 100,
            "engagement_actions": [a for a in actions if a],
        })

    level_count = max(len(fan_levels), 1)
    matrix = []
    for tp in touchpoints:
        bonus = _priority_bonus(tp.get("priorite"))
        matrix.append({
            "touchpoint": text(tp.get("role")) or text(tp.get("canal")),
            "canal": text(tp.get("canal")),
            "level_scores": {
                fl["name"]: min(100, round(min(100, fl["level"] / level_count * 100) + bonus))
                for fl in fan_levels
            },
        })

    tracking = []
    for idx, fl in enumerate(fan_levels):
        start = (idx * len(kpis)) // len(fan_levels)
        end = ((idx + 1) * len(kpis)) // len(fan_levels) or len(kpis)
        level_kpis = [
            {"name": text(k.get("nom")) or text(k.get("variable")),
             "target": text(k.get("cible")),
             "frequency": text(k.get("frequence")) or "mensuel"}
            for k in kpis[start:end]
        ]
        tracking.append({
            "level": fl["name"],
            "kpis": level_kpis or [{"name": "Engagement", "target": "TBD", "frequency": "mensuel"}],
        })

    score = 0
    if hierarchy:
        score += 30
    if gamification:
        score += 25
    if touchpoints:
        score += 25
    if kpis:
        score += 20

    insights = []
    if not hierarchy:
        insights.append("No community hierarchy defined: required to score superfans")
    if not gamification:
        insights.append("No gamification system: add levels to engage fans")
    if len(fan_levels) >= 4:
        insights.append(f"{len(fan_levels)} fan levels identified")
    if len(touchpoints) > 5:
        insights.append(f"{len(touchpoints)} active touchpoints")

    return {
        "fan_levels": fan_levels,
        "engagement_matrix": matrix,
        "tracking_kpis": tracking,
        "readiness_score": score,
        "insights": insights,
    }


HANDLER = WidgetHandler(DESCRIPTOR, compute)
