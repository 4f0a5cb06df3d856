"""
Visual identity (direction artistique) widget.

Weighted completeness score (0-100) of the distinction pillar's visual
and verbal identity, with the missing elements listed as insights.
"""

from pydantic import BaseModel

from app.services.widgets.base import (
    WidgetComputeError,
    WidgetDescriptor,
    WidgetHandler,
    WidgetInput,
    as_dict,
    as_list,
    filled,
)


class Components(BaseModel):
    has_direction_artistique: bool
    has_palette_couleurs: bool
    color_count: int
    has_mood: bool
    has_personnalite: bool
    mantras_count: int
    vocabulaire_count: int
    has_on_dit: bool
    has_on_nedit_pas: bool


class BreakdownItem(BaseModel):
    component: str
    filled: bool
    weight: int


class DaOutput(BaseModel):
    visual_identity_score: int
    components: Components
    completeness_breakdown: list[BreakdownItem]
    insights: list[str]


DESCRIPTOR = WidgetDescriptor(
    id="da_visual_identity",
    name="Direction Artistique",
    description="Scoring of the brand's visual and verbal identity",
    category="analytics",
    required_pillars=("D",),
    minimum_phase="fiche",
    output_schema=DaOutput,
)


def _count(items) -> int:
    return sum(1 for item in as_list(items) if filled(item))


def compute(inp: WidgetInput) -> dict:
    distinction = inp.pillars.get("D")
    if not isinstance(distinction, dict):
        raise WidgetComputeError("Pillar D data not available")

    visual = as_dict(distinction.get("identiteVisuelle"))
    voice = as_dict(distinction.get("tonDeVoix"))
    assets = as_dict(distinction.get("assetsLinguistiques"))

    color_count = len(as_list(visual.get("paletteCouleurs")))
    mantras = _count(assets.get("mantras"))
    vocabulary = _count(assets.get("vocabulaireProprietaire"))

    components = {
        "has_direction_artistique": filled(visual.get("directionArtistique")),
        "has_palette_couleurs": color_count >= 3,
        "color_count": color_count,
        "has_mood": filled(visual.get("mood")),
        "has_personnalite": filled(voice.get("personnalite")),
        "mantras_count": mantras,
        "vocabulaire_count": vocabulary,
        "has_on_dit": _count(voice.get("onDit")) >= 3,
        "has_on_nedit_pas": _count(voice.get("onNeditPas")) >= 2,
    }

    breakdown = [
        {"component": "Direction artistique", "filled": components["has_direction_artistique"], "weight": 20},
        {"component": "Colour palette (3+)", "filled": components["has_palette_couleurs"], "weight": 15},
        {"component": "Mood", "filled": components["has_mood"], "weight": 10},
        {"component": "Brand personality", "filled": components["has_personnalite"], "weight": 15},
        {"component": "Mantras (2+)", "filled": mantras >= 2, "weight": 10},
        {"component": "Proprietary vocabulary (3+)", "filled": vocabulary >= 3, "weight": 10},
        {"component": "Words we use (3+)", "filled": components["has_on_dit"], "weight": 10},
        {"component": "Words we avoid (2+)", "filled": components["has_on_nedit_pas"], "weight": 10},
    ]
    score = sum(item["weight"] for item in breakdown if item["filled"])

    insights = []
    missing = [item["component"] for item in breakdown if not item["filled"]]
    if not missing:
        insights.append("Visual and verbal identity complete")
    else:
        insights.extend(f"Missing: {name}" for name in missing[:3])
        if len(missing) > 3:
            insights.append(f"{len(missing) - 3} more element(s) to complete")
    if 0 < color_count < 3:
        insights.append(f"Only {color_count} colour(s): at least 3 recommended")

    return {
        "visual_identity_score": score,
        "components": components,
        "completeness_breakdown": breakdown,
        "insights": insights,
    }


HANDLER = WidgetHandler(DESCRIPTOR, compute)
