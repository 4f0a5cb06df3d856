"""
Campaign tracker widget.

Campaign readiness from the implementation pillar: annual calendar, big
idea, templates, activation phases and allocated budget.
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
    text,
)

ACTIVATION_PHASES = {
    "teasing": "phase1Teasing",
    "lancement": "phase2Lancement",
    "amplification": "phase3Amplification",
    "fidelisation": "phase4Fidelisation",
}


class BigIdea(BaseModel):
    concept: str
    mechanism: str
    declinaison_count: int


class CalendarEntry(BaseModel):
    mois: str
    campagne: str
    objectif: str
    canaux: list[str]
    budget: str
    kpi_cible: str


class ActivationPhases(BaseModel):
    teasing: bool
    lancement: bool
    amplification: bool
    fidelisation: bool


class CampaignOutput(BaseModel):
    big_idea: BigIdea | None
    annual_calendar: list[CalendarEntry]
    campaign_count: int
    channel_breakdown: dict[str, int]
    campaign_template_count: int
    activation_phases: ActivationPhases
    total_budget_allocated: str
    campaign_readiness_score: int
    insights: list[str]


DESCRIPTOR = WidgetDescriptor(
    id="campaign_tracker",
    name="Campaigns of the Year",
    description="Annual calendar, big idea and campaign follow-up",
    category="analytics",
    required_pillars=("I",),
    minimum_phase="implementation",
    output_schema=CampaignOutput,
    size="large",
)


def compute(inp: WidgetInput) -> dict:
    implementation = inp.pillars.get("I")
    if not isinstance(implementation, dict):
        raise WidgetComputeError("Pillar I data not available")

    campaigns = as_dict(implementation.get("campaigns"))
    calendar_raw = [c for c in as_list(campaigns.get("annualCalendar")) if isinstance(c, dict)]
    templates = as_list(campaigns.get("templates"))
    plan = as_dict(campaigns.get("activationPlan"))
    idea = as_dict(implementation.get("bigIdea"))
    budget = as_dict(implementation.get("budgetAllocation"))

    big_idea = None
    if filled(idea.get("concept")):
        big_idea = {
            "concept": text(idea["concept"]),
            "mechanism": text(idea.get("mechanism")),
            "declinaison_count": len(as_list(idea.get("declinaisons"))),
        }

    calendar = []
    channels: dict[str, int] = {}
    for entry in calendar_raw:
        canaux = [text(c) for c in as_list(entry.get("canaux")) if filled(c)]
        for canal in canaux:
            channels[canal] = channels.get(canal, 0) + 1
        calendar.append({
            "mois": text(entry.get("mois")),
            "campagne": text(entry.get("campagne")),
            "objectif": text(entry.get("objectif")),
            "canaux": canaux,
            "budget": text(entry.get("budget")),
            "kpi_cible": text(entry.get("kpiCible")),
        })

    phases = {name: filled(plan.get(key)) for name, key in ACTIVATION_PHASES.items()}
    active_phases = sum(phases.values())
    total_budget = text(budget.get("enveloppeGlobale"))

    score = 0
    if len(calendar) >= 6:
        score += 30
    elif len(calendar) >= 3:
        score += 15
    elif calendar:
        score += 5
    if big_idea:
        score += 25
    if len(templates) >= 2:
        score += 15
    elif templates:
        score += 8
    if active_phases == 4:
        score += 15
    elif active_phases >= 2:
        score += round(active_phases / 4 * 15)
    if total_budget:
        score += 15

    insights = []
    if not calendar:
        insights.append("No annual campaign calendar: plan the key moments")
    else:
        insights.append(f"{len(calendar)} campaign(s) planned over the year")
    if not big_idea:
        insights.append("No big idea defined")
    elif big_idea["declinaison_count"] >= 3:
        insights.append(f"Big idea declined on {big_idea['declinaison_count']} supports")
    if not templates:
        insights.append("No campaign template: create reusable templates")
    if active_phases < 4:
        insights.append(f"{4 - active_phases} activation phase(s) missing")

    return {
        "big_idea": big_idea,
        "annual_calendar": calendar,
        "campaign_count": len(calendar),
        "channel_breakdown": channels,
        "campaign_template_count": len(templates),
        "activation_phases": phases,
        "total_budget_allocated": total_budget,
        "campaign_readiness_score": min(100, score),
        "insights": insights,
    }


HANDLER = WidgetHandler(DESCRIPTOR, compute)
