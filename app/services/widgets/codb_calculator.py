"""
Cost of Doing Business widget.

Reads the value pillar (unitEconomics, coutMarque, coutClient) and, when
present, the implementation pillar's budgetAllocation to give a
financial readiness view.
"""

import re

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

HEALTHY_LTV_CAC_RATIO = 3.0


class UnitEconomics(BaseModel):
    cac: str
    ltv: str
    ltv_cac_ratio: str
    point_mort: str
    marges: str


class CostStructure(BaseModel):
    capex: str
    opex: str
    hidden_costs: list[str]
    friction_count: int


class BudgetLine(BaseModel):
    poste: str
    montant: str
    pourcentage: float


class RoiProjections(BaseModel):
    mois6: str
    mois12: str
    mois24: str


class BudgetSummary(BaseModel):
    total_enveloppe: str
    top_postes: list[BudgetLine]
    roi_projections: RoiProjections | None


class HealthIndicators(BaseModel):
    ltv_cac_healthy: bool
    has_breakeven: bool
    has_margins: bool
    has_budget: bool


class CodbOutput(BaseModel):
    unit_economics: UnitEconomics
    cost_structure: CostStructure
    budget_summary: BudgetSummary | None
    health_indicators: HealthIndicators
    codb_readiness_score: int
    insights: list[str]


DESCRIPTOR = WidgetDescriptor(
    id="codb_calculator",
    name="Cost of Doing Business",
    description="Acquisition cost and profitability of the brand",
    category="financial",
    required_pillars=("V",),
    minimum_phase="fiche",
    output_schema=CodbOutput,
)

_NON_NUMERIC = re.compile(r"[^\d.,\-]")


def parse_amount(value: str) -> float | None:
    """'150 000 FCFA' → 150000.0; None when nothing numeric is left."""
    cleaned = _NON_NUMERIC.sub("", value or "").replace(",", ".", 1)
    try:
        return float(cleaned)
    except ValueError:
        return None


def _budget_summary(budget: dict) -> dict | None:
    if not filled(budget.get("enveloppeGlobale")):
        return None
    lines = [line for line in as_list(budget.get("parPoste")) if isinstance(line, dict) and filled(line.get("poste"))]
    lines.sort(key=lambda line: line.get("pourcentage") or 0, reverse=True)
    roi = as_dict(budget.get("roiProjections"))
    has_roi = any(filled(roi.get(k)) for k in ("mois6", "mois12", "mois24"))
    return {
        "total_enveloppe": text(budget["enveloppeGlobale"]),
        "top_postes": [
            {"poste": line["poste"], "montant": text(line.get("montant")), "pourcentage": line.get("pourcentage") or 0}
            for line in lines[:5]
        ],
        "roi_projections": {k: text(roi.get(k)) for k in ("mois6", "mois12", "mois24")} if has_roi else None,
    }


def compute(inp: WidgetInput) -> dict:
    value = inp.pillars.get("V")
    if not isinstance(value, dict):
        raise WidgetComputeError("Pillar V data not available")

    ue = as_dict(value.get("unitEconomics"))
    brand_cost = as_dict(value.get("coutMarque"))
    client_cost = as_dict(value.get("coutClient"))
    budget = as_dict(as_dict(inp.pillars.get("I")).get("budgetAllocation"))

    cac, ltv = text(ue.get("cac")), text(ue.get("ltv"))
    point_mort, marges = text(ue.get("pointMort")), text(ue.get("marges"))

    ratio = text(ue.get("ratio"))
    cac_num, ltv_num = parse_amount(cac), parse_amount(ltv)
    if cac_num and ltv_num and cac_num > 0:
        ratio = f"{ltv_num / cac_num:.1f}x"

    hidden_costs = [c.strip() for c in as_list(brand_cost.get("coutsCaches")) if filled(c)]
    friction_count = len(as_list(client_cost.get("frictions")))
    summary = _budget_summary(budget)

    ratio_num = parse_amount(ratio)
    healthy = ratio_num is not None and ratio_num >= HEALTHY_LTV_CAC_RATIO

    score = 0
    if cac and ltv:
        score += 30
    elif cac or ltv:
        score += 15
    if ratio:
        score += 15
    if point_mort:
        score += 10
    if marges:
        score += 10
    if summary:
        score += 15
    if friction_count:
        score += 10
    if summary and summary["roi_projections"]:
        score += 10

    insights = []
    if not cac or not ltv:
        insights.append("CAC and/or LTV missing")
    if healthy:
        insights.append(f"LTV/CAC ratio of {ratio} is healthy (>= 3x)")
    elif ratio_num is not None and ratio_num > 0:
        insights.append(f"LTV/CAC ratio of {ratio} is below the 3x profitability threshold")
    if hidden_costs:
        insights.append(f"{len(hidden_costs)} hidden cost(s) identified")
    if friction_count:
        insights.append(f"{friction_count} client friction(s) identified")
    if not summary:
        insights.append("No budget yet: generate the Implementation pillar (I)")

    return {
        "unit_economics": {
            "cac": cac, "ltv": ltv, "ltv_cac_ratio": ratio,
            "point_mort": point_mort, "marges": marges,
        },
        "cost_structure": {
            "capex": text(brand_cost.get("capex")),
            "opex": text(brand_cost.get("opex")),
            "hidden_costs": hidden_costs,
            "friction_count": friction_count,
        },
        "budget_summary": summary,
        "health_indicators": {
            "ltv_cac_healthy": healthy,
            "has_breakeven": bool(point_mort),
            "has_margins": bool(marges),
            "has_budget": summary is not None,
        },
        "codb_readiness_score": min(100, score),
        "insights": insights,
    }


HANDLER = WidgetHandler(DESCRIPTOR, compute)
