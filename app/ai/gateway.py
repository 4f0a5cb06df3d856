"""
Brand Strategy Orchestrator
Generation Gateway.

Boundary to the external content-generation collaborator:
    generate(pillar_type, context) → {"content": dict, "summary": str}
or raises GenerationError. The orchestrator never looks inside the
context beyond assembling it, and never retries on its own.

Providers are registered in an explicit id → class map:
    - anthropic: Claude messages API (needs ANTHROPIC_API_KEY)
    - local:     deterministic stub for dev/testing, no key required

Usage:
    from app.ai.gateway import get_generation_provider
    result = get_generation_provider().generate("R", context)
"""

import json
import logging
import os
import re
from abc import ABC, abstractmethod

from flask import current_app

from app.core.exceptions import GenerationError

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class GenerationProvider(ABC):
    """Abstract interface for pillar content generators."""

    name = "abstract"

    @abstractmethod
    def generate(self, pillar_type: str, context: dict) -> dict:
        """
        Produce the content of one pillar.

        Args:
            pillar_type: One of the eight pillar kinds.
            context: Survey answers plus upstream pillar content.

        Returns:
            dict with keys: content (dict), summary (str)

        Raises:
            GenerationError: on upstream failure or unusable output.
        """
        ...


# ── Prompts ───────────────────────────────────────────────────────────────────

SYSTEM_PROMPT = (
    "You are a senior brand strategist. You write one section of a brand "
    "strategy at a time and answer with a single JSON object, no prose."
)

PILLAR_INSTRUCTIONS = {
    "A": "Write the Authenticity pillar: brand origin story, values, purpose and community hierarchy (hierarchieCommunautaire).",
    "D": "Write the Distinction pillar: visual identity (identiteVisuelle), tone of voice (tonDeVoix) and linguistic assets (assetsLinguistiques).",
    "V": "Write the Value pillar: offer, pricing and unit economics (unitEconomics with cac, ltv, pointMort, marges), brand and client costs.",
    "E": "Write the Engagement pillar: touchpoints, rituals, gamification levels and KPIs.",
    "R": "Audit the A-D-V-E pillars for risk: microSwots per variable (with riskLevel), globalSwot and an overall riskScore (0-100).",
    "T": "Audit market fit: macroTrends, weakSignals, emergingPatterns, strategicRecommendations and a brandMarketFitScore (0-100).",
    "I": "Write the Implementation pillar: bigIdea, campaigns (annualCalendar, templates, activationPlan) and budgetAllocation.",
    "S": "Write the strategic Synthesis: executive summary, priorities and the 12-month roadmap.",
}


def build_prompt(pillar_type: str, context: dict) -> str:
    return (
        f"{PILLAR_INSTRUCTIONS[pillar_type]}\n\n"
        "Context (survey answers and upstream pillars):\n"
        f"{json.dumps(context, ensure_ascii=False, default=str)}\n\n"
        'Answer with {"content": {...}, "summary": "<one sentence>"}.'
    )


_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def parse_generation_output(text: str) -> dict:
    """Extract the {"content", "summary"} object from a model answer."""
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise GenerationError("Generator returned no JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Generator returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise GenerationError("Generator output is not an object")
    content = payload.get("content", payload)
    if not isinstance(content, dict):
        raise GenerationError("Generator content is not an object")
    return {"content": content, "summary": str(payload.get("summary") or "")[:1000]}


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(GenerationProvider):
    """Claude API (Anthropic) provider."""

    name = "anthropic"

    def __init__(self, model: str | None = None, max_tokens: int = 8192, timeout: float = 120.0):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self.model = model or "claude-3-5-sonnet-20241022"
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def generate(self, pillar_type: str, context: dict) -> dict:
        import anthropic

        client = self._get_client()
        try:
            response = client.messages.create(
                model=self.model,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(pillar_type, context)}],
                max_tokens=self.max_tokens,
                temperature=0.4,
            )
        except anthropic.APIError as exc:
            raise GenerationError(f"Anthropic API error: {exc}") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.debug(
            "Generated pillar %s: %d input / %d output tokens",
            pillar_type, response.usage.input_tokens, response.usage.output_tokens,
            extra={"pillar_type": pillar_type},
        )
        return parse_generation_output(text)


# ── Local Stub Provider ───────────────────────────────────────────────────────

class LocalStubProvider(GenerationProvider):
    """
    Local stub that returns deterministic content for dev/testing.
    No API key required.
    """

    name = "local"

    def generate(self, pillar_type: str, context: dict) -> dict:
        brand = (context.get("strategy") or {}).get("name") or "Brand"
        upstream = sorted((context.get("pillars") or {}).keys())
        content = self._stub_content(pillar_type, brand)
        content["_context"] = {"upstream": upstream, "extras": sorted(k for k in context if k not in ("strategy", "interview_data", "pillars"))}
        return {"content": content, "summary": f"{brand}: stub {pillar_type} pillar"}

    @staticmethod
    def _stub_content(pillar_type: str, brand: str) -> dict:
        if pillar_type == "A":
            return {
                "origine": f"{brand} was founded to serve its community.",
                "hierarchieCommunautaire": [
                    {"niveau": 1, "nom": "Curieux", "description": "Discovers the brand", "privileges": "Newsletter"},
                    {"niveau": 2, "nom": "Adepte", "description": "Buys regularly", "privileges": "Early access"},
                    {"niveau": 3, "nom": "Ambassadeur", "description": "Recommends the brand", "privileges": "Events"},
                ],
            }
        if pillar_type == "D":
            return {
                "identiteVisuelle": {
                    "directionArtistique": "Warm minimalism",
                    "paletteCouleurs": ["#1A1A1A", "#F2C14E", "#F7F7F2"],
                    "mood": "Confident and friendly",
                },
                "tonDeVoix": {
                    "personnalite": "Direct, warm, optimistic",
                    "onDit": ["nous", "ensemble", "simple"],
                    "onNeditPas": ["cheap", "luxe"],
                },
                "assetsLinguistiques": {"mantras": ["Made to last", "Ensemble"], "vocabulaireProprietaire": ["tribu", "atelier", "rituel"]},
            }
        if pillar_type == "V":
            return {
                "unitEconomics": {"cac": "5 000 FCFA", "ltv": "20 000 FCFA", "pointMort": "Month 14", "marges": "42%"},
                "coutMarque": {"capex": "12 M FCFA", "opex": "1.5 M FCFA / month", "coutsCaches": ["Returns"]},
                "coutClient": {"frictions": [{"friction": "Delivery delay", "solution": "Local hubs"}]},
            }
        if pillar_type == "E":
            return {
                "touchpoints": [
                    {"canal": "Instagram", "type": "social", "role": "Inspiration", "priorite": 1},
                    {"canal": "Boutique", "type": "physical", "role": "Conversion", "priorite": 2},
                ],
                "gamification": [
                    {"niveau": 1, "nom": "Bronze", "condition": "First purchase", "recompense": "Welcome gift"},
                    {"niveau": 2, "nom": "Silver", "condition": "5 purchases", "recompense": "10% off"},
                ],
                "kpis": [{"nom": "Repeat rate", "cible": "35%", "frequence": "mensuel"}],
            }
        if pillar_type == "R":
            return {
                "microSwots": [
                    {"variableId": "V1", "variableLabel": "Pricing power", "riskLevel": "high"},
                    {"variableId": "D1", "variableLabel": "Visual identity", "riskLevel": "low"},
                ],
                "globalSwot": {"strengths": ["Community"], "weaknesses": ["Scale"],
                               "opportunities": ["Regional expansion"], "threats": ["Imports"]},
                "riskScore": 38,
            }
        if pillar_type == "T":
            return {
                "macroTrends": ["Local sourcing"],
                "weakSignals": ["Resale communities"],
                "emergingPatterns": ["Subscription rituals"],
                "strategicRecommendations": ["Launch a loyalty club"],
                "brandMarketFitScore": 71,
            }
        if pillar_type == "I":
            return {
                "bigIdea": {"concept": "Ensemble", "mechanism": "Community-made drops", "declinaisons": [{"support": "OOH", "description": "Portraits"}]},
                "campaigns": {
                    "annualCalendar": [
                        {"mois": "Mars", "campagne": "Launch", "objectif": "Awareness", "canaux": ["Instagram"], "budget": "2 M FCFA", "kpiCible": "100k reach"},
                    ],
                    "templates": [{"nom": "Drop", "type": "product"}],
                    "activationPlan": {"phase1Teasing": "Teasers", "phase2Lancement": "Event", "phase3Amplification": "", "phase4Fidelisation": ""},
                },
                "budgetAllocation": {"enveloppeGlobale": "10 M FCFA", "parPoste": [{"poste": "Media", "montant": "6 M FCFA", "pourcentage": 60}]},
            }
        return {"executiveSummary": f"{brand} strategy synthesis", "priorities": ["Community", "Distribution"]}


# ── Registry ──────────────────────────────────────────────────────────────────

PROVIDERS = {
    "anthropic": AnthropicProvider,
    "local": LocalStubProvider,
}

_override: GenerationProvider | None = None


def set_generation_provider(provider: GenerationProvider | None) -> None:
    """Install a provider instance (tests); None restores config-driven selection."""
    global _override
    _override = provider


def get_generation_provider() -> GenerationProvider:
    """Resolve the provider from config. Falls back to the local stub without an API key."""
    if _override is not None:
        return _override

    name = current_app.config.get("GENERATION_PROVIDER", "local")
    if name == "anthropic":
        if not os.getenv("ANTHROPIC_API_KEY"):
            logger.warning("ANTHROPIC_API_KEY not set. Falling back to local stub provider.")
            return LocalStubProvider()
        return AnthropicProvider(
            model=current_app.config.get("GENERATION_MODEL"),
            max_tokens=current_app.config.get("GENERATION_MAX_TOKENS", 8192),
            timeout=current_app.config.get("GENERATION_TIMEOUT_SECONDS", 120.0),
        )
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise GenerationError(f"Unknown generation provider '{name}'")
    return provider_cls()
