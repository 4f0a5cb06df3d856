"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

GENERATION_LIMIT = "10/minute"
MUTATION_LIMIT = "60/minute"

# Endpoints that call the generation collaborator
GENERATION_ENDPOINTS = ("strategy.generate_pillar",)

MUTATION_BLUEPRINTS = ("strategy", "signal", "mission", "widget")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Generation endpoints: 10/minute  (LLM calls are expensive)
        - Strategy / signal / mission / widget blueprints: 60/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    # Generation: strict limit, wraps the registered view
    for endpoint in GENERATION_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(GENERATION_LIMIT)(view)

    for bp_name in MUTATION_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(MUTATION_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — generation: %s, mutations: %s",
        GENERATION_LIMIT, MUTATION_LIMIT,
    )
