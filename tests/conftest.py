"""
Shared pytest fixtures for the Brand Strategy Orchestrator test suite.

Provides:
    - app: Flask application (session-scoped, "testing" config)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + DB reset (autouse)
    - client: Flask test client
    - provider: recording FakeProvider installed as generation collaborator
    - strategy: freshly created strategy owned by "alice"
    - strategy_with_base_pillars: strategy with A/D/V/E generated (phase fiche-review)
    - mission: mission attached to ``strategy``
    - set_phase: force a strategy phase, bypassing the phase machine

Background side effects run inline (BACKGROUND_TASKS_SYNC=True) so their
results are visible as soon as the triggering call returns.
"""

import pytest

from app import create_app
from app.ai.gateway import GenerationProvider, set_generation_provider
from app.models import db as _db
from app.models.strategy import BASE_PILLARS, Strategy


class FakeProvider(GenerationProvider):
    """Records every call; returns canned content or raises ``fail``."""

    name = "fake"

    def __init__(self):
        self.calls = []
        self.fail = None
        self.content_for = {}

    def generate(self, pillar_type, context):
        self.calls.append((pillar_type, context))
        if self.fail is not None:
            raise self.fail
        content = self.content_for.get(pillar_type, {"kind": pillar_type, "call": len(self.calls)})
        return {"content": dict(content), "summary": f"{pillar_type} summary"}

    def kinds_called(self):
        return [kind for kind, _ in self.calls]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        set_generation_provider(None)
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def provider():
    fake = FakeProvider()
    set_generation_provider(fake)
    yield fake
    set_generation_provider(None)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def set_phase():
    """Put a strategy in a phase without going through the phase machine."""
    def _set(strategy_id, phase):
        row = _db.session.get(Strategy, strategy_id)
        row.phase = phase
        _db.session.commit()
        return row
    return _set


@pytest.fixture()
def strategy():
    from app.services.pipeline_orchestrator import create_strategy
    return create_strategy(
        "Maison Test",
        {"positioning": "Premium street food", "audience": "Urban millennials", "budget": ""},
        sector="Food",
        owner="alice",
    )


@pytest.fixture()
def strategy_with_base_pillars(strategy):
    """Strategy whose four base pillars were generated by the local stub."""
    from app.services.pipeline_orchestrator import generate_pillar
    for kind in BASE_PILLARS:
        generate_pillar(strategy["id"], kind, actor="alice")
    return strategy


@pytest.fixture()
def mission(strategy):
    from app.services.mission_service import create_mission
    return create_mission(
        strategy["id"],
        {"title": "Launch campaign shoot", "client_name": "Maison Test", "budget": 3000},
        actor="alice",
    )
