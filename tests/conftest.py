"""
Shared pytest fixtures for the Studio Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate + catalog seed (autouse)
    - client: Flask test client (function-scoped)
    - staff / client_actor: ActorContext objects for service-level tests
    - auth_headers: bearer-token header factory for API tests
    - make_project: project factory (service layer, staff actor)
    - advance_to: drives a project forward to a given phase
    - read_state: re-reads the committed phase row for a project
"""

import pytest

from studio_portal import create_app
from studio_portal.core.context import ActorContext, Role
from studio_portal.core.phase_registry import coerce_phase_key, get_ordinal
from studio_portal.core.requirement_catalog import mandatory_requirements
from studio_portal.models import db as _db
from studio_portal.models.project import ProjectPhaseState
from studio_portal.models.workflow import seed_phase_requirements

STAFF_USER = "staff-1"
CLIENT_USER = "client-1"
OTHER_CLIENT_USER = "client-2"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
        seed_phase_requirements()
        _db.session.commit()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        # Completions reference phase_requirements, so the catalog must be back
        seed_phase_requirements()
        _db.session.commit()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors & tokens ──────────────────────────────────────────────────────


@pytest.fixture()
def staff():
    return ActorContext(user_id=STAFF_USER, role=Role.STAFF)


@pytest.fixture()
def client_actor():
    return ActorContext(user_id=CLIENT_USER, role=Role.CLIENT)


@pytest.fixture()
def other_client():
    return ActorContext(user_id=OTHER_CLIENT_USER, role=Role.CLIENT)


@pytest.fixture()
def auth_headers():
    """Return a factory: auth_headers(user_id, role) -> Authorization header dict."""
    from studio_portal.services.jwt_service import generate_access_token

    def _make(user_id=CLIENT_USER, role="client"):
        token = generate_access_token(user_id, [role])
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def staff_headers(auth_headers):
    return auth_headers(STAFF_USER, "staff")


@pytest.fixture()
def client_headers(auth_headers):
    return auth_headers(CLIENT_USER, "client")


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_project(staff):
    """Create a project owned by CLIENT_USER (or ``client_id``) and return its id."""
    from studio_portal.services.project_service import create_project

    def _make(name="Brand Refresh", client_id=CLIENT_USER, service_type="branding"):
        result = create_project(staff, name=name, client_id=client_id, service_type=service_type)
        return result["project"]["id"]

    return _make


@pytest.fixture()
def project_id(make_project):
    return make_project()


def current_state(project_id):
    """Fresh ProjectPhaseState, bypassing anything cached in the session."""
    _db.session.expire_all()
    return _db.session.get(ProjectPhaseState, project_id)


@pytest.fixture()
def read_state():
    """Return current_state so tests can re-read the committed phase row."""
    return current_state


@pytest.fixture()
def advance_to():
    """Return a driver: advance_to(project_id, "PAY") completes every mandatory
    requirement phase by phase until the project sits in the target phase."""
    from studio_portal.services import completion_store
    from studio_portal.services.phase_engine import evaluate_advancement
    from studio_portal.services.transaction import run_in_project_transaction

    def _drive(project_id, target):
        target = coerce_phase_key(target)
        while True:
            state = current_state(project_id)
            if get_ordinal(state.phase_key) >= get_ordinal(target):
                return state
            phase_key = state.phase_key

            def _work(locked, phase_key=phase_key):
                for definition in mandatory_requirements(phase_key):
                    completion_store.set_completion(
                        project_id, definition.id, True, STAFF_USER, source="manual",
                    )
                return evaluate_advancement(project_id, trigger="manual", actor_id=STAFF_USER)

            result = run_in_project_transaction(project_id, _work)
            assert result.advanced, f"could not leave {phase_key}"

    return _drive
