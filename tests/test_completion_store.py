"""
Requirement completion store tests: upsert semantics, no-op writes, version
bumps and validation.
"""

import pytest

from studio_portal.core.exceptions import RequirementNotFound, ValidationError
from studio_portal.models import db
from studio_portal.models.workflow import RequirementCompletion
from studio_portal.services import completion_store


def _rows(project_id, requirement_id):
    return RequirementCompletion.query.filter_by(project_id=project_id, requirement_id=requirement_id).all()


class TestSetCompletion:
    def test_first_write_creates_row(self, project_id):
        rec = completion_store.set_completion(project_id, "intake_form", True, "client-1", source="form")
        db.session.commit()

        assert rec.completed is True
        assert rec.completed_by == "client-1"
        assert rec.completed_at is not None
        assert rec.source == "form"
        assert len(_rows(project_id, "intake_form")) == 1

    def test_second_write_updates_same_row(self, project_id):
        completion_store.set_completion(project_id, "review_brief", True, "client-1", source="manual")
        completion_store.set_completion(project_id, "review_brief", False, "client-1", source="manual")
        db.session.commit()

        rows = _rows(project_id, "review_brief")
        assert len(rows) == 1
        assert rows[0].completed is False
        assert rows[0].completed_by is None
        assert rows[0].completed_at is None

    def test_uncomplete_then_recomplete(self, project_id):
        for flag in (True, False, True):
            completion_store.set_completion(project_id, "review_brief", flag, "staff-1", source="manual")
        db.session.commit()
        assert completion_store.is_satisfied(project_id, "review_brief")
        assert len(_rows(project_id, "review_brief")) == 1

    def test_write_bumps_phase_version(self, project_id, read_state):
        before = read_state(project_id).version
        completion_store.set_completion(project_id, "intake_form", True, "client-1", source="form")
        db.session.commit()
        assert read_state(project_id).version == before + 1

    def test_unchanged_write_is_noop(self, project_id, read_state):
        first = completion_store.set_completion(project_id, "intake_form", True, "client-1", source="form")
        db.session.commit()
        version = read_state(project_id).version
        completed_at = first.completed_at

        again = completion_store.set_completion(project_id, "intake_form", True, "someone-else", source="manual")
        db.session.commit()

        assert again.id == first.id
        assert again.completed_by == "client-1"
        assert again.source == "form"
        assert again.completed_at == completed_at
        assert read_state(project_id).version == version

    def test_details_are_stored(self, project_id):
        rec = completion_store.set_completion(
            project_id, "deposit_payment", True, None,
            source="payment", details={"event_id": "evt_1"},
        )
        db.session.commit()
        assert rec.to_dict()["details"] == {"event_id": "evt_1"}
        assert rec.completed_by is None

    def test_unknown_requirement(self, project_id):
        with pytest.raises(RequirementNotFound):
            completion_store.set_completion(project_id, "nope", True, "u", source="manual")

    def test_unknown_source(self, project_id):
        with pytest.raises(ValidationError):
            completion_store.set_completion(project_id, "intake_form", True, "u", source="carrier-pigeon")


class TestQueries:
    def test_satisfied_ids_only_include_completed(self, project_id):
        completion_store.set_completion(project_id, "intake_form", True, "u", source="form")
        completion_store.set_completion(project_id, "review_brief", True, "u", source="manual")
        completion_store.set_completion(project_id, "review_brief", False, "u", source="manual")
        db.session.commit()

        assert completion_store.satisfied_requirement_ids(project_id) == {"intake_form"}
        assert completion_store.is_satisfied(project_id, "intake_form")
        assert not completion_store.is_satisfied(project_id, "review_brief")
        assert not completion_store.is_satisfied(project_id, "deposit_payment")

    def test_list_completions_scoped_to_project(self, make_project):
        a = make_project(name="A")
        b = make_project(name="B")
        completion_store.set_completion(a, "intake_form", True, "u", source="form")
        completion_store.set_completion(b, "service_agreement", True, "u", source="signature")
        db.session.commit()

        assert [c.requirement_id for c in completion_store.list_completions(a)] == ["intake_form"]
        assert [c.requirement_id for c in completion_store.list_completions(b)] == ["service_agreement"]
