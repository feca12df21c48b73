"""
Phase registry and requirement catalog tests.

Pure lookup tables; no database access beyond the autouse session fixture.
"""

import pytest

from studio_portal.core.exceptions import InvalidPhaseKey, RequirementNotFound
from studio_portal.core.phase_registry import (
    INITIAL_PHASE,
    INITIAL_PROGRESS,
    PHASES,
    TERMINAL_PHASE,
    PhaseKey,
    coerce_phase_key,
    get_ordinal,
    get_phase,
    is_valid_phase_key,
    list_phases,
    next_phase,
)
from studio_portal.core.requirement_catalog import (
    AGREEMENT_REQUIREMENTS,
    FORM_EXCLUDED_KINDS,
    FORM_MODULE_REQUIREMENTS,
    PAYMENT_REQUIREMENTS,
    RequirementKind,
    all_requirements,
    get_requirement,
    get_requirements,
    is_client_toggleable,
    mandatory_requirements,
    requirement_for_form_module,
)


# ═════════════════════════════════════════════════════════════════════════════
# Phase registry
# ═════════════════════════════════════════════════════════════════════════════


class TestPhaseRegistry:
    def test_eight_phases_in_pipeline_order(self):
        keys = [p.key.value for p in list_phases()]
        assert keys == ["ONB", "IDEA", "DSGN", "REV", "PROD", "PAY", "SIGN", "LAUNCH"]
        assert [p.ordinal for p in PHASES] == list(range(8))

    def test_completion_percent_table(self):
        percents = [p.completion_percent for p in list_phases()]
        assert percents == [13, 25, 38, 50, 63, 75, 88, 100]
        assert percents == sorted(percents)

    def test_display_names(self):
        assert get_phase("REV").display_name == "Review & Feedback"
        assert get_phase(PhaseKey.PROD).display_name == "Production/Build"
        assert get_phase("SIGN").display_name == "Sign-off & Docs"

    def test_initial_and_terminal(self):
        assert INITIAL_PHASE is PhaseKey.ONB
        assert TERMINAL_PHASE is PhaseKey.LAUNCH
        assert INITIAL_PROGRESS == 0
        assert get_phase("LAUNCH").is_terminal
        assert not get_phase("SIGN").is_terminal

    def test_next_phase_walks_the_pipeline(self):
        assert next_phase("ONB").key is PhaseKey.IDEA
        assert next_phase(PhaseKey.PAY).key is PhaseKey.SIGN
        assert next_phase("SIGN").key is PhaseKey.LAUNCH

    def test_next_phase_of_launch_is_none(self):
        assert next_phase("LAUNCH") is None

    def test_coerce_accepts_lowercase_and_whitespace(self):
        assert coerce_phase_key(" dsgn ") is PhaseKey.DSGN
        assert coerce_phase_key(PhaseKey.REV) is PhaseKey.REV

    @pytest.mark.parametrize("bad", ["", "XYZ", "DESIGN", None, 3])
    def test_unknown_phase_key_raises(self, bad):
        with pytest.raises(InvalidPhaseKey) as exc:
            get_phase(bad)
        assert exc.value.status == 400
        assert exc.value.code == "ERR_INVALID_PHASE_KEY"
        assert not is_valid_phase_key(bad)

    def test_ordinal_lookup(self):
        assert get_ordinal("ONB") == 0
        assert get_ordinal("LAUNCH") == 7

    def test_phase_to_dict(self):
        assert get_phase("PAY").to_dict() == {
            "key": "PAY",
            "ordinal": 5,
            "display_name": "Payment",
            "completion_percent": 75,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Requirement catalog
# ═════════════════════════════════════════════════════════════════════════════


class TestRequirementCatalog:
    def test_every_phase_has_requirements(self):
        for phase in list_phases():
            assert get_requirements(phase.key), phase.key

    def test_mandatory_sets_per_phase(self):
        expected = {
            "ONB": ["intake_form", "service_agreement", "deposit_payment"],
            "IDEA": ["review_brief", "approve_direction"],
            "DSGN": ["approve_designs"],
            "REV": ["approve_deliverables"],
            "PROD": ["production_complete"],
            "PAY": ["final_payment"],
            "SIGN": ["completion_agreement"],
            "LAUNCH": [],
        }
        for key, ids in expected.items():
            assert [d.id for d in mandatory_requirements(key)] == ids, key

    def test_requirements_sorted_by_sort_order(self):
        for phase in list_phases():
            orders = [d.sort_order for d in get_requirements(phase.key)]
            assert orders == sorted(orders)

    def test_requirement_ids_are_unique(self):
        ids = [d.id for d in all_requirements()]
        assert len(ids) == len(set(ids))

    def test_get_requirement(self):
        d = get_requirement("deposit_payment")
        assert d.phase_key is PhaseKey.ONB
        assert d.kind is RequirementKind.PAYMENT
        assert d.is_mandatory

    def test_unknown_requirement_raises(self):
        with pytest.raises(RequirementNotFound) as exc:
            get_requirement("does_not_exist")
        assert exc.value.status == 404

    def test_to_dict_shape(self):
        body = get_requirement("press_check").to_dict()
        assert body == {
            "id": "press_check",
            "phase_key": "PROD",
            "requirement_text": "Approve press check (if applicable)",
            "is_mandatory": False,
            "requirement_type": "approval",
            "sort_order": 2,
        }

    def test_form_modules_never_map_to_payment_or_document(self):
        for module_id, rid in FORM_MODULE_REQUIREMENTS.items():
            assert get_requirement(rid).kind not in FORM_EXCLUDED_KINDS, module_id

    def test_form_module_lookup(self):
        assert requirement_for_form_module("intake_base").id == "intake_form"
        assert requirement_for_form_module("design_approval").id == "approve_designs"
        assert requirement_for_form_module("unmapped_module") is None

    def test_agreement_and_payment_tables(self):
        assert AGREEMENT_REQUIREMENTS == {"service": "service_agreement", "completion": "completion_agreement"}
        assert PAYMENT_REQUIREMENTS == {"deposit": "deposit_payment", "final": "final_payment"}

    @pytest.mark.parametrize("kind", ["monitor", "review", "confirm", "feedback", "launch", "download"])
    def test_client_toggleable_kinds(self, kind):
        assert is_client_toggleable(kind)

    @pytest.mark.parametrize("kind", ["form", "document", "payment", "approval"])
    def test_adapter_only_kinds(self, kind):
        assert not is_client_toggleable(kind)

    def test_catalog_is_seeded_into_database(self):
        from studio_portal.models import db
        from studio_portal.models.workflow import PhaseRequirement, seed_phase_requirements

        assert PhaseRequirement.query.count() == len(all_requirements())
        # Re-seeding adds nothing
        assert seed_phase_requirements() == 0
        row = db.session.get(PhaseRequirement, "final_payment")
        assert row.phase_key == "PAY"
        assert row.requirement_type == "payment"
        assert row.is_mandatory is True
