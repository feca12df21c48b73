"""
Requirement Catalog: per-phase requirement definitions.

Each phase carries a fixed list of requirements. Mandatory ones gate
advancement; optional ones are informational only. The ``kind`` of a
requirement decides which trigger may complete it:

    form      → form-submission adapter
    document  → agreement signature
    payment   → payment webhook
    approval  → approval action (or a form module that is an approval form)
    review, confirm, monitor, download, launch, feedback
              → client may also toggle these by hand

Staff may toggle any kind manually.

The catalog is immutable; ``seed_phase_requirements()`` in
``studio_portal.models.workflow`` mirrors it into the database so completion
rows can reference it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from studio_portal.core.exceptions import RequirementNotFound
from studio_portal.core.phase_registry import PhaseKey, coerce_phase_key


class RequirementKind(str, Enum):
    FORM = "form"
    DOCUMENT = "document"
    PAYMENT = "payment"
    APPROVAL = "approval"
    REVIEW = "review"
    CONFIRM = "confirm"
    MONITOR = "monitor"
    DOWNLOAD = "download"
    LAUNCH = "launch"
    FEEDBACK = "feedback"


# Kinds a client-role actor may toggle directly.
CLIENT_TOGGLEABLE_KINDS = frozenset({
    RequirementKind.MONITOR,
    RequirementKind.REVIEW,
    RequirementKind.CONFIRM,
    RequirementKind.FEEDBACK,
    RequirementKind.LAUNCH,
    RequirementKind.DOWNLOAD,
})

# Kinds a submitted form may never complete.
FORM_EXCLUDED_KINDS = frozenset({RequirementKind.PAYMENT, RequirementKind.DOCUMENT})


@dataclass(frozen=True)
class RequirementDefinition:
    id: str
    phase_key: PhaseKey
    text: str
    is_mandatory: bool
    kind: RequirementKind
    sort_order: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase_key": self.phase_key.value,
            "requirement_text": self.text,
            "is_mandatory": self.is_mandatory,
            "requirement_type": self.kind.value,
            "sort_order": self.sort_order,
        }


def _req(phase, rid, text, mandatory, kind, order):
    return RequirementDefinition(
        id=rid,
        phase_key=phase,
        text=text,
        is_mandatory=mandatory,
        kind=kind,
        sort_order=order,
    )


_K = RequirementKind

_CATALOG: dict[PhaseKey, tuple[RequirementDefinition, ...]] = {
    PhaseKey.ONB: (
        _req(PhaseKey.ONB, "intake_form", "Complete intake form", True, _K.FORM, 1),
        _req(PhaseKey.ONB, "service_agreement", "Sign service agreement", True, _K.DOCUMENT, 2),
        _req(PhaseKey.ONB, "deposit_payment", "Pay deposit invoice", True, _K.PAYMENT, 3),
    ),
    PhaseKey.IDEA: (
        _req(PhaseKey.IDEA, "review_brief", "Review creative brief", True, _K.REVIEW, 1),
        _req(PhaseKey.IDEA, "approve_direction", "Approve project direction", True, _K.APPROVAL, 2),
        _req(PhaseKey.IDEA, "initial_feedback", "Provide initial feedback", False, _K.FEEDBACK, 3),
    ),
    PhaseKey.DSGN: (
        _req(PhaseKey.DSGN, "review_designs", "Review initial designs", False, _K.REVIEW, 1),
        _req(PhaseKey.DSGN, "design_feedback", "Provide design feedback", False, _K.FEEDBACK, 2),
        _req(PhaseKey.DSGN, "approve_designs", "Approve final designs", True, _K.APPROVAL, 3),
    ),
    PhaseKey.REV: (
        _req(PhaseKey.REV, "approve_deliverables", "Approve all deliverables", True, _K.APPROVAL, 1),
        _req(PhaseKey.REV, "proof_approval", "Complete proof approval (if print)", False, _K.APPROVAL, 2),
        _req(PhaseKey.REV, "request_changes", "Request changes (if needed)", False, _K.FEEDBACK, 3),
    ),
    PhaseKey.PROD: (
        _req(PhaseKey.PROD, "monitor_production", "Monitor production progress", False, _K.MONITOR, 1),
        _req(PhaseKey.PROD, "press_check", "Approve press check (if applicable)", False, _K.APPROVAL, 2),
        _req(PhaseKey.PROD, "production_complete", "Production complete (studio confirmation)",
             True, _K.APPROVAL, 3),
    ),
    PhaseKey.PAY: (
        _req(PhaseKey.PAY, "final_payment", "Pay final invoice", True, _K.PAYMENT, 1),
        _req(PhaseKey.PAY, "review_costs", "Review final costs", False, _K.REVIEW, 2),
    ),
    PhaseKey.SIGN: (
        _req(PhaseKey.SIGN, "completion_agreement", "Sign completion agreement", True, _K.DOCUMENT, 1),
        _req(PhaseKey.SIGN, "download_assets", "Download final assets", False, _K.DOWNLOAD, 2),
        _req(PhaseKey.SIGN, "review_docs", "Review documentation", False, _K.REVIEW, 3),
    ),
    PhaseKey.LAUNCH: (
        _req(PhaseKey.LAUNCH, "confirm_receipt", "Confirm receipt of deliverables", False, _K.CONFIRM, 1),
        _req(PhaseKey.LAUNCH, "provide_testimonial", "Provide testimonial", False, _K.FEEDBACK, 2),
        _req(PhaseKey.LAUNCH, "launch_project", "Launch/deploy project", False, _K.LAUNCH, 3),
    ),
}

if set(_CATALOG) != set(PhaseKey):
    raise RuntimeError("Requirement catalog must define an entry for every phase")

_BY_ID: dict[str, RequirementDefinition] = {}
for _defs in _CATALOG.values():
    for _d in _defs:
        if _d.id in _BY_ID:
            raise RuntimeError(f"Duplicate requirement id {_d.id!r}")
        _BY_ID[_d.id] = _d

# Form module id → requirement id.
FORM_MODULE_REQUIREMENTS: dict[str, str] = {
    # Onboarding
    "intake_base": "intake_form",
    "intake_form": "intake_form",
    "project_intake": "intake_form",
    # Ideation
    "creative_brief": "review_brief",
    "brief_review": "review_brief",
    "direction_approval": "approve_direction",
    "ideation_feedback": "initial_feedback",
    # Design
    "design_review": "review_designs",
    "design_feedback": "design_feedback",
    "design_feedback_form": "design_feedback",
    "design_approval": "approve_designs",
    # Review
    "final_approval": "approve_deliverables",
    "deliverables_approval": "approve_deliverables",
    "proof_approval": "proof_approval",
    "change_request": "request_changes",
    # Production
    "production_monitor": "monitor_production",
    "press_check_approval": "press_check",
    # Payment
    "cost_review": "review_costs",
    # Sign-off
    "asset_download": "download_assets",
    "documentation_review": "review_docs",
    # Launch
    "delivery_confirmation": "confirm_receipt",
    "testimonial_form": "provide_testimonial",
    "launch_confirmation": "launch_project",
}

for _module, _rid in FORM_MODULE_REQUIREMENTS.items():
    if _BY_ID[_rid].kind in FORM_EXCLUDED_KINDS:
        raise RuntimeError(f"Form module {_module!r} cannot complete {_rid!r}")

# Agreement type → document requirement it completes.
AGREEMENT_REQUIREMENTS: dict[str, str] = {
    "service": "service_agreement",
    "completion": "completion_agreement",
}

# Payment type → payment requirement it completes.
PAYMENT_REQUIREMENTS: dict[str, str] = {
    "deposit": "deposit_payment",
    "final": "final_payment",
}
DEFAULT_PAYMENT_TYPE = "final"


# ── Lookups ───────────────────────────────────────────────────────────────────


def get_requirements(phase_key: PhaseKey | str) -> list[RequirementDefinition]:
    """Return the requirements of one phase, ordered by sort_order."""
    key = coerce_phase_key(phase_key)
    return sorted(_CATALOG[key], key=lambda d: d.sort_order)


def mandatory_requirements(phase_key: PhaseKey | str) -> list[RequirementDefinition]:
    return [d for d in get_requirements(phase_key) if d.is_mandatory]


def all_requirements() -> list[RequirementDefinition]:
    out: list[RequirementDefinition] = []
    for key in PhaseKey:
        out.extend(get_requirements(key))
    return out


def get_requirement(requirement_id: str) -> RequirementDefinition:
    try:
        return _BY_ID[requirement_id]
    except KeyError:
        raise RequirementNotFound(requirement_id) from None


def requirement_for_form_module(module_id: str) -> RequirementDefinition | None:
    rid = FORM_MODULE_REQUIREMENTS.get(module_id)
    return _BY_ID[rid] if rid else None


def is_client_toggleable(kind: RequirementKind | str) -> bool:
    return RequirementKind(kind) in CLIENT_TOGGLEABLE_KINDS
