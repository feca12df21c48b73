"""
Phase Advancement Engine.

Decides, after any requirement-completion write, whether a project's phase
should advance. Evaluation is idempotent: calling it again without new
completions changes nothing, so every trigger adapter calls it
unconditionally after its write.

Algorithm (``evaluate_advancement``):
    1. Load the project's phase row; ``phase = phase_key``.
    2. Collect the mandatory requirements of ``phase``.
    3. Any mandatory requirement unsatisfied → hold (no write).
    4. ``phase == LAUNCH`` → terminal, nothing further can happen.
    5. Otherwise move exactly one step: ``phase_key = next``,
       ``entered_at = now``, ``progress_percent = next.completion_percent``
       (never lower than before), record a PhaseTransition and queue a
       PhaseAdvanced event.

Optional requirements never block or trigger advancement. Un-completing a
requirement never moves a project backwards.

Events:
    Listeners register with ``@on_phase_advanced``. Events are queued on the
    SQLAlchemy session and only dispatched by the transaction layer after a
    successful commit; a rollback discards them.

Usage:
    from studio_portal.services.phase_engine import evaluate_advancement, on_phase_advanced

    result = evaluate_advancement(project_id, trigger="manual", actor_id="u-1")
    if result.advanced:
        ...

    @on_phase_advanced
    def notify(event):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import current_app

from studio_portal.core.exceptions import NotFoundError
from studio_portal.core.phase_registry import PhaseKey, TERMINAL_PHASE, get_phase, next_phase
from studio_portal.core.requirement_catalog import mandatory_requirements
from studio_portal.models import db
from studio_portal.models.project import PHASE_STATUS_LAUNCHED, ProjectPhaseState
from studio_portal.models.workflow import PhaseTransition
from studio_portal.services.completion_store import satisfied_requirement_ids

logger = logging.getLogger(__name__)

_PENDING_EVENTS_KEY = "pending_phase_events"

# Upper bound for cascading evaluation; one step per phase is all there is.
_MAX_CASCADE_STEPS = len(PhaseKey)


# ═══════════════════════════════════════════════════════════════════════════
#  Result & event types
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class AdvancementResult:
    advanced: bool
    terminal: bool
    previous_phase: PhaseKey
    new_phase: PhaseKey
    all_mandatory_complete: bool
    outstanding: list[str] = field(default_factory=list)
    progress_percent: int = 0

    def to_dict(self) -> dict:
        return {
            "advanced": self.advanced,
            "terminal": self.terminal,
            "previous_phase": self.previous_phase.value,
            "new_phase": self.new_phase.value,
            "new_phase_name": get_phase(self.new_phase).display_name,
            "all_mandatory_complete": self.all_mandatory_complete,
            "outstanding": list(self.outstanding),
            "progress_percent": self.progress_percent,
        }


@dataclass(frozen=True)
class PhaseAdvanced:
    project_id: int
    from_phase: PhaseKey
    to_phase: PhaseKey
    progress_percent: int
    trigger: str
    actor_id: str | None
    occurred_at: datetime


# ═══════════════════════════════════════════════════════════════════════════
#  Listener registry
# ═══════════════════════════════════════════════════════════════════════════

_listeners: list[Callable[[PhaseAdvanced], None]] = []


def on_phase_advanced(fn: Callable[[PhaseAdvanced], None]) -> Callable[[PhaseAdvanced], None]:
    """Decorator to register a phase-transition listener.

    Usage:
        @on_phase_advanced
        def send_phase_email(event):
            ...
    """
    if fn not in _listeners:
        _listeners.append(fn)
    return fn


def remove_listener(fn: Callable[[PhaseAdvanced], None]) -> None:
    if fn in _listeners:
        _listeners.remove(fn)


def get_listeners() -> list[Callable[[PhaseAdvanced], None]]:
    return list(_listeners)


def _queue_event(event: PhaseAdvanced) -> None:
    db.session.info.setdefault(_PENDING_EVENTS_KEY, []).append(event)


def discard_pending_events() -> None:
    db.session.info.pop(_PENDING_EVENTS_KEY, None)


def dispatch_pending_events() -> list[PhaseAdvanced]:
    """Deliver events queued by the last committed transaction.

    A failing listener is logged and does not stop the others; the phase
    change it reacts to is already committed.
    """
    events = db.session.info.pop(_PENDING_EVENTS_KEY, [])
    for event in events:
        for listener in list(_listeners):
            try:
                listener(event)
            except Exception:
                db.session.rollback()
                logger.exception(
                    "Phase listener %s failed for project %s",
                    getattr(listener, "__name__", listener), event.project_id,
                    extra={"project_id": event.project_id, "phase_key": event.to_phase.value},
                )
    return events


# ═══════════════════════════════════════════════════════════════════════════
#  Evaluation
# ═══════════════════════════════════════════════════════════════════════════


def _load_state(project_id: int) -> ProjectPhaseState:
    state = db.session.get(ProjectPhaseState, project_id)
    if state is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return state


def outstanding_requirements(project_id: int, phase_key: PhaseKey | str) -> list[str]:
    """Mandatory requirement ids of ``phase_key`` not yet satisfied, in catalog order."""
    satisfied = satisfied_requirement_ids(project_id)
    return [d.id for d in mandatory_requirements(phase_key) if d.id not in satisfied]


def evaluate_advancement(project_id: int, *, trigger: str, actor_id: str | None = None) -> AdvancementResult:
    """Advance the project one phase if every mandatory requirement is satisfied.

    Must run inside the project transaction; flushes but does not commit.

    Args:
        project_id: Project to evaluate.
        trigger: What caused the evaluation (form, manual, payment, ...).
        actor_id: User behind the trigger, if any.

    Returns:
        AdvancementResult describing a hold, a terminal state, or one step.
    """
    state = _load_state(project_id)
    current = get_phase(state.phase_key)
    outstanding = outstanding_requirements(project_id, current.key)

    if outstanding:
        logger.debug(
            "Project %s held in %s: %d mandatory requirement(s) outstanding",
            project_id, current.key.value, len(outstanding),
            extra={"project_id": project_id, "phase_key": current.key.value},
        )
        return AdvancementResult(
            advanced=False,
            terminal=current.key is TERMINAL_PHASE,
            previous_phase=current.key,
            new_phase=current.key,
            all_mandatory_complete=False,
            outstanding=outstanding,
            progress_percent=state.progress_percent,
        )

    nxt = next_phase(current.key)
    if nxt is None:
        return AdvancementResult(
            advanced=False,
            terminal=True,
            previous_phase=current.key,
            new_phase=current.key,
            all_mandatory_complete=True,
            progress_percent=state.progress_percent,
        )

    now = datetime.now(timezone.utc)
    state.phase_key = nxt.key.value
    state.entered_at = now
    state.progress_percent = max(state.progress_percent or 0, nxt.completion_percent)
    if nxt.is_terminal:
        state.status = PHASE_STATUS_LAUNCHED
        state.completed_at = now
    state.bump_version()

    db.session.add(PhaseTransition(
        project_id=project_id,
        from_phase=current.key.value,
        to_phase=nxt.key.value,
        trigger=trigger,
        actor_id=actor_id,
        transitioned_at=now,
    ))
    db.session.flush()

    _queue_event(PhaseAdvanced(
        project_id=project_id,
        from_phase=current.key,
        to_phase=nxt.key,
        progress_percent=state.progress_percent,
        trigger=trigger,
        actor_id=actor_id,
        occurred_at=now,
    ))
    logger.info(
        "Project %s advanced %s -> %s (%d%%)",
        project_id, current.key.value, nxt.key.value, state.progress_percent,
        extra={"project_id": project_id, "phase_key": nxt.key.value, "event_type": "phase_advanced"},
    )
    return AdvancementResult(
        advanced=True,
        terminal=nxt.is_terminal,
        previous_phase=current.key,
        new_phase=nxt.key,
        all_mandatory_complete=True,
        progress_percent=state.progress_percent,
    )


def advance_until_held(project_id: int, *, trigger: str, actor_id: str | None = None) -> list[AdvancementResult]:
    """Evaluate repeatedly until the project holds or reaches LAUNCH.

    Returns every result in order; the last one is never an advance unless
    the step limit was hit.
    """
    results = []
    for _ in range(_MAX_CASCADE_STEPS):
        result = evaluate_advancement(project_id, trigger=trigger, actor_id=actor_id)
        results.append(result)
        if not result.advanced:
            break
    return results


def evaluate_after_trigger(
    project_id: int,
    *,
    trigger: str,
    actor_id: str | None = None,
    cascade: bool | None = None,
) -> AdvancementResult:
    """Entry point for trigger adapters.

    Single-step unless ``cascade`` is true, or left as None while the
    ``PHASE_AUTO_CASCADE`` setting is enabled.
    """
    if cascade is None:
        cascade = bool(current_app.config.get("PHASE_AUTO_CASCADE", False))
    if not cascade:
        return evaluate_advancement(project_id, trigger=trigger, actor_id=actor_id)
    return summarize(advance_until_held(project_id, trigger=trigger, actor_id=actor_id))


def summarize(results: list[AdvancementResult]) -> AdvancementResult:
    """Collapse a cascade into one result spanning first to last phase."""
    first, last = results[0], results[-1]
    return AdvancementResult(
        advanced=any(r.advanced for r in results),
        terminal=last.terminal,
        previous_phase=first.previous_phase,
        new_phase=last.new_phase,
        all_mandatory_complete=last.all_mandatory_complete,
        outstanding=list(last.outstanding),
        progress_percent=last.progress_percent,
    )
