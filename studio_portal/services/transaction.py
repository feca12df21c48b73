"""
Project transaction layer: one unit of work per workflow mutation.

Every trigger adapter runs its body through ``run_in_project_transaction``:

    1. SELECT project_phases ... FOR UPDATE   (row lock for this project only)
    2. fn(state)                              (validate, write, evaluate)
    3. COMMIT
    4. dispatch queued PhaseAdvanced events

Concurrent writers on the same project queue behind the row lock; writers
on different projects never contend. Lock timeouts, deadlocks and
unique-constraint races surface as OperationalError / IntegrityError; the
transaction is rolled back and retried up to ``TRANSACTION_MAX_RETRIES``
times, after which PersistenceFailure (HTTP 503) is raised so the caller can
retry later. Any other exception rolls back and propagates unchanged.

Usage:
    from studio_portal.services.transaction import run_in_project_transaction

    def _work(state):
        completion_store.set_completion(...)
        return evaluate_advancement(state.project_id, trigger="manual")

    result = run_in_project_transaction(project_id, _work)
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from studio_portal.core.exceptions import NotFoundError, PersistenceFailure
from studio_portal.models import db
from studio_portal.models.project import ProjectPhaseState
from studio_portal.services.phase_engine import discard_pending_events, dispatch_pending_events

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
_RETRY_BACKOFF_SECONDS = (0.05, 0.2, 0.5)

_RETRYABLE = (OperationalError, IntegrityError)


def lock_project_phase(project_id: int) -> ProjectPhaseState:
    """Select the project's phase row FOR UPDATE, refreshing any cached copy.

    Raises:
        NotFoundError: the project does not exist.
    """
    state = db.session.execute(
        select(ProjectPhaseState)
        .where(ProjectPhaseState.project_id == project_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if state is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return state


def _backoff(attempt: int) -> float:
    return _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS)) - 1]


def run_in_project_transaction(
    project_id: int,
    fn: Callable[[ProjectPhaseState], T],
    *,
    max_retries: int | None = None,
) -> T:
    """Run ``fn`` under the project's row lock and commit.

    Args:
        project_id: Project whose phase row is locked.
        fn: Unit of work; receives the locked ProjectPhaseState.
        max_retries: Override for ``TRANSACTION_MAX_RETRIES``.

    Returns:
        Whatever ``fn`` returned.

    Raises:
        PersistenceFailure: retryable database errors persisted past the limit.
    """
    if max_retries is None:
        max_retries = current_app.config.get("TRANSACTION_MAX_RETRIES", DEFAULT_MAX_RETRIES)

    attempt = 0
    while True:
        try:
            state = lock_project_phase(project_id)
            result = fn(state)
            db.session.commit()
        except _RETRYABLE as exc:
            db.session.rollback()
            discard_pending_events()
            attempt += 1
            if attempt > max_retries:
                logger.error(
                    "Project %s transaction failed after %d attempt(s): %s",
                    project_id, attempt, exc.__class__.__name__,
                    extra={"project_id": project_id},
                )
                raise PersistenceFailure(details={"project_id": project_id, "attempts": attempt}) from exc
            logger.warning(
                "Project %s transaction conflict (%s), retry %d/%d",
                project_id, exc.__class__.__name__, attempt, max_retries,
                extra={"project_id": project_id},
            )
            time.sleep(_backoff(attempt))
            continue
        except Exception:
            db.session.rollback()
            discard_pending_events()
            raise

        dispatch_pending_events()
        return result
