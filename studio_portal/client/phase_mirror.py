"""
Client-Side Phase Mirror.

Read-only, versioned copies of a project's phase state and requirement
completions, kept by a UI or integration process talking to the portal API.

Rules:
    - The server is the only authority. Every mutation (toggle, form submit,
      check-advancement) is POSTed and then followed by a ``refresh``; the
      mirror never predicts a phase transition locally.
    - Snapshots are immutable and carry the server's ``version``. A refresh
      that returns an older version than one already seen never replaces the
      newer snapshot (out-of-order responses from overlapping refreshes).
    - ``invalidate`` marks a project's snapshot stale; ``snapshot`` then
      returns None until the next refresh.

All outbound HTTP goes through one ``requests.Session``. Pass a mock or
adapter ``session`` in tests instead of letting the mirror create one.

Usage:
    mirror = PhaseMirror("https://portal.example.com", token)
    snap = mirror.refresh(42)
    result = mirror.toggle_requirement(42, "review_brief", True)
    tabs = mirror.phase_tabs(42)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests

from studio_portal.core.phase_registry import PhaseKey, coerce_phase_key, get_phase, list_phases
from studio_portal.core.requirement_catalog import get_requirements

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_API_PREFIX = "/api/v1"


class MirrorError(Exception):
    """Raised when the portal API answers with an error.

    Attributes:
        status_code: HTTP status (None for network-level failures).
        code: Portal error code, e.g. ``ERR_PHASE_MISMATCH``.
        payload: Decoded error body, if any.
    """

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None,
                 payload: dict | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.payload = payload or {}

    @property
    def is_phase_mismatch(self) -> bool:
        return self.code == "ERR_PHASE_MISMATCH"

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 503


@dataclass(frozen=True)
class PhaseSnapshot:
    project_id: int
    phase_key: PhaseKey
    status: str
    progress_percent: int
    version: int
    entered_at: str | None
    completed: frozenset[str]
    outstanding: tuple[str, ...]
    fetched_at: float = field(default_factory=time.time, compare=False)

    @classmethod
    def from_payload(cls, body: dict) -> "PhaseSnapshot":
        phase = body["phase"]
        return cls(
            project_id=int(body["project_id"]),
            phase_key=coerce_phase_key(phase["phase_key"]),
            status=phase["status"],
            progress_percent=int(phase["progress_percent"]),
            version=int(phase["version"]),
            entered_at=phase.get("entered_at"),
            completed=frozenset(c["requirement_id"] for c in body.get("completions", []) if c.get("completed")),
            outstanding=tuple(body.get("outstanding", [])),
        )

    @property
    def phase_name(self) -> str:
        return get_phase(self.phase_key).display_name

    def is_completed(self, requirement_id: str) -> bool:
        return requirement_id in self.completed


@dataclass(frozen=True)
class MutationResult:
    """Server response to a mutation plus the snapshot fetched right after it."""
    response: dict
    snapshot: PhaseSnapshot


@dataclass
class _Entry:
    snapshot: PhaseSnapshot
    stale: bool = False


class PhaseMirror:
    """Versioned cache of project phase state backed by the portal API."""

    def __init__(self, base_url: str, token: str, session: Any = None, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session or requests.Session()
        self._entries: dict[int, _Entry] = {}

    # ── HTTP ──────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.base_url}{_API_PREFIX}{path}"
        headers = {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}
        try:
            resp = self._session.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise MirrorError(f"{method} {path} failed: {exc}") from exc

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            raise MirrorError(
                body.get("error") or f"{method} {path} returned {resp.status_code}",
                status_code=resp.status_code,
                code=body.get("code"),
                payload=body,
            )
        return body

    # ── Snapshots ─────────────────────────────────────────────────────────

    def snapshot(self, project_id: int) -> PhaseSnapshot | None:
        """Cached snapshot, or None if never fetched or invalidated."""
        entry = self._entries.get(project_id)
        if entry is None or entry.stale:
            return None
        return entry.snapshot

    def invalidate(self, project_id: int) -> None:
        entry = self._entries.get(project_id)
        if entry is not None:
            entry.stale = True

    def _store(self, fetched: PhaseSnapshot) -> PhaseSnapshot:
        entry = self._entries.get(fetched.project_id)
        if entry is not None and entry.snapshot.version > fetched.version:
            logger.debug(
                "Discarding snapshot v%d for project %s, already have v%d",
                fetched.version, fetched.project_id, entry.snapshot.version,
            )
            entry.stale = False
            return entry.snapshot
        self._entries[fetched.project_id] = _Entry(snapshot=fetched)
        return fetched

    def refresh(self, project_id: int) -> PhaseSnapshot:
        """Re-fetch phase state and completions in one request."""
        body = self._request("GET", f"/projects/{project_id}/requirements")
        return self._store(PhaseSnapshot.from_payload(body))

    # ── Mutations (always followed by a refresh) ─────────────────────────

    def _mutate(self, project_id: int, path: str, payload: dict) -> MutationResult:
        self.invalidate(project_id)
        try:
            body = self._request("POST", path, payload)
        except MirrorError as exc:
            if exc.is_phase_mismatch:
                # Our copy was behind the server; resync before surfacing the error
                self.refresh(project_id)
            raise
        return MutationResult(response=body, snapshot=self.refresh(project_id))

    def toggle_requirement(self, project_id: int, requirement_id: str, completed: bool) -> MutationResult:
        return self._mutate(
            project_id,
            f"/phases/projects/{project_id}/requirements/{requirement_id}",
            {"completed": bool(completed)},
        )

    def submit_form(self, project_id: int, phase_key, module_id: str, data: dict | None = None) -> MutationResult:
        return self._mutate(
            project_id,
            "/forms/submit",
            {
                "projectId": project_id,
                "phaseKey": coerce_phase_key(phase_key).value,
                "moduleId": module_id,
                "data": data or {},
            },
        )

    def check_advancement(self, project_id: int, cascade: bool = False) -> MutationResult:
        return self._mutate(
            project_id,
            f"/projects/{project_id}/phases/check-advancement",
            {"cascade": bool(cascade)},
        )

    # ── Render data ───────────────────────────────────────────────────────

    def phase_tabs(self, project_id: int) -> list[dict]:
        """Per-phase tab data derived from the current snapshot only.

        Fetches first when there is no fresh snapshot.
        """
        snap = self.snapshot(project_id) or self.refresh(project_id)
        current = get_phase(snap.phase_key)
        tabs = []
        for phase in list_phases():
            if phase.ordinal < current.ordinal:
                state = "completed"
            elif phase.ordinal == current.ordinal:
                state = "current"
            else:
                state = "locked"
            requirements = [
                {
                    "id": d.id,
                    "text": d.text,
                    "is_mandatory": d.is_mandatory,
                    "kind": d.kind.value,
                    "completed": snap.is_completed(d.id),
                }
                for d in get_requirements(phase.key)
            ]
            tabs.append({
                "key": phase.key.value,
                "name": phase.display_name,
                "state": state,
                "completion_percent": phase.completion_percent,
                "requirements": requirements,
                "outstanding": list(snap.outstanding) if state == "current" else [],
            })
        return tabs
