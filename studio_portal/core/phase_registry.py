"""
Phase Registry: the fixed, ordered 8-stage delivery pipeline.

Every project moves linearly through these phases and occupies exactly one
of them at any instant:

    ONB → IDEA → DSGN → REV → PROD → PAY → SIGN → LAUNCH

The registry is a pure lookup table built at import time. Per-phase tables
are keyed by ``PhaseKey`` and verified to cover every member exactly, so
adding or renaming a phase fails at import instead of at runtime.

Usage:
    from studio_portal.core.phase_registry import PhaseKey, get_phase, next_phase

    phase = get_phase("IDEA")           # accepts str or PhaseKey
    nxt = next_phase(PhaseKey.PAY)      # -> Phase(key=SIGN, ...)
    next_phase(PhaseKey.LAUNCH)         # -> None (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from studio_portal.core.exceptions import InvalidPhaseKey


class PhaseKey(str, Enum):
    ONB = "ONB"
    IDEA = "IDEA"
    DSGN = "DSGN"
    REV = "REV"
    PROD = "PROD"
    PAY = "PAY"
    SIGN = "SIGN"
    LAUNCH = "LAUNCH"


@dataclass(frozen=True)
class Phase:
    """Static description of one pipeline stage."""
    key: PhaseKey
    ordinal: int
    display_name: str
    completion_percent: int

    @property
    def is_terminal(self) -> bool:
        return self.key is TERMINAL_PHASE

    def to_dict(self) -> dict:
        return {
            "key": self.key.value,
            "ordinal": self.ordinal,
            "display_name": self.display_name,
            "completion_percent": self.completion_percent,
        }


INITIAL_PHASE = PhaseKey.ONB
TERMINAL_PHASE = PhaseKey.LAUNCH

# Progress shown before the first phase has been completed.
INITIAL_PROGRESS = 0

_DISPLAY_NAMES: dict[PhaseKey, str] = {
    PhaseKey.ONB: "Onboarding",
    PhaseKey.IDEA: "Ideation",
    PhaseKey.DSGN: "Design",
    PhaseKey.REV: "Review & Feedback",
    PhaseKey.PROD: "Production/Build",
    PhaseKey.PAY: "Payment",
    PhaseKey.SIGN: "Sign-off & Docs",
    PhaseKey.LAUNCH: "Launch",
}

_COMPLETION_PERCENT: dict[PhaseKey, int] = {
    PhaseKey.ONB: 13,
    PhaseKey.IDEA: 25,
    PhaseKey.DSGN: 38,
    PhaseKey.REV: 50,
    PhaseKey.PROD: 63,
    PhaseKey.PAY: 75,
    PhaseKey.SIGN: 88,
    PhaseKey.LAUNCH: 100,
}


def _check_exhaustive(table: dict, name: str) -> None:
    missing = set(PhaseKey) - set(table)
    extra = set(table) - set(PhaseKey)
    if missing or extra:
        raise RuntimeError(
            f"Phase table {name} is not exhaustive: missing={sorted(m.value for m in missing)} "
            f"extra={sorted(str(e) for e in extra)}"
        )


_check_exhaustive(_DISPLAY_NAMES, "_DISPLAY_NAMES")
_check_exhaustive(_COMPLETION_PERCENT, "_COMPLETION_PERCENT")

# Enum definition order is the pipeline order.
PHASES: tuple[Phase, ...] = tuple(
    Phase(
        key=key,
        ordinal=idx,
        display_name=_DISPLAY_NAMES[key],
        completion_percent=_COMPLETION_PERCENT[key],
    )
    for idx, key in enumerate(PhaseKey)
)

_BY_KEY: dict[PhaseKey, Phase] = {p.key: p for p in PHASES}


# ── Lookups ───────────────────────────────────────────────────────────────────


def coerce_phase_key(key: PhaseKey | str) -> PhaseKey:
    """Normalise a str or PhaseKey into a PhaseKey.

    Raises:
        InvalidPhaseKey: if the value does not name one of the 8 phases.
    """
    if isinstance(key, PhaseKey):
        return key
    try:
        return PhaseKey(str(key).strip().upper())
    except ValueError:
        raise InvalidPhaseKey(key) from None


def get_phase(key: PhaseKey | str) -> Phase:
    return _BY_KEY[coerce_phase_key(key)]


def get_ordinal(key: PhaseKey | str) -> int:
    return get_phase(key).ordinal


def next_phase(key: PhaseKey | str) -> Phase | None:
    """Return the phase after ``key``, or None when ``key`` is LAUNCH."""
    ordinal = get_ordinal(key)
    if ordinal + 1 >= len(PHASES):
        return None
    return PHASES[ordinal + 1]


def list_phases() -> list[Phase]:
    return list(PHASES)


def is_valid_phase_key(key) -> bool:
    try:
        coerce_phase_key(key)
    except InvalidPhaseKey:
        return False
    return True
