# spectrum_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set


# ===============================================================
# Canonical workflow definitions
# ===============================================================

SAMPLE_STATES: Set[str] = {
    "pending",
    "registered",
    "assigned",
    "testing",
    "completed",
    "reported",
}

SAMPLE_TRANSITIONS: Dict[str, Set[str]] = {
    "pending": {"registered", "assigned"},
    "registered": {"assigned", "testing", "completed"},
    "assigned": {"registered", "testing", "completed"},
    "testing": {"completed"},
    # completed -> testing happens when the report is sent back for revision
    "completed": {"testing", "reported"},
    "reported": set(),
}

SAMPLE_EDITABLE_STATES: Set[str] = {"pending", "registered", "assigned"}
SAMPLE_DELETABLE_STATES: Set[str] = {"pending", "registered"}

REPORT_STATES: Set[str] = {
    "draft",
    "review",
    "revision",
    "approved",
    "published",
}

REPORT_TRANSITIONS: Dict[str, Set[str]] = {
    "draft": {"review", "revision"},
    "review": {"approved", "revision"},
    "revision": {"review"},
    "approved": {"published"},
    "published": set(),
}

QUOTATION_STATES: Set[str] = {
    "draft",
    "sent",
    "accepted",
    "rejected",
    "expired",
    "converted",
}

QUOTATION_TRANSITIONS: Dict[str, Set[str]] = {
    "draft": {"sent"},
    "sent": {"accepted", "rejected", "expired"},
    "accepted": {"converted"},
    "rejected": set(),
    "expired": set(),
    "converted": set(),
}

CONTRACT_STATES: Set[str] = {
    "draft",
    "active",
    "completed",
    "cancelled",
}

CONTRACT_TRANSITIONS: Dict[str, Set[str]] = {
    "draft": {"active", "cancelled"},
    "active": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

INVOICE_STATES: Set[str] = {
    "draft",
    "sent",
    "paid",
    "cancelled",
    "converted",
    "consolidated",
}

INVOICE_TRANSITIONS: Dict[str, Set[str]] = {
    "draft": {"sent", "cancelled", "converted", "consolidated"},
    "sent": {"paid", "cancelled", "converted", "consolidated"},
    "paid": set(),
    "cancelled": set(),
    "converted": set(),
    "consolidated": set(),
}

# Targets reachable only through a dedicated operation (conversion,
# consolidation, publication side effects), never through a plain status edit.
SYSTEM_ONLY_TARGETS: Dict[str, Set[str]] = {
    "sample": {"testing", "completed", "reported"},
    "report": set(),
    "quotation": {"converted"},
    "contract": set(),
    "invoice": {"converted", "consolidated"},
}

_WORKFLOWS: Dict[str, tuple] = {
    "sample": (SAMPLE_STATES, SAMPLE_TRANSITIONS),
    "report": (REPORT_STATES, REPORT_TRANSITIONS),
    "quotation": (QUOTATION_STATES, QUOTATION_TRANSITIONS),
    "contract": (CONTRACT_STATES, CONTRACT_TRANSITIONS),
    "invoice": (INVOICE_STATES, INVOICE_TRANSITIONS),
}

WORKFLOW_KINDS = tuple(sorted(_WORKFLOWS))


def normalize_state(value: str) -> str:
    return str(value or "").strip().lower()


def normalize_kind(value: str) -> str:
    return str(value or "").strip().lower()


def _transitions_for_kind(kind: str) -> Dict[str, Set[str]]:
    entry = _WORKFLOWS.get(normalize_kind(kind))
    return entry[1] if entry else {}


def _states_for_kind(kind: str) -> Set[str]:
    entry = _WORKFLOWS.get(normalize_kind(kind))
    return entry[0] if entry else set()


# ===============================================================
# Public workflow API
# ===============================================================

def validate_transition(
    kind: str,
    current: Optional[str] = None,
    target: Optional[str] = None,
    old: Optional[str] = None,
    new: Optional[str] = None,
) -> None:
    """
    Raises ValueError if the transition is invalid for the canonical workflow.

    Supports both parameter styles:
      validate_transition(kind, current, target)
      validate_transition(kind=..., old=..., new=...)
    """
    k = normalize_kind(kind)

    cur = normalize_state(current if current is not None else old)
    tgt = normalize_state(target if target is not None else new)

    states = _states_for_kind(k)
    trans = _transitions_for_kind(k)

    if not states or not trans:
        raise ValueError(f"Unknown workflow kind: {kind}")

    if cur not in states:
        raise ValueError(f"Unknown {k} state: {cur}")

    if tgt not in states:
        raise ValueError(f"Unknown {k} state: {tgt}")

    if tgt not in trans.get(cur, set()):
        raise ValueError(f"Invalid {k} transition: {cur} -> {tgt}")


def is_terminal(kind: str, current: str) -> bool:
    return not _transitions_for_kind(kind).get(normalize_state(current))


def allowed_next_states(kind: str, current: str, include_system: bool = True) -> List[str]:
    """
    Canonical next states for `current`.

    With include_system=False the targets only reachable through dedicated
    operations are left out; that is the list a status dropdown may offer.
    """
    k = normalize_kind(kind)
    nxt = set(_transitions_for_kind(k).get(normalize_state(current), set()))
    if not include_system:
        nxt -= SYSTEM_ONLY_TARGETS.get(k, set())
    return sorted(nxt)


def allowed_transitions(kind: str) -> Dict[str, List[str]]:
    trans = _transitions_for_kind(kind)
    return {state: sorted(nxt) for state, nxt in trans.items()}


def workflow_definition(kind: Optional[str] = None) -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI badges and filters.
    """
    def _one(k: str) -> Dict[str, Any]:
        kk = normalize_kind(k)
        if kk not in _WORKFLOWS:
            raise ValueError(f"Unsupported workflow kind: {k}")
        return {
            "kind": kk,
            "states": sorted(_states_for_kind(kk)),
            "transitions": allowed_transitions(kk),
            "system_only": sorted(SYSTEM_ONLY_TARGETS.get(kk, set())),
        }

    if kind is None:
        return {k: _one(k) for k in WORKFLOW_KINDS}
    return _one(kind)


__all__ = [
    "SAMPLE_STATES",
    "SAMPLE_TRANSITIONS",
    "SAMPLE_EDITABLE_STATES",
    "SAMPLE_DELETABLE_STATES",
    "REPORT_STATES",
    "REPORT_TRANSITIONS",
    "QUOTATION_STATES",
    "QUOTATION_TRANSITIONS",
    "CONTRACT_STATES",
    "CONTRACT_TRANSITIONS",
    "INVOICE_STATES",
    "INVOICE_TRANSITIONS",
    "SYSTEM_ONLY_TARGETS",
    "WORKFLOW_KINDS",
    "normalize_state",
    "normalize_kind",
    "validate_transition",
    "is_terminal",
    "allowed_next_states",
    "allowed_transitions",
    "workflow_definition",
]
