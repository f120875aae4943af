from __future__ import annotations

from typing import Final, cast

from taxhelper_schemas.receipt_schema import ProcessingStatus


class InvalidTransitionError(ValueError):
    pass


# "completed" may be reopened for a manual correction; nothing is terminal.
ALLOWED_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    "pending": frozenset({"processing", "failed"}),
    "processing": frozenset({"completed", "failed", "manual"}),
    "failed": frozenset({"pending", "manual"}),
    "manual": frozenset({"completed"}),
    "completed": frozenset({"manual"}),
}


def _normalize(state: str) -> str:
    return state.strip().lower()


def can_transition(from_state: str, to_state: str) -> bool:
    return _normalize(to_state) in ALLOWED_TRANSITIONS.get(_normalize(from_state), frozenset())


def transition_state(from_state: str, to_state: str) -> ProcessingStatus:
    source = _normalize(from_state)
    target = _normalize(to_state)
    for state, raw in ((source, from_state), (target, to_state)):
        if state not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(f"Unknown state: {raw}")
    if target not in ALLOWED_TRANSITIONS[source]:
        raise InvalidTransitionError(f"Invalid transition: {source} -> {target}")
    return cast(ProcessingStatus, target)


def walk_states(start: str, *targets: str) -> ProcessingStatus:
    current = _normalize(start)
    if current not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown state: {start}")
    for target in targets:
        current = transition_state(current, target)
    return cast(ProcessingStatus, current)
