"""Validation pipeline state machine.

Defines the valid transitions for one orchestration pass.  All
transitions are enforced via :func:`assert_transition`.

Usage::

    from milou_tls.core.state import PIPELINE_TRANSITIONS, assert_transition
    from milou_tls.core.types import PipelineState

    assert_transition(
        PipelineState.PENDING, PipelineState.LOADED,
        PIPELINE_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from milou_tls.core.types import PipelineState

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# pending → loaded → parsed → key_checked → domain_checked → expiry_checked
#         → done.  Hard failures while loading or parsing jump to failed.
#         done & failed are terminal.
# ---------------------------------------------------------------------------

PIPELINE_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.PENDING: frozenset({PipelineState.LOADED, PipelineState.FAILED}),
    PipelineState.LOADED: frozenset({PipelineState.PARSED, PipelineState.FAILED}),
    PipelineState.PARSED: frozenset({PipelineState.KEY_CHECKED, PipelineState.FAILED}),
    PipelineState.KEY_CHECKED: frozenset({PipelineState.DOMAIN_CHECKED}),
    PipelineState.DOMAIN_CHECKED: frozenset({PipelineState.EXPIRY_CHECKED}),
    PipelineState.EXPIRY_CHECKED: frozenset({PipelineState.DONE}),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset(
    state for state, targets in PIPELINE_TRANSITIONS.items() if not targets
)


def assert_transition(
    current: PipelineState,
    target: PipelineState,
    table: dict = PIPELINE_TRANSITIONS,
) -> None:
    """Raise :class:`ValueError` if *current* → *target* is not allowed."""
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown state {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(msg)
    log.debug("Pipeline transition %s -> %s", current.value, target.value)
