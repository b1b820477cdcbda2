"""
Continuity propagation between sequential conversion units.

Each unit's result is folded into the state that the next unit's context is
built from. The fold is order sensitive and never rolls back: a failed unit
folds a degraded result so the chain always has a defined next input.
"""

from typing import Iterable, Optional

from .models import ContinuityState, ConversionResult


def fold_continuity(state: ContinuityState, result: ConversionResult) -> ContinuityState:
    """
    Fold one unit's result into the continuity state.

    The tail and summary are replaced outright. References the result resolves
    are dropped from the pending set before the ones it leaves open are added.
    """
    resolved = set(result.resolved_references)
    pending = {ref for ref in state.pending_references if ref.id not in resolved}
    pending.update(result.unresolved_references)

    return ContinuityState(
        previous_tail=result.last_paragraph,
        previous_summary=result.summary,
        pending_references=frozenset(pending),
        units_folded=state.units_folded + 1,
    )


def fold_all(
    results: Iterable[ConversionResult], state: Optional[ContinuityState] = None
) -> ContinuityState:
    """Fold a sequence of results in order, starting from an empty state."""
    state = state or ContinuityState()
    for result in results:
        state = fold_continuity(state, result)
    return state


def degraded_result(label: str, error: BaseException) -> ConversionResult:
    """
    Stand-in result for a unit whose conversion call failed or timed out.

    Args:
        label: Human-readable unit name, e.g. "page 4" or "window 2 (pages 51-100)".
        error: The exception raised by the conversion call.
    """
    reason = str(error) or error.__class__.__name__
    return ConversionResult(
        content=f"\n\n[Error converting {label}]\n\n",
        warnings=[f"Conversion of {label} failed: {reason}"],
        degraded=True,
    )
