"""Early-exit decision: stop once agreement stays above threshold for N rounds."""

import logging
from collections.abc import Sequence

from roundtable.models import ConsensusMeasurement, ExitCriteria, ExitDecision

logger = logging.getLogger(__name__)

CONSENSUS_CONVERGED = "consensus-converged"


def trailing_streak(scores: Sequence[float], threshold: float) -> int:
    """Number of consecutive scores at the end of ``scores`` that are >= threshold."""
    streak = 0
    for score in reversed(scores):
        if score < threshold:
            break
        streak += 1
    return streak


def evaluate_convergence(scores: Sequence[float], criteria: ExitCriteria) -> ExitDecision:
    """Pure decision over the agreement history. Same inputs, same answer."""
    streak = trailing_streak(scores, criteria.consensus_threshold)
    details = {
        "scores": list(scores),
        "window": criteria.convergence_rounds,
        "threshold": criteria.consensus_threshold,
        "streak": streak,
    }
    if streak >= criteria.convergence_rounds:
        return ExitDecision(should_exit=True, reason=CONSENSUS_CONVERGED, details=details)
    return ExitDecision(should_exit=False, reason=None, details=details)


class ConvergenceEvaluator:
    """Accumulates per-round agreement scores for one debate."""

    def __init__(self, criteria: ExitCriteria, history: Sequence[float] = ()) -> None:
        self.criteria = criteria
        self.scores: list[float] = list(history)

    def record(self, measurement: ConsensusMeasurement) -> ExitDecision:
        self.scores.append(measurement.agreement_level)
        decision = evaluate_convergence(self.scores, self.criteria)
        logger.debug(
            "Convergence check: streak %d/%d at threshold %.2f",
            decision.details["streak"],
            self.criteria.convergence_rounds,
            self.criteria.consensus_threshold,
        )
        return decision
