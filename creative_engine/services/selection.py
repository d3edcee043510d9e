"""
Selection Controller
Decides what happens after a QA round: select a winner, retry stricter, fall back, or fail.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from creative_engine.schemas.job import QASummary

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    SELECT = "select"
    RETRY = "retry"
    FALLBACK = "fallback"
    FAIL = "fail"


@dataclass
class ScoredCandidate:
    candidate_id: int
    variant_index: int
    score: Optional[float]
    passed: bool
    provider: str = ""


@dataclass
class SelectionOutcome:
    decision: Decision
    summary: QASummary
    selected: Optional[ScoredCandidate] = None
    message: Optional[str] = None
    reasons: List[str] = field(default_factory=list)


def pick_best(candidates: List[ScoredCandidate]) -> Optional[ScoredCandidate]:
    """Highest score wins; ties go to the lowest variant index."""
    scored = [c for c in candidates if c.score is not None]
    if not scored:
        return None
    return min(scored, key=lambda c: (-c.score, c.variant_index))


def decide(
    candidates: List[ScoredCandidate],
    qa_enabled: bool,
    retries_used: int,
    max_retries: int,
    fallback_enabled: bool,
    threshold: float,
    attempts: int,
    last_provider_error: Optional[str] = None,
) -> SelectionOutcome:
    """
    Pick the outcome of a QA round.

    Args:
        candidates: every candidate produced for the job so far
        qa_enabled: when False the lowest-index candidate is accepted as is
        retries_used: strict retries already performed
        max_retries: retry budget
        fallback_enabled: whether deterministic composition may be used
        threshold: pass threshold of the job category
        attempts: generation attempts performed so far
        last_provider_error: most recent provider failure, used when nothing was produced
    """
    scores = [c.score for c in candidates if c.score is not None]
    passed = [c for c in candidates if c.passed]
    summary = QASummary(
        best_score=max(scores) if scores else None,
        total_evaluated=len(scores),
        passed_count=len(passed),
        attempts=attempts,
        threshold=threshold,
    )

    if candidates and not qa_enabled:
        selected = min(candidates, key=lambda c: c.variant_index)
        summary.selected_variant_index = selected.variant_index
        return SelectionOutcome(decision=Decision.SELECT, summary=summary, selected=selected)

    if passed:
        selected = pick_best(passed)
        summary.selected_variant_index = selected.variant_index
        return SelectionOutcome(decision=Decision.SELECT, summary=summary, selected=selected)

    if retries_used < max_retries:
        return SelectionOutcome(decision=Decision.RETRY, summary=summary)

    if fallback_enabled:
        summary.fallback_used = True
        return SelectionOutcome(decision=Decision.FALLBACK, summary=summary)

    if not candidates or summary.best_score is None:
        message = last_provider_error or "No candidate could be generated"
    else:
        message = (
            f"No candidate reached the quality threshold: best score "
            f"{summary.best_score:.2f} < {threshold:.2f} after {attempts} attempt(s)"
        )
    return SelectionOutcome(decision=Decision.FAIL, summary=summary, message=message)
