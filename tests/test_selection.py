from creative_engine.services.selection import Decision, ScoredCandidate, decide, pick_best


def scored(index, score, threshold=0.6, provider="gemini-image"):
    return ScoredCandidate(
        candidate_id=index * 10,
        variant_index=index,
        score=score,
        passed=score is not None and score >= threshold,
        provider=provider,
    )


def run(candidates, qa_enabled=True, retries_used=0, max_retries=1, fallback_enabled=True, attempts=1,
        last_provider_error=None):
    return decide(
        candidates,
        qa_enabled=qa_enabled,
        retries_used=retries_used,
        max_retries=max_retries,
        fallback_enabled=fallback_enabled,
        threshold=0.6,
        attempts=attempts,
        last_provider_error=last_provider_error,
    )


def test_best_passing_candidate_is_selected() -> None:
    outcome = run([scored(1, 0.8), scored(2, 0.4)])

    assert outcome.decision == Decision.SELECT
    assert outcome.selected.variant_index == 1
    assert outcome.summary.best_score == 0.8
    assert outcome.summary.passed_count == 1
    assert outcome.summary.total_evaluated == 2
    assert outcome.summary.selected_variant_index == 1
    assert outcome.summary.fallback_used is False


def test_ties_go_to_the_lowest_variant_index() -> None:
    assert pick_best([scored(3, 0.9), scored(2, 0.9), scored(4, 0.7)]).variant_index == 2


def test_selection_ignores_provider_origin() -> None:
    candidates = [
        scored(1, 0.65, provider="veo-video"),
        scored(2, 0.7, provider="veo-video"),
        scored(3, 0.92, provider="fal-kling-i2v"),
        scored(4, 0.61, provider="fal-kling-i2v"),
    ]
    outcome = run(candidates)
    assert outcome.selected.variant_index == 3
    assert all(outcome.selected.score >= c.score for c in candidates if c.passed)


def test_retry_when_nothing_passes_and_budget_remains() -> None:
    outcome = run([scored(1, 0.3)], retries_used=0, max_retries=1)
    assert outcome.decision == Decision.RETRY
    assert outcome.summary.fallback_used is False


def test_fallback_when_retries_are_exhausted() -> None:
    outcome = run([scored(1, 0.3), scored(2, 0.5)], retries_used=1, max_retries=1, attempts=2)
    assert outcome.decision == Decision.FALLBACK
    assert outcome.summary.fallback_used is True
    assert outcome.summary.best_score == 0.5


def test_fail_reports_best_score_against_threshold() -> None:
    outcome = run([scored(1, 0.42)], retries_used=1, fallback_enabled=False, attempts=2)
    assert outcome.decision == Decision.FAIL
    assert outcome.message == (
        "No candidate reached the quality threshold: best score 0.42 < 0.60 after 2 attempt(s)"
    )


def test_fail_reports_last_provider_error_when_nothing_was_produced() -> None:
    outcome = run([], retries_used=1, fallback_enabled=False, last_provider_error="veo-video timed out")
    assert outcome.decision == Decision.FAIL
    assert outcome.message == "veo-video timed out"


def test_qa_disabled_selects_lowest_index() -> None:
    outcome = run([scored(2, None), scored(1, None)], qa_enabled=False)
    assert outcome.decision == Decision.SELECT
    assert outcome.selected.variant_index == 1
