from types import SimpleNamespace

import pytest

from creative_engine.core.errors import ProviderError
from creative_engine.services.candidates import CandidateStore
from creative_engine.services.providers.base import GeneratedAsset
from creative_engine.services.qa_scorer import (
    QAScorer,
    histogram_similarity,
    text_similarity,
    threshold_for,
)
from creative_engine.services.vision_judge import GeminiVisionJudge, JudgeResult, _normalize


class StubJudge:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    def evaluate(self, asset, mime_type, reference=None, reference_mime_type="image/png", product_name=""):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def test_identical_images_have_full_histogram_similarity(make_png) -> None:
    image = make_png((40, 90, 200))
    assert histogram_similarity(image, image) == pytest.approx(1.0)


def test_different_colors_have_low_histogram_similarity(make_png) -> None:
    assert histogram_similarity(make_png((255, 0, 0)), make_png((0, 0, 255))) < 0.5


def test_text_similarity_ignores_case_and_whitespace() -> None:
    assert text_similarity("Summer Sale", "SUMMER   SALE - today only") == pytest.approx(1.0)
    assert text_similarity("Summer Sale", "") == 0.0


def test_judge_scores_are_normalized() -> None:
    assert _normalize(8) == pytest.approx(0.8)
    assert _normalize(1) == pytest.approx(0.1)
    assert _normalize(0.7) == pytest.approx(0.07)
    assert _normalize(14) == 1.0
    assert _normalize(-2) == 0.0
    assert _normalize(None) is None


def test_low_judge_scores_fail_a_video(make_png) -> None:
    response = SimpleNamespace(text='{"similarity": 1, "temporal": 1, "ocr_text": "", "issues": []}')
    client = SimpleNamespace(models=SimpleNamespace(generate_content=lambda **kwargs: response))
    scorer = QAScorer(judge=GeminiVisionJudge(client=client))

    result = scorer.evaluate(b"video", "video/mp4", content_type="video", reference=make_png())

    assert result.checks == {"similarity": pytest.approx(0.1), "temporal": pytest.approx(0.1)}
    assert not result.passed


def test_no_applicable_checks_scores_one(make_png) -> None:
    result = QAScorer().evaluate(make_png(), "image/png")
    assert result.score == 1.0
    assert result.passed


def test_similarity_without_judge_uses_histogram(make_png) -> None:
    reference = make_png((10, 200, 10))
    result = QAScorer().evaluate(reference, "image/png", reference=reference)
    assert result.checks == {"similarity": pytest.approx(1.0)}
    assert result.passed


def test_weights_are_renormalized_over_applicable_checks(make_png) -> None:
    reference = make_png((10, 200, 10))
    judge = StubJudge(JudgeResult(similarity=1.0, ocr_text="nothing readable"))
    scorer = QAScorer(judge=judge, weights={"similarity": 0.5, "legibility": 0.3, "temporal": 0.2})

    result = scorer.evaluate(reference, "image/png", reference=reference, overlay_text="Summer Sale")

    assert set(result.checks) == {"similarity", "legibility"}
    expected = (0.5 * result.checks["similarity"] + 0.3 * result.checks["legibility"]) / 0.8
    assert result.score == pytest.approx(expected, abs=1e-3)


def test_judge_failure_fails_closed(make_png) -> None:
    judge = StubJudge(error=ProviderError("vision down", provider_id="vision-judge"))
    result = QAScorer(judge=judge).evaluate(b"video", "video/mp4", content_type="video")

    assert result.checks == {"temporal": 0.0}
    assert result.score == 0.0
    assert not result.passed


def test_category_threshold(monkeypatch) -> None:
    from creative_engine.core.config import settings

    monkeypatch.setattr(settings, "QA_PASS_THRESHOLDS", {"default": 0.6, "cosmetics": 0.75})
    assert threshold_for("cosmetics") == 0.75
    assert threshold_for("unknown") == 0.6
    assert threshold_for(None) == 0.6


def test_candidate_is_scored_only_once(session_factory, storage, create_job, make_png) -> None:
    job_id = create_job()
    store = CandidateStore(storage, session_factory)
    reference = make_png((200, 30, 30))
    candidate = store.store("tenant-1", job_id, 1, 1, "gemini-image",
                            GeneratedAsset(data=make_png((200, 30, 30)), mime_type="image/png"))
    judge = StubJudge(JudgeResult(similarity=0.9))
    scorer = QAScorer(judge=judge)

    first = scorer.score_candidate(candidate, store, storage, reference=reference)
    reloaded = store.list_for_job(job_id)[0]
    second = scorer.score_candidate(reloaded, store, storage, reference=reference)

    assert judge.calls == 1
    assert second.score == first.score
    assert reloaded.qa_score == first.score


def test_record_score_never_overwrites(session_factory, storage, create_job, make_png) -> None:
    job_id = create_job()
    store = CandidateStore(storage, session_factory)
    candidate = store.store("tenant-1", job_id, 1, 1, "gemini-image",
                            GeneratedAsset(data=make_png(), mime_type="image/png"))

    assert store.record_score(candidate.id, 0.8, True, {}) == (0.8, True)
    assert store.record_score(candidate.id, 0.1, False, {}) == (0.8, True)
