"""
QA Scorer
Composite quality score for a candidate: similarity to the reference, overlay text
legibility and (for video) temporal stability.

The composite is a weighted average over the checks that apply, with weights
renormalized to sum to 1. An applicable check that cannot be evaluated scores 0.
"""

import difflib
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
from PIL import Image

from creative_engine.core.config import settings
from creative_engine.core.errors import ProviderError
from creative_engine.models.candidate import Candidate
from creative_engine.services.candidates import CandidateStore
from creative_engine.services.storage import StorageService
from creative_engine.services.vision_judge import GeminiVisionJudge, JudgeResult

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 32
HISTOGRAM_SIZE = (256, 256)
# Share of the image similarity taken from the histogram when a judge is configured
HISTOGRAM_BLEND = 0.5


@dataclass
class QAResult:
    score: float
    passed: bool
    threshold: float
    checks: Dict[str, float] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_details(self) -> Dict[str, Any]:
        return {"threshold": self.threshold, "checks": self.checks, **self.details}


def histogram_similarity(reference: bytes, candidate: bytes) -> float:
    """Colour histogram intersection of two images, in [0, 1]."""
    scores = []
    with Image.open(io.BytesIO(reference)) as ref_img, Image.open(io.BytesIO(candidate)) as cand_img:
        ref = np.asarray(ref_img.convert("RGB").resize(HISTOGRAM_SIZE))
        cand = np.asarray(cand_img.convert("RGB").resize(HISTOGRAM_SIZE))

    for channel in range(3):
        ref_hist, _ = np.histogram(ref[..., channel], bins=HISTOGRAM_BINS, range=(0, 256))
        cand_hist, _ = np.histogram(cand[..., channel], bins=HISTOGRAM_BINS, range=(0, 256))
        ref_hist = ref_hist / max(ref_hist.sum(), 1)
        cand_hist = cand_hist / max(cand_hist.sum(), 1)
        scores.append(float(np.minimum(ref_hist, cand_hist).sum()))

    return max(0.0, min(1.0, float(np.mean(scores))))


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def text_similarity(expected: str, observed: str) -> float:
    expected, observed = _normalize_text(expected), _normalize_text(observed)
    if not expected:
        return 1.0
    if not observed:
        return 0.0
    if expected in observed:
        return 1.0
    return difflib.SequenceMatcher(None, expected, observed).ratio()


def threshold_for(category: Optional[str]) -> float:
    thresholds = settings.QA_PASS_THRESHOLDS
    default = thresholds.get("default", 0.6)
    return thresholds.get(category or "default", default)


class QAScorer:
    """Scores candidates once and stores the outcome."""

    def __init__(
        self,
        judge: Optional[GeminiVisionJudge] = None,
        weights: Optional[Dict[str, float]] = None,
    ):
        self.judge = judge
        self.weights = weights or {
            "similarity": settings.QA_WEIGHT_SIMILARITY,
            "legibility": settings.QA_WEIGHT_LEGIBILITY,
            "temporal": settings.QA_WEIGHT_TEMPORAL,
        }

    def _judge(self, asset: bytes, mime_type: str, reference: Optional[bytes], reference_mime_type: str,
               product_name: str) -> Optional[JudgeResult]:
        if self.judge is None:
            return None
        try:
            return self.judge.evaluate(asset, mime_type, reference, reference_mime_type, product_name)
        except ProviderError as e:
            logger.warning(f"[QA] Vision judge unavailable, dependent checks score 0: {e.message}")
            return None

    def evaluate(
        self,
        asset: bytes,
        mime_type: str,
        content_type: str = "image",
        reference: Optional[bytes] = None,
        reference_mime_type: str = "image/png",
        overlay_text: Optional[str] = None,
        category: Optional[str] = None,
        product_name: str = "",
    ) -> QAResult:
        threshold = threshold_for(category)
        applicable = []
        if reference:
            applicable.append("similarity")
        if overlay_text:
            applicable.append("legibility")
        if content_type == "video":
            applicable.append("temporal")

        if not applicable:
            return QAResult(score=1.0, passed=True, threshold=threshold, details={"note": "no applicable checks"})

        judge_result = self._judge(asset, mime_type, reference, reference_mime_type, product_name)
        checks: Dict[str, float] = {}
        details: Dict[str, Any] = {"judge": judge_result is not None}

        if "similarity" in applicable:
            judge_similarity = judge_result.similarity if judge_result and judge_result.similarity is not None else 0.0
            if content_type == "video":
                checks["similarity"] = judge_similarity
            else:
                try:
                    hist = histogram_similarity(reference, asset)
                except (OSError, ValueError) as e:
                    logger.warning(f"[QA] Histogram similarity failed: {e}")
                    hist = 0.0
                details["histogram_similarity"] = round(hist, 4)
                if self.judge is None:
                    checks["similarity"] = hist
                else:
                    checks["similarity"] = HISTOGRAM_BLEND * hist + (1 - HISTOGRAM_BLEND) * judge_similarity

        if "legibility" in applicable:
            ocr = judge_result.ocr_text if judge_result else ""
            checks["legibility"] = text_similarity(overlay_text, ocr) if judge_result else 0.0
            details["ocr_text"] = ocr

        if "temporal" in applicable:
            checks["temporal"] = judge_result.temporal if judge_result and judge_result.temporal is not None else 0.0

        if judge_result and judge_result.issues:
            details["issues"] = judge_result.issues

        total_weight = sum(self.weights.get(name, 0.0) for name in checks)
        if total_weight <= 0:
            score = sum(checks.values()) / len(checks)
        else:
            score = sum(value * self.weights.get(name, 0.0) for name, value in checks.items()) / total_weight
        score = round(max(0.0, min(1.0, score)), 4)

        return QAResult(
            score=score,
            passed=score >= threshold,
            threshold=threshold,
            checks={name: round(value, 4) for name, value in checks.items()},
            details=details,
        )

    def score_candidate(
        self,
        candidate: Candidate,
        store: CandidateStore,
        storage: StorageService,
        content_type: str = "image",
        reference: Optional[bytes] = None,
        reference_mime_type: str = "image/png",
        overlay_text: Optional[str] = None,
        category: Optional[str] = None,
        product_name: str = "",
    ) -> QAResult:
        """
        Score a stored candidate exactly once.

        An already-scored candidate returns its stored outcome without re-evaluating.
        """
        threshold = threshold_for(category)
        if candidate.qa_score is not None:
            return QAResult(
                score=candidate.qa_score, passed=bool(candidate.qa_passed), threshold=threshold,
                details={"cached": True},
            )

        asset = storage.get(candidate.storage_url)
        result = self.evaluate(
            asset, candidate.mime_type, content_type, reference, reference_mime_type,
            overlay_text, category, product_name,
        )

        stored_score, stored_passed = store.record_score(candidate.id, result.score, result.passed, result.to_details())
        result.score, result.passed = stored_score, stored_passed
        logger.info(
            f"[QA] job={candidate.job_id} variant={candidate.variant_index} "
            f"score={result.score:.3f} threshold={threshold} passed={result.passed}"
        )
        return result
