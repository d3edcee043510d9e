"""
Vision Judge
Gemini vision model that rates a generated asset against the real product image.

Scores come back on a 0-10 scale and are normalized to [0, 1]. The judge is not
deterministic, which is why candidates are scored only once.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from creative_engine.core.config import settings
from creative_engine.core.errors import ProviderError
from creative_engine.services.providers.gemini import build_client, map_genai_error

logger = logging.getLogger(__name__)

JUDGE_PROMPT = """You are a quality assurance system for product marketing assets.

Compare the GENERATED asset with the ORIGINAL product image.
Product: {product_name}

Score each aspect from 0 to 10:
1. similarity: how closely the product matches the original (shape, colors, proportions, label design)
2. temporal: for video only, stability and consistency across frames (no flicker, no morphing); use 10 for still images

Also transcribe the text visible in the generated asset (ocr_text).

Respond in JSON:
{{"similarity": 8, "temporal": 9, "ocr_text": "Brand - Product", "issues": ["minor label blur"]}}"""


@dataclass
class JudgeResult:
    similarity: Optional[float] = None
    temporal: Optional[float] = None
    ocr_text: str = ""
    issues: List[str] = field(default_factory=list)


def _normalize(value) -> Optional[float]:
    if value is None:
        return None
    score = float(value) / 10.0
    return max(0.0, min(1.0, score))


class GeminiVisionJudge:
    """Rates assets with the configured Gemini vision model."""

    def __init__(self, client: Optional[genai.Client] = None, api_key: Optional[str] = None):
        self._client = client
        self._api_key = api_key

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = build_client(self._api_key or settings.GEMINI_API_KEY)
        return self._client

    def evaluate(
        self,
        asset: bytes,
        mime_type: str,
        reference: Optional[bytes] = None,
        reference_mime_type: str = "image/png",
        product_name: str = "",
    ) -> JudgeResult:
        """
        Judge one asset.

        Raises:
            ProviderError: the vision call failed or returned unusable output
        """
        parts = [types.Part.from_text(text=JUDGE_PROMPT.format(product_name=product_name or "unknown"))]
        if reference:
            parts.append(types.Part.from_text(text="ORIGINAL product image:"))
            parts.append(types.Part.from_bytes(data=reference, mime_type=reference_mime_type))
        parts.append(types.Part.from_text(text="GENERATED asset:"))
        parts.append(types.Part.from_bytes(data=asset, mime_type=mime_type))

        try:
            response = self.client.models.generate_content(
                model=settings.GEMINI_VISION_MODEL,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(
                    temperature=0.0,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as e:
            raise map_genai_error(e, "vision-judge")

        text = (response.text or "").replace("```json", "").replace("```", "").strip()
        if not text:
            raise ProviderError("Vision judge returned an empty response", provider_id="vision-judge")

        try:
            data = json.loads(text)
            result = JudgeResult(
                similarity=_normalize(data.get("similarity")),
                temporal=_normalize(data.get("temporal")),
                ocr_text=str(data.get("ocr_text") or ""),
                issues=[str(issue) for issue in data.get("issues") or []],
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"[QA] Vision judge output unreadable: {text[:200]}")
            raise ProviderError("Vision judge returned unreadable output", provider_id="vision-judge",
                                details={"error": str(e)})

        logger.info(f"[QA] Vision judge: similarity={result.similarity} temporal={result.temporal}")
        return result
