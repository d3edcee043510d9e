"""
Prompt Composer
Builds the final generation instruction, its negative prompt and the ordered fidelity ruleset.

compose_prompt is a pure function: the same inputs always give the same text. A strict
retry keeps the base text and only appends negative constraints.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from creative_engine.services.catalog import BrandSnapshot
from creative_engine.services.product_reference import ResolvedReferences

ENVIRONMENT_PRESETS = {
    "studio": "a professional photography studio with a clean neutral backdrop",
    "bathroom": "a modern bathroom with natural light and clean surfaces",
    "bedroom": "a cozy bedroom with soft textiles",
    "kitchen": "a bright modern kitchen countertop",
    "gym": "a fitness gym with an energetic atmosphere",
    "outdoor": "an outdoor garden setting with natural sunlight",
    "office": "a professional office desk setting",
}

LIGHTING_PRESETS = {
    "soft": "soft diffused key light with a gentle fill, no harsh shadows on the product",
    "natural": "natural window daylight",
    "dramatic": "dramatic rim lighting with deep contrast and controlled reflections",
    "studio": "three-point studio lighting, even and premium",
}

TONE_PRESETS = {
    "premium": "premium and sophisticated, editorial magazine quality",
    "minimal": "minimalist, uncluttered, generous negative space",
    "vibrant": "vibrant and energetic with saturated but natural colors",
    "natural": "authentic lifestyle feel, relaxed and natural",
}

EFFECT_INTENSITY = {
    "low": "keep effects subtle; the product is the only focal point",
    "medium": "moderate atmospheric effects (depth of field, light bloom) that never cover the product",
    "high": "bold creative effects around the product (particles, splashes, reflections) that never cover or alter it",
}

ASPECT_DESCRIPTIONS = {
    "1:1": "square 1:1 frame for feed posts",
    "9:16": "vertical 9:16 frame for stories and reels",
    "16:9": "horizontal 16:9 frame",
}

FIDELITY_LEVELS = {
    "high": "The product must be IDENTICAL to the reference image: same label text, letters, numbers, colors, proportions and packaging design.",
    "medium": "Keep the product's overall appearance, main colors and packaging shape close to the reference image.",
    "low": "Keep the product's general style; minor creative variation is acceptable.",
}

# Appended for the 2nd, 3rd... variation of a batch
VARIANT_MODIFIERS = [
    "Use a slightly lower camera angle, product at eye level.",
    "Use a three-quarter view with a tighter crop on the product.",
    "Use a wider framing that shows more of the surrounding scene.",
    "Use a top-down flat lay composition.",
]

BASE_NEGATIVE_PROMPT = (
    "overlaid text, invented logos, invented brands, different label, altered product, wrong colors, "
    "modified packaging, illegible text, distorted letters, generic product, generic box, "
    "duplicated product, multiple copies of the same product, low quality, pixelated, blurry product, "
    "harsh shadows, deformed hands, extra fingers, unrealistic proportions, medical claims, "
    "certification seals, result promises"
)

STRICT_NEGATIVE_ADDITIONS = (
    "any change to the label, any redrawn packaging, any extra product, any text not on the real label, "
    "product held by more hands than allowed, cropped product, product partially hidden"
)


@dataclass
class ComposedPrompt:
    text: str
    negative_prompt: str
    fidelity_rules: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "negative_prompt": self.negative_prompt,
            "fidelity_rules": list(self.fidelity_rules),
        }


def build_fidelity_rules(
    references: ResolvedReferences,
    fidelity_mode: str = "high",
    brand: Optional[BrandSnapshot] = None,
    overlay_text: Optional[str] = None,
) -> List[str]:
    """Ordered list of constraints every generation must respect."""
    rules = [
        "Preserve the product label, colors and design exactly as in the reference image.",
        FIDELITY_LEVELS.get(fidelity_mode, FIDELITY_LEVELS["high"]),
    ]
    if overlay_text:
        rules.append(f'The only text allowed in the image is the overlay "{overlay_text}"; do not invent any other text.')
    else:
        rules.append("Do not add any text, letters, numbers or logos that are not on the real product.")
    rules.append("Do not duplicate the product or create variations of it (other bottles, sizes or packaging).")
    if references.is_kit_scenario:
        rules.append("Kit scenario: products rest on a surface (counter, shelf, table or flat lay); never held in hands.")
    else:
        rules.append("Single product: if hands are shown, at most one product per hand, held naturally.")
    rules.append("Do not add seals, certifications, claims or result promises.")
    if brand and brand.banned_claims:
        rules.append(f"Never mention or show: {', '.join(brand.banned_claims)}.")
    return rules


def compose_prompt(
    references: ResolvedReferences,
    settings: Mapping[str, Any],
    brand: Optional[BrandSnapshot] = None,
    brief: str = "",
    strict: bool = False,
    variation: int = 1,
) -> ComposedPrompt:
    """
    Compose the generation instruction.

    Args:
        references: resolved product references
        settings: validated generation settings (dict form)
        brand: brand context snapshot, if the tenant has one
        brief: free-text brief from the request
        strict: append explicit negative constraints (retry attempts)
        variation: 1-based position inside the batch; 1 gets no modifier
    """
    content_type = settings.get("content_type", "image")
    fidelity_rules = build_fidelity_rules(
        references,
        fidelity_mode=settings.get("fidelity_mode", "high"),
        brand=brand,
        overlay_text=settings.get("overlay_text"),
    )

    names = [ref.name for ref in references.references]
    if content_type == "video":
        header = "PROFESSIONAL PRODUCT VIDEO, COMMERCIAL QUALITY"
    else:
        header = "PROFESSIONAL PRODUCT PHOTOGRAPH, EDITORIAL QUALITY"

    sections = [header]
    if names:
        sections.append(
            "PRODUCT: " + ", ".join(f'"{name}"' for name in names) + "\n"
            "The reference image shows the REAL product. Create a SCENE around this EXACT product."
        )

    if references.is_kit_scenario:
        sections.append(
            "KIT SCENARIO (multiple products):\n"
            "- Products rest on a surface, organized elegantly\n"
            "- No person holds multiple products"
        )
    elif names:
        sections.append(
            "SINGLE PRODUCT SCENARIO:\n"
            "- A model may hold the product naturally\n"
            "- At most one product per hand"
        )

    environment = settings.get("environment", "studio")
    lighting = settings.get("lighting", "soft")
    tone = settings.get("tone", "premium")
    intensity = settings.get("effect_intensity", "medium")
    aspect = settings.get("aspect_ratio", "1:1")
    style_lines = [
        f"- Scene: {ENVIRONMENT_PRESETS.get(environment, ENVIRONMENT_PRESETS['studio'])}",
        f"- Lighting: {LIGHTING_PRESETS.get(lighting, LIGHTING_PRESETS['soft'])}",
        f"- Tone: {TONE_PRESETS.get(tone, TONE_PRESETS['premium'])}",
        f"- Effects: {EFFECT_INTENSITY.get(intensity, EFFECT_INTENSITY['medium'])}",
        f"- Format: {ASPECT_DESCRIPTIONS.get(aspect, aspect)}",
    ]
    if content_type == "video":
        style_lines.append(
            f"- Duration: {settings.get('duration_seconds', 8)} seconds, slow smooth camera movement, "
            f"label stays sharp and readable in every frame"
        )
    sections.append("STYLE:\n" + "\n".join(style_lines))

    if brand and not brand.is_empty():
        brand_lines = []
        if brand.visual_style_guidelines:
            brand_lines.append(f"- Visual style: {brand.visual_style_guidelines}")
        if brand.tone_of_voice:
            brand_lines.append(f"- Brand tone: {brand.tone_of_voice}")
        if brand.banned_claims:
            brand_lines.append(f"- Banned claims: {', '.join(brand.banned_claims)}")
        sections.append("BRAND:\n" + "\n".join(brand_lines))

    if brief and brief.strip():
        sections.append(f"BRIEF:\n{brief.strip()}")

    if settings.get("overlay_text"):
        sections.append(f'OVERLAY TEXT: render exactly "{settings["overlay_text"]}", clearly legible.')

    sections.append("MANDATORY RULES:\n" + "\n".join(f"- {rule}" for rule in fidelity_rules))

    negative_prompt = BASE_NEGATIVE_PROMPT
    if strict:
        sections.append(
            "STRICT FIDELITY (previous results were rejected):\n"
            "- Reproduce the reference product pixel-faithfully; change only the scene around it\n"
            "- Do NOT: " + STRICT_NEGATIVE_ADDITIONS
        )
        negative_prompt = f"{BASE_NEGATIVE_PROMPT}, {STRICT_NEGATIVE_ADDITIONS}"

    if variation > 1:
        modifier = VARIANT_MODIFIERS[(variation - 2) % len(VARIANT_MODIFIERS)]
        sections.append(f"VARIATION {variation}: keep the same concept. {modifier}")

    return ComposedPrompt(
        text="\n\n".join(sections),
        negative_prompt=negative_prompt,
        fidelity_rules=fidelity_rules,
    )
