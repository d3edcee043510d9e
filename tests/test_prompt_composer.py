from creative_engine.services.catalog import BrandSnapshot
from creative_engine.services.product_reference import ProductReference, ResolvedReferences
from creative_engine.services.prompt_composer import (
    BASE_NEGATIVE_PROMPT,
    STRICT_NEGATIVE_ADDITIONS,
    build_fidelity_rules,
    compose_prompt,
)

SETTINGS = {
    "content_type": "image",
    "environment": "bathroom",
    "lighting": "soft",
    "tone": "premium",
    "effect_intensity": "medium",
    "aspect_ratio": "1:1",
    "fidelity_mode": "high",
}


def single() -> ResolvedReferences:
    return ResolvedReferences(
        references=[ProductReference(id="p1", name="Shampoo Premium 300ml", image_url="/files/p1.png")]
    )


def kit() -> ResolvedReferences:
    return ResolvedReferences(
        references=[ProductReference(id="k1", name="Kit Completo", image_url="/files/k1.png", is_kit=True)],
        is_kit_scenario=True,
    )


def test_same_inputs_give_same_prompt() -> None:
    brand = BrandSnapshot(visual_style_guidelines="clean pastel", banned_claims=["cures hair loss"])
    first = compose_prompt(single(), SETTINGS, brand, "Summer launch")
    second = compose_prompt(single(), dict(SETTINGS), brand, "Summer launch")
    assert first.to_dict() == second.to_dict()


def test_prompt_embeds_product_style_brand_and_brief() -> None:
    brand = BrandSnapshot(tone_of_voice="warm", banned_claims=["cures hair loss"])
    composed = compose_prompt(single(), SETTINGS, brand, "Summer launch")

    assert composed.text.startswith("PROFESSIONAL PRODUCT PHOTOGRAPH")
    assert '"Shampoo Premium 300ml"' in composed.text
    assert "modern bathroom" in composed.text
    assert "Brand tone: warm" in composed.text
    assert "BRIEF:\nSummer launch" in composed.text
    assert "SINGLE PRODUCT SCENARIO" in composed.text
    assert composed.negative_prompt == BASE_NEGATIVE_PROMPT


def test_strict_retry_extends_the_base_prompt() -> None:
    base = compose_prompt(single(), SETTINGS)
    strict = compose_prompt(single(), SETTINGS, strict=True)

    assert strict.text.startswith(base.text)
    assert "STRICT FIDELITY" in strict.text
    assert strict.negative_prompt == f"{BASE_NEGATIVE_PROMPT}, {STRICT_NEGATIVE_ADDITIONS}"
    assert strict.fidelity_rules == base.fidelity_rules


def test_variations_only_append_a_modifier() -> None:
    first = compose_prompt(single(), SETTINGS, variation=1)
    second = compose_prompt(single(), SETTINGS, variation=2)
    assert "VARIATION" not in first.text
    assert second.text.startswith(first.text)
    assert "VARIATION 2: keep the same concept." in second.text


def test_kit_rules_forbid_holding_products() -> None:
    rules = build_fidelity_rules(kit())
    assert any("never held in hands" in rule for rule in rules)
    composed = compose_prompt(kit(), SETTINGS)
    assert "KIT SCENARIO" in composed.text


def test_rules_are_ordered_with_label_preservation_first() -> None:
    rules = build_fidelity_rules(single(), overlay_text="Summer Sale")
    assert rules[0].startswith("Preserve the product label")
    assert 'overlay "Summer Sale"' in rules[2]


def test_banned_claims_become_a_rule() -> None:
    rules = build_fidelity_rules(single(), brand=BrandSnapshot(banned_claims=["anti-aging", "cures"]))
    assert rules[-1] == "Never mention or show: anti-aging, cures."


def test_video_prompt_mentions_duration() -> None:
    composed = compose_prompt(single(), {**SETTINGS, "content_type": "video", "duration_seconds": 6})
    assert composed.text.startswith("PROFESSIONAL PRODUCT VIDEO")
    assert "Duration: 6 seconds" in composed.text


def test_text_only_prompt_has_no_product_section() -> None:
    composed = compose_prompt(ResolvedReferences(), SETTINGS, brief="Abstract spa mood")
    assert "PRODUCT:" not in composed.text
    assert "SINGLE PRODUCT SCENARIO" not in composed.text
