import pytest

from creative_engine.core.errors import ValidationError
from creative_engine.models.catalog import Product, ProductImage
from creative_engine.services.catalog import CatalogService, match_products, significant_words
from creative_engine.services.product_reference import (
    ProductReferenceResolver,
    ResolvedReferences,
    pick_reference_image,
)


def test_significant_words_drop_short_words_and_parentheses() -> None:
    assert significant_words("Kit (Shampoo) de 300ml") == ["shampoo", "300ml"]


def test_exact_and_word_matches_are_both_kept() -> None:
    shampoo = Product(id="p1", tenant_id="t", name="Shampoo Premium 300ml")
    conditioner = Product(id="p2", tenant_id="t", name="Condicionador Premium Hidratante")
    matches = match_products(
        [shampoo, conditioner], "Campanha Shampoo Premium 300ml com condicionador hidratante"
    )
    assert matches == [shampoo, conditioner]


def test_unrelated_product_is_not_matched() -> None:
    shampoo = Product(id="p1", tenant_id="t", name="Shampoo Premium 300ml")
    serum = Product(id="p2", tenant_id="t", name="Serum Facial Noturno")
    assert match_products([shampoo, serum], "New shampoo premium 300ml campaign") == [shampoo]


def test_fuzzy_match_needs_half_of_significant_words() -> None:
    product = Product(id="p1", tenant_id="t", name="Condicionador Hidratante Reparador Noturno")
    assert match_products([product], "condicionador hidratante para o verao") == [product]
    assert match_products([product], "condicionador para o verao") == []


def test_empty_text_matches_nothing() -> None:
    assert match_products([Product(id="p1", tenant_id="t", name="Shampoo")], "   ") == []


def test_primary_image_is_preferred() -> None:
    product = Product(id="p1", tenant_id="t", name="Serum")
    product.images = [
        ProductImage(url="/files/a.png", is_primary=False, sort_order=0),
        ProductImage(url="/files/b.png", is_primary=True, sort_order=5),
    ]
    assert pick_reference_image(product) == "/files/b.png"


def test_lowest_sort_order_when_no_primary() -> None:
    product = Product(id="p1", tenant_id="t", name="Serum")
    product.images = [
        ProductImage(url="/files/late.png", is_primary=False, sort_order=3),
        ProductImage(url="/files/early.png", is_primary=False, sort_order=1),
    ]
    assert pick_reference_image(product) == "/files/early.png"


def test_resolve_single_product_with_image(db, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml")
    resolved = ProductReferenceResolver(CatalogService(db)).resolve("tenant-1", "Shampoo Premium 300ml launch")

    assert [ref.id for ref in resolved.references] == ["p1"]
    assert resolved.has_usable_reference
    assert resolved.is_kit_scenario is False
    assert resolved.primary.image_url == "/files/catalog/p1.png"


def test_kit_marker_makes_kit_scenario(db, add_product) -> None:
    add_product("kit1", "Kit Completo")
    resolved = ProductReferenceResolver(CatalogService(db)).resolve("tenant-1", "Promo Kit Completo")
    assert resolved.is_kit_scenario is True


def test_multiple_matches_make_kit_scenario(db, add_product) -> None:
    add_product("p1", "Shampoo Premium")
    add_product("p2", "Condicionador Premium")
    resolved = ProductReferenceResolver(CatalogService(db)).resolve(
        "tenant-1", "Shampoo Premium and Condicionador Premium together"
    )
    assert {ref.id for ref in resolved.references} == {"p1", "p2"}
    assert resolved.is_kit_scenario is True


def test_loosely_named_second_product_still_makes_kit(db, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml")
    add_product("p2", "Condicionador Premium Hidratante")
    resolved = ProductReferenceResolver(CatalogService(db)).resolve(
        "tenant-1", "Campanha Shampoo Premium 300ml com condicionador hidratante"
    )
    assert {ref.id for ref in resolved.references} == {"p1", "p2"}
    assert resolved.is_kit_scenario is True


def test_matched_product_without_image_is_rejected(db, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml", with_image=False)
    resolver = ProductReferenceResolver(CatalogService(db))

    with pytest.raises(ValidationError) as excinfo:
        resolver.resolve("tenant-1", "Shampoo Premium 300ml")
    assert "Shampoo Premium 300ml" in excinfo.value.message


def test_unknown_explicit_product_is_rejected(db) -> None:
    with pytest.raises(ValidationError):
        ProductReferenceResolver(CatalogService(db)).resolve("tenant-1", product_id="missing")


def test_other_tenant_products_are_invisible(db, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml", tenant_id="tenant-2")
    resolved = ProductReferenceResolver(CatalogService(db)).resolve("tenant-1", "Shampoo Premium 300ml")
    assert resolved.references == []
    assert not resolved.has_usable_reference


def test_snapshot_roundtrip_keeps_kit_flag() -> None:
    snapshot = [{"id": "p1", "name": "Kit Completo", "image_url": "/files/k.png", "is_kit": True, "sku": None}]
    resolved = ResolvedReferences.from_snapshot(snapshot, is_kit_scenario=True)
    assert resolved.is_kit_scenario
    assert resolved.primary.name == "Kit Completo"
