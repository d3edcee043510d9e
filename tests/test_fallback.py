import io

import pytest
from PIL import Image

from creative_engine.core.errors import CompositionError, StorageError
from creative_engine.services.fallback import FallbackCompositor, canvas_size
from creative_engine.services.product_reference import ProductReference


def decode(asset):
    return Image.open(io.BytesIO(asset.data))


def reference(storage, make_png, product_id, color=(200, 30, 30)):
    url = storage.put(f"catalog/{product_id}.png", make_png(color, (100, 180)), "image/png")
    return ProductReference(id=product_id, name=product_id, image_url=url)


def test_canvas_follows_aspect_ratio() -> None:
    assert canvas_size("1:1") == (1200, 1200)
    assert canvas_size("9:16") == (675, 1200)
    assert canvas_size("16:9") == (1200, 675)


def test_single_product_is_centered_on_the_scene(storage, make_png) -> None:
    compositor = FallbackCompositor(storage, scenes_dir="")
    asset = compositor.compose([reference(storage, make_png, "p1")], {"aspect_ratio": "9:16"})

    image = decode(asset)
    assert asset.mime_type == "image/png"
    assert asset.model == "fallback-composition"
    assert image.size == (675, 1200)
    center = image.convert("RGB").getpixel((675 // 2, int(1200 * 0.78) - 20))
    assert center == (200, 30, 30)


def test_composition_is_deterministic(storage, make_png) -> None:
    compositor = FallbackCompositor(storage, scenes_dir="")
    refs = [reference(storage, make_png, "p1")]
    assert compositor.compose(refs, {"aspect_ratio": "1:1"}).data == compositor.compose(refs, {"aspect_ratio": "1:1"}).data


def test_kit_places_every_product(storage, make_png) -> None:
    compositor = FallbackCompositor(storage, scenes_dir="")
    refs = [
        reference(storage, make_png, "a", (250, 0, 0)),
        reference(storage, make_png, "b", (0, 0, 250)),
    ]
    image = decode(compositor.compose(refs, {"aspect_ratio": "16:9"}, is_kit=True)).convert("RGB")

    colors = {image.getpixel((x, int(675 * 0.78) - 10)) for x in range(0, 1200, 4)}
    assert (250, 0, 0) in colors
    assert (0, 0, 250) in colors


def test_explicit_background_is_used(storage, make_png) -> None:
    background = storage.put("scenes/custom.png", make_png((0, 255, 0), (300, 300)), "image/png")
    compositor = FallbackCompositor(storage, scenes_dir="")

    image = decode(compositor.compose([reference(storage, make_png, "p1")],
                                      {"aspect_ratio": "1:1", "background_url": background})).convert("RGB")
    assert image.getpixel((5, 5)) == (0, 255, 0)


def test_missing_background_is_a_composition_error(storage, make_png) -> None:
    compositor = FallbackCompositor(storage, scenes_dir="")
    with pytest.raises(CompositionError):
        compositor.compose([reference(storage, make_png, "p1")], {"background_url": "/files/scenes/nope.png"})


def test_no_usable_reference_is_a_composition_error(storage) -> None:
    with pytest.raises(CompositionError):
        FallbackCompositor(storage, scenes_dir="").compose([ProductReference(id="p", name="p")], {})


def test_preset_scene_file(tmp_path, storage, make_png) -> None:
    scenes = tmp_path / "scenes"
    scenes.mkdir()
    (scenes / "kitchen.png").write_bytes(make_png((10, 10, 10), (50, 50)))
    compositor = FallbackCompositor(storage, scenes_dir=str(scenes))

    image = decode(compositor.compose([reference(storage, make_png, "p1")],
                                      {"aspect_ratio": "1:1", "environment": "kitchen"})).convert("RGB")
    assert image.getpixel((3, 3)) == (10, 10, 10)


@pytest.mark.parametrize("url", ["file:///etc/hosts", "http://127.0.0.1:6379/", "/files/../../etc/hosts"])
def test_background_outside_storage_is_refused(storage, make_png, url) -> None:
    compositor = FallbackCompositor(storage, scenes_dir="")
    with pytest.raises(CompositionError):
        compositor.compose([reference(storage, make_png, "p1")], {"background_url": url})


def test_storage_paths_stay_under_the_storage_root(storage) -> None:
    with pytest.raises(StorageError):
        storage.get_file("../outside.png")
    with pytest.raises(StorageError):
        storage.put("../../outside.png", b"x")
