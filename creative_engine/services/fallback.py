"""
Fallback Compositor
Deterministic composition of the real product image(s) onto a scene.

No generative model is involved, so the product is exact by construction. Only I/O
can fail (missing background or reference), which raises CompositionError.
"""

import io
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Any, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter

from creative_engine.core.config import settings as app_settings
from creative_engine.core.errors import CompositionError, PipelineError
from creative_engine.services.product_reference import ProductReference
from creative_engine.services.providers.base import GeneratedAsset
from creative_engine.core.paths import is_storage_url
from creative_engine.services.storage import StorageService

logger = logging.getLogger(__name__)

AspectRatio = Tuple[int, int]

ASPECT_RATIOS: Dict[str, AspectRatio] = {
    "1:1": (1, 1),
    "9:16": (9, 16),
    "16:9": (16, 9),
}

BASE_SIZE = 1200

# Vertical position of the surface the products rest on, as a share of canvas height
SURFACE_LINE = 0.78

# (top, bottom, surface) colors for the generated studio scene
SCENE_PALETTES: Dict[str, Tuple[Tuple[int, int, int], ...]] = {
    "studio": ((245, 245, 243), (222, 222, 218), (200, 198, 194)),
    "bathroom": ((232, 240, 242), (205, 220, 224), (236, 236, 232)),
    "bedroom": ((244, 236, 228), (226, 212, 200), (196, 176, 158)),
    "kitchen": ((246, 244, 238), (228, 224, 214), (182, 170, 150)),
    "gym": ((60, 64, 72), (38, 40, 46), (70, 72, 78)),
    "outdoor": ((214, 232, 246), (198, 222, 196), (150, 170, 120)),
    "office": ((236, 238, 240), (214, 218, 222), (150, 126, 104)),
}


def canvas_size(aspect_ratio: str) -> Tuple[int, int]:
    target_w, target_h = ASPECT_RATIOS.get(aspect_ratio, (1, 1))
    if target_w >= target_h:
        return BASE_SIZE, int(BASE_SIZE * (target_h / target_w))
    return int(BASE_SIZE * (target_w / target_h)), BASE_SIZE


def cover(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Resize and center-crop to fill `size`."""
    width, height = size
    scale = max(width / img.width, height / img.height)
    resized = img.resize((max(1, round(img.width * scale)), max(1, round(img.height * scale))), Image.LANCZOS)
    left = (resized.width - width) // 2
    top = (resized.height - height) // 2
    return resized.crop((left, top, left + width, top + height))


def studio_scene(size: Tuple[int, int], environment: str) -> Image.Image:
    """Gradient backdrop with a flat surface below the surface line."""
    width, height = size
    top, bottom, surface = SCENE_PALETTES.get(environment, SCENE_PALETTES["studio"])
    scene = Image.new("RGB", size, top)
    draw = ImageDraw.Draw(scene)
    surface_y = int(height * SURFACE_LINE)

    for y in range(surface_y):
        t = y / max(surface_y - 1, 1)
        color = tuple(round(a + (b - a) * t) for a, b in zip(top, bottom))
        draw.line([(0, y), (width, y)], fill=color)
    draw.rectangle([0, surface_y, width, height], fill=surface)
    return scene


def _load_image(data: bytes, what: str) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        return img
    except (OSError, ValueError) as e:
        raise CompositionError(f"The {what} image could not be read", details={"error": str(e)})


class FallbackCompositor:
    """Composes product references onto a scene."""

    def __init__(self, storage: StorageService, scenes_dir: Optional[str] = None):
        self.storage = storage
        self.scenes_dir = scenes_dir if scenes_dir is not None else app_settings.FALLBACK_SCENES_DIR

    def _fetch(self, url: str, what: str) -> bytes:
        try:
            return self.storage.get(url)
        except PipelineError as e:
            raise CompositionError(f"The {what} image is missing or unreachable", details={"url": url, **e.details})

    def load_scene(self, settings: Mapping[str, Any], size: Tuple[int, int]) -> Image.Image:
        """Explicit background, then a preset scene file, then the generated studio scene."""
        environment = settings.get("environment", "studio")

        if settings.get("background_url"):
            if not is_storage_url(settings["background_url"]):
                raise CompositionError("The background image must be an uploaded asset",
                                       details={"url": settings["background_url"]})
            data = self._fetch(settings["background_url"], "background")
            return cover(_load_image(data, "background").convert("RGB"), size)

        if self.scenes_dir:
            for ext in ("png", "jpg"):
                path = Path(self.scenes_dir) / f"{environment}.{ext}"
                if path.is_file():
                    return cover(_load_image(path.read_bytes(), "scene").convert("RGB"), size)

        return studio_scene(size, environment)

    def compose(
        self,
        references: List[ProductReference],
        settings: Mapping[str, Any],
        is_kit: bool = False,
    ) -> GeneratedAsset:
        """
        Build the fallback asset.

        Single product: centered on the surface line. Kit: all products side by side
        resting on the surface.
        """
        usable = [ref for ref in references if ref.is_usable]
        if not usable:
            raise CompositionError("Fallback composition needs at least one product image")

        size = canvas_size(settings.get("aspect_ratio", "1:1"))
        canvas = self.load_scene(settings, size).convert("RGBA")
        products = [
            _load_image(self._fetch(ref.image_url, f"product '{ref.name}'"), f"product '{ref.name}'").convert("RGBA")
            for ref in usable
        ]

        width, height = size
        surface_y = int(height * SURFACE_LINE)
        if is_kit and len(products) > 1:
            gap = int(width * 0.04)
            slot_width = (int(width * 0.85) - gap * (len(products) - 1)) // len(products)
            max_height = int(height * 0.5)
        else:
            products = products[:1]
            gap = 0
            slot_width = int(width * 0.6)
            max_height = int(height * 0.55)

        scaled = []
        for img in products:
            scale = min(slot_width / img.width, max_height / img.height)
            scaled.append(img.resize((max(1, round(img.width * scale)), max(1, round(img.height * scale))), Image.LANCZOS))

        total_width = sum(img.width for img in scaled) + gap * (len(scaled) - 1)
        x = (width - total_width) // 2
        shadow_layer = Image.new("RGBA", size, (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow_layer)
        placements = []
        for img in scaled:
            y = surface_y - img.height
            placements.append((img, (x, y)))
            shadow_draw.ellipse(
                [x + img.width * 0.1, surface_y - img.height * 0.03, x + img.width * 0.9, surface_y + img.height * 0.05],
                fill=(0, 0, 0, 70),
            )
            x += img.width + gap

        canvas = Image.alpha_composite(canvas, shadow_layer.filter(ImageFilter.GaussianBlur(radius=12)))
        for img, position in placements:
            canvas.paste(img, position, img)

        buffer = io.BytesIO()
        canvas.convert("RGB").save(buffer, format="PNG")
        logger.info(f"[Fallback] Composed {len(placements)} product(s) on a {width}x{height} scene (kit={is_kit})")
        return GeneratedAsset(data=buffer.getvalue(), mime_type="image/png", model="fallback-composition")
