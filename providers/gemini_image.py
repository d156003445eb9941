from __future__ import annotations

import logging
import os
from typing import Any, Optional, Sequence

from google import genai
from google.genai import types

from wardrobe.io_types import EquippedItem, GeneratedImage
from wardrobe.paths import UnsupportedImageUrl, resolve_item_path
from .base import GeneratorNotConfigured


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"

SLOT_PLACEMENT = {
    "head": "positioned naturally on the bunny's head",
    "face": "worn on the bunny's face",
    "upper_body": "fitted on the bunny's upper body",
    "lower_body": "fitted on the bunny's lower body",
    "feet": "positioned on the bunny's feet",
    "accessory": "added as an accessory",
}

SCENE_DESCRIPTIONS = {
    "meadow": "a sunny meadow with soft green grass, fluffy white clouds and scattered flowers",
    "forest": "an enchanted forest with tall trees, dappled sunlight and small mushrooms",
    "beach": "a tropical beach with palm trees, gentle waves and golden sand",
    "garden": "a flower garden with roses, butterflies and a stone path",
    "snowy": "a winter landscape with snow-covered evergreens and falling snowflakes",
    "space": "a dreamy starfield with distant planets and colourful nebulae",
    "library": "a cosy library with tall bookshelves and warm golden light",
    "cafe": "a charming cafe with pastries on display and steaming cups",
}


def outfit_prompt(items: Sequence[EquippedItem]) -> str:
    if not items:
        return (
            "Recreate the bunny from image 1 exactly: same pose, proportions and colours. "
            "Keep the pixel art style and use a clean white background."
        )
    parts = []
    for index, item in enumerate(items, start=2):
        placement = SLOT_PLACEMENT.get(item.slot, "positioned appropriately on the bunny")
        parts.append(f"the {item.name.lower()} from image {index} {placement}")
    return (
        f"Add {', and '.join(parts)} to the bunny from image 1. "
        "Keep the exact same pixel art style and use a clean white background."
    )


def scene_prompt(scene_id: str, description: Optional[str] = None) -> str:
    desc = description or SCENE_DESCRIPTIONS.get(scene_id, SCENE_DESCRIPTIONS["meadow"])
    return f"Create a pixel art background scene: {desc}. No characters, only the environment. 16-bit game look."


def item_prompt(name: str, description: str, slot: str) -> str:
    return (
        f"Create a pixel art inventory icon of {description.lower()} ({name}), a {slot} item. "
        "Bold clean outlines, bright colours, centred on a fully transparent background, "
        "no other objects, in the style of a 16-bit game item."
    )


def _first_image(response: Any) -> Optional[GeneratedImage]:
    for cand in getattr(response, "candidates", None) or []:
        content = getattr(cand, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None or not inline.data:
                continue
            mime = inline.mime_type or ""
            if mime.startswith("image/"):
                return GeneratedImage(data=inline.data, mime_type=mime)
    return None


class GeminiImageGenerator:
    """
    Generative renderer backed by the Gemini image model.
    - Every call fails with GeneratorNotConfigured when no API key (or client) is available.
    - Outfit renders fall back to the untouched base image when the response carries no image.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.model = model or os.environ.get("GEMINI_IMAGE_MODEL", DEFAULT_MODEL)
        self.timeout_s = timeout_s if timeout_s is not None else float(os.environ.get("GEMINI_TIMEOUT", "60"))
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise GeneratorNotConfigured("Gemini API key not configured")
        # HttpOptions.timeout is in milliseconds
        self._client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout_s * 1000)),
        )
        return self._client

    def _generate(self, contents: list) -> Optional[GeneratedImage]:
        client = self._get_client()
        response = client.models.generate_content(model=self.model, contents=contents)
        return _first_image(response)

    def generate_outfit(self, base_image_path: str, items: Sequence[EquippedItem], public_dir: str) -> GeneratedImage:
        self._get_client()
        with open(base_image_path, "rb") as f:
            base_bytes = f.read()

        contents: list = [types.Part.from_bytes(data=base_bytes, mime_type="image/png")]
        included: list[EquippedItem] = []
        for item in items:
            try:
                with open(resolve_item_path(public_dir, item.image_url), "rb") as f:
                    contents.append(types.Part.from_bytes(data=f.read(), mime_type="image/png"))
                included.append(item)
            except (OSError, UnsupportedImageUrl) as e:
                logger.warning("Failed to load image for %s: %s", item.name, e)
        contents.append(outfit_prompt(included))

        logger.info("Generating bunny with %d items via %s", len(included), self.model)
        image = self._generate(contents)
        if image is None:
            logger.warning("No image data in Gemini response, returning base bunny unchanged")
            return GeneratedImage(data=base_bytes, mime_type="image/png", fallback=True)
        return image

    def generate_scene_background(self, scene_id: str, description: Optional[str] = None) -> Optional[GeneratedImage]:
        return self._generate([scene_prompt(scene_id, description)])

    def generate_item_image(self, name: str, description: str, slot: str) -> Optional[GeneratedImage]:
        return self._generate([item_prompt(name, description, slot)])
