from __future__ import annotations

from typing import Optional, Protocol, Sequence

from wardrobe.io_types import EquippedItem, GeneratedImage


class GeneratorNotConfigured(Exception):
    pass


class ImageGenerator(Protocol):
    def generate_outfit(self, base_image_path: str, items: Sequence[EquippedItem], public_dir: str) -> GeneratedImage: ...

    def generate_scene_background(self, scene_id: str, description: Optional[str] = None) -> Optional[GeneratedImage]: ...

    def generate_item_image(self, name: str, description: str, slot: str) -> Optional[GeneratedImage]: ...
