import os
from typing import Optional


PUBLIC_DIR = os.environ.get("WARDROBE_PUBLIC_DIR", "public")
# Production serves generated art from a separate static root
GENERATED_DIR = os.environ.get("WARDROBE_GENERATED_DIR")

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


class InvalidName(ValueError):
    pass


def safe_name(name: str) -> str:
    """Reject anything that is not a plain file/folder name."""
    if not name or name in (".", "..") or os.path.basename(name) != name or "\\" in name:
        raise InvalidName(f"Invalid name: {name!r}")
    return name


class Storage:
    root: str = PUBLIC_DIR
    generated_root: Optional[str] = GENERATED_DIR

    @classmethod
    def items_dir(cls) -> str:
        return os.path.join(cls.root, "items")

    @classmethod
    def scenes_dir(cls) -> str:
        return os.path.join(cls.root, "scenes")

    @classmethod
    def base_bunnies_dir(cls) -> str:
        return os.path.join(cls.root, "base-bunnies")

    @classmethod
    def generated_dir(cls) -> str:
        return cls.generated_root or os.path.join(cls.root, "generated-bunnies")

    @classmethod
    def composites_dir(cls) -> str:
        return os.path.join(cls.root, "composites")

    @classmethod
    def ensure_dirs(cls) -> None:
        for d in (cls.items_dir(), cls.scenes_dir(), cls.base_bunnies_dir(), cls.generated_dir(), cls.composites_dir()):
            os.makedirs(d, exist_ok=True)

    @staticmethod
    def write_bytes(path: str, data: bytes) -> str:
        # Last writer wins
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return path

    @classmethod
    def base_bunny_path(cls, filename: str) -> str:
        return os.path.join(cls.base_bunnies_dir(), safe_name(filename))

    @classmethod
    def generated_folder(cls, key: str) -> str:
        return os.path.join(cls.generated_dir(), safe_name(key))

    @classmethod
    def composite_path(cls, key: str) -> str:
        return os.path.join(cls.composites_dir(), safe_name(f"{key}.png"))

    @classmethod
    def scene_image_path(cls, scene_id: str, background_image_url: Optional[str] = None) -> str:
        if background_image_url and background_image_url.startswith("/scenes/"):
            return os.path.join(cls.scenes_dir(), safe_name(background_image_url[len("/scenes/"):]))
        return os.path.join(cls.scenes_dir(), f"{safe_name(scene_id)}.png")

    @classmethod
    def save_item_image(cls, item_id: str, data: bytes, extension: str) -> str:
        filename = safe_name(f"{item_id}{extension}")
        cls.write_bytes(os.path.join(cls.items_dir(), filename), data)
        return f"/items/{filename}"

    @classmethod
    def save_scene_image(cls, scene_id: str, data: bytes, extension: str) -> str:
        filename = safe_name(f"{scene_id}{extension}")
        cls.write_bytes(os.path.join(cls.scenes_dir(), filename), data)
        return f"/scenes/{filename}"

    @classmethod
    def list_base_bunnies(cls) -> list[str]:
        names = os.listdir(cls.base_bunnies_dir())
        return sorted(n for n in names if n.lower().endswith(IMAGE_EXTENSIONS))

    @classmethod
    def clear_composites(cls) -> int:
        """Drop every cached slot composite; returns how many files went."""
        removed = 0
        try:
            names = os.listdir(cls.composites_dir())
        except FileNotFoundError:
            return 0
        for name in names:
            if name.endswith(".png"):
                try:
                    os.remove(os.path.join(cls.composites_dir(), name))
                except FileNotFoundError:
                    continue
                removed += 1
        return removed
