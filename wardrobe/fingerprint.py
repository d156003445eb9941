from __future__ import annotations

from typing import Iterable

from .io_types import EquippedItem


DEFAULT_BASE_BUNNY = "bunny-base.png"
DEFAULT_SCENE = "meadow"
COMPOSITE_PREFIX = "bunny_gemini"


def sorted_item_ids(items: Iterable[EquippedItem]) -> str:
    """Comma-joined item ids in ascending order; the input is left untouched."""
    ordered = sorted(items, key=lambda item: item.item_id)
    return ",".join(item.item_id for item in ordered)


def base_name(base_bunny_file: str) -> str:
    if base_bunny_file.endswith(".png"):
        return base_bunny_file[: -len(".png")]
    return base_bunny_file


def _join(prefix: str, ids: str) -> str:
    return f"{prefix}_{ids}" if ids else prefix


def items_cache_key(items: Iterable[EquippedItem], base_bunny_file: str = DEFAULT_BASE_BUNNY) -> str:
    """Folder key for a bunny wearing ``items``: ``base[_ids]``."""
    return _join(base_name(base_bunny_file), sorted_item_ids(items))


def composite_cache_key(
    items: Iterable[EquippedItem],
    base_bunny_file: str = DEFAULT_BASE_BUNNY,
    scene_id: str = DEFAULT_SCENE,
) -> str:
    """Scene-qualified key: ``bunny_gemini_base_scene[_ids]``."""
    prefix = f"{COMPOSITE_PREFIX}_{base_name(base_bunny_file)}_{scene_id}"
    return _join(prefix, sorted_item_ids(items))
