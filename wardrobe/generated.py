from __future__ import annotations

import datetime as dt
import json
import logging
import os
from typing import Any, Iterable, Optional

from .io_types import EquippedItem, GeneratedOutfit


logger = logging.getLogger(__name__)

DEFAULT_URL_PREFIX = "/generated-bunnies"

NORMAL_FRAME = "normal.png"
BLINK_FRAME = "blink.png"
SCENE_NORMAL_FRAME = "scene_normal.png"
SCENE_BLINK_FRAME = "scene_blink.png"
METADATA_FILE = "metadata.json"


class GeneratedListingError(Exception):
    pass


def _stat_file(path: str) -> Optional[os.stat_result]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st if os.path.isfile(path) else None


def read_metadata(folder: str) -> dict[str, Any]:
    path = os.path.join(folder, METADATA_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _item_names(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [e["name"] for e in raw if isinstance(e, dict) and isinstance(e.get("name"), str)]


def _str_or_none(v: Any) -> Optional[str]:
    return v if isinstance(v, str) else None


def read_folder(root_dir: str, key: str, url_prefix: str = DEFAULT_URL_PREFIX) -> Optional[GeneratedOutfit]:
    """Rebuild the record for one generated folder, or None when it has no normal frame."""
    folder = os.path.join(root_dir, key)
    normal = _stat_file(os.path.join(folder, NORMAL_FRAME))
    if normal is None:
        return None

    def url(name: str) -> str:
        return f"{url_prefix.rstrip('/')}/{key}/{name}"

    # Each optional frame is checked on its own
    present = {
        name: _stat_file(os.path.join(folder, name)) is not None
        for name in (BLINK_FRAME, SCENE_NORMAL_FRAME, SCENE_BLINK_FRAME)
    }
    meta = read_metadata(folder)
    return GeneratedOutfit(
        key=key,
        normal_url=url(NORMAL_FRAME),
        blink_url=url(BLINK_FRAME) if present[BLINK_FRAME] else None,
        scene_normal_url=url(SCENE_NORMAL_FRAME) if present[SCENE_NORMAL_FRAME] else None,
        scene_blink_url=url(SCENE_BLINK_FRAME) if present[SCENE_BLINK_FRAME] else None,
        has_blink_frame=present[BLINK_FRAME],
        has_scene_composition=present[SCENE_NORMAL_FRAME],
        has_scene_blink_frame=present[SCENE_BLINK_FRAME],
        generated_at=dt.datetime.fromtimestamp(normal.st_mtime, tz=dt.timezone.utc),
        base_bunny=_str_or_none(meta.get("baseBunny")),
        scene=_str_or_none(meta.get("scene")),
        equipped_items=_item_names(meta.get("equippedItems")),
        metadata=meta,
    )


def list_generated(root_dir: str, url_prefix: str = DEFAULT_URL_PREFIX) -> list[GeneratedOutfit]:
    """
    Scan ``root_dir`` for generated outfit folders, newest first.

    A missing root is an empty listing. Any other failure to list the root raises
    GeneratedListingError; problems inside a single folder only drop that folder.
    """
    try:
        with os.scandir(root_dir) as it:
            entries = list(it)
    except FileNotFoundError:
        return []
    except OSError as e:
        raise GeneratedListingError(f"Cannot list generated outfits in {root_dir}: {e}") from e

    records: list[GeneratedOutfit] = []
    for entry in entries:
        try:
            if not entry.is_dir():
                continue
            rec = read_folder(root_dir, entry.name, url_prefix=url_prefix)
        except OSError as e:
            logger.debug("Skipping generated folder %s: %s", entry.name, e)
            continue
        if rec is not None:
            records.append(rec)

    records.sort(key=lambda r: r.generated_at, reverse=True)
    return records


def write_metadata(folder: str, base_bunny: str, scene: Optional[str], items: Iterable[EquippedItem]) -> str:
    os.makedirs(folder, exist_ok=True)
    meta = {
        "baseBunny": base_bunny,
        "scene": scene,
        "equippedItems": [
            {"item_id": i.item_id, "name": i.name, "slot": i.slot, "image_url": i.image_url} for i in items
        ],
        "generatedAt": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
    path = os.path.join(folder, METADATA_FILE)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(meta, f, indent=2)
    return path


def set_metadata_scene(folder: str, scene: str) -> None:
    """Record which scene the folder's scene frames were composed onto."""
    meta = read_metadata(folder)
    meta["scene"] = scene
    with open(os.path.join(folder, METADATA_FILE), "w", encoding="utf-8") as f:
        json.dump(meta, f, indent=2)
