from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from PIL import Image, ImageOps

from .io_types import EquippedItem, SlotPosition
from .paths import UnsupportedImageUrl, resolve_item_path


logger = logging.getLogger(__name__)

# Offsets are in base-bunny pixel space
DEFAULT_SLOT_POSITIONS: dict[str, SlotPosition] = {
    "head": SlotPosition(x=50, y=20, width=150, height=150),
    "face": SlotPosition(x=75, y=80, width=100, height=50),
    "upper_body": SlotPosition(x=60, y=150, width=130, height=100),
    "lower_body": SlotPosition(x=70, y=220, width=110, height=80),
    "feet": SlotPosition(x=80, y=280, width=90, height=50),
    "accessory": SlotPosition(x=20, y=100, width=60, height=60),
}

TRANSPARENT = (0, 0, 0, 0)


class DimensionsUnavailable(Exception):
    pass


@dataclass
class CompositeResult:
    data: bytes
    placed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _position_from_dict(raw: Mapping[str, Any]) -> SlotPosition:
    def opt(key: str) -> Optional[int]:
        v = raw.get(key)
        return int(v) if v is not None else None

    return SlotPosition(x=int(raw["x"]), y=int(raw["y"]), width=opt("width"), height=opt("height"))


class SlotTable:
    """
    Slot name -> rectangle lookup shared by compositors.
    Updates replace a whole rectangle under a lock so readers never see a half-written one.
    """

    def __init__(self, positions: Optional[Mapping[str, SlotPosition]] = None) -> None:
        source = DEFAULT_SLOT_POSITIONS if positions is None else positions
        self._positions: dict[str, SlotPosition] = {k: _copy(v) for k, v in source.items()}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "SlotTable":
        table = cls()
        overrides = settings.get("compositor.slots", None)
        if isinstance(overrides, dict):
            for slot, raw in overrides.items():
                try:
                    table.update(str(slot), _position_from_dict(raw))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Ignoring bad slot override for %s: %s", slot, e)
        return table

    def get(self, slot: str) -> Optional[SlotPosition]:
        with self._lock:
            pos = self._positions.get(slot)
            return _copy(pos) if pos else None

    def update(self, slot: str, position: SlotPosition) -> None:
        with self._lock:
            self._positions[slot] = _copy(position)

    def snapshot(self) -> dict[str, SlotPosition]:
        with self._lock:
            return {k: _copy(v) for k, v in self._positions.items()}


def _copy(pos: SlotPosition) -> SlotPosition:
    return SlotPosition(x=pos.x, y=pos.y, width=pos.width, height=pos.height)


class ImageCompositor:
    def __init__(self, base_image_path: str, slots: SlotTable, public_dir: str) -> None:
        self.base_image_path = base_image_path
        self.slots = slots
        self.public_dir = public_dir

    def _open_base(self) -> Image.Image:
        try:
            base = Image.open(self.base_image_path)
            base.load()
        except (OSError, ValueError) as e:
            raise DimensionsUnavailable(f"Could not read base bunny image dimensions: {self.base_image_path}") from e
        width, height = base.size
        if not width or not height:
            raise DimensionsUnavailable(f"Could not read base bunny image dimensions: {self.base_image_path}")
        return base.convert("RGBA")

    def _layer_for(self, item: EquippedItem, position: SlotPosition) -> Image.Image:
        path = resolve_item_path(self.public_dir, item.image_url)
        with Image.open(path) as im:
            layer = im.convert("RGBA")
        if position.has_size:
            # "contain" fit: keep aspect ratio, pad the rest with transparency
            layer = ImageOps.pad(layer, (position.width, position.height), method=Image.LANCZOS, color=TRANSPARENT)
        return layer

    def render(self, items: Iterable[EquippedItem]) -> CompositeResult:
        """
        Layer item images onto the base bunny.
        Items with an unknown slot or an unreadable image are left out; earlier items sit underneath later ones.
        """
        canvas = self._open_base()
        placed: list[str] = []
        skipped: list[str] = []
        for item in items:
            position = self.slots.get(item.slot)
            if position is None:
                logger.warning("No position defined for slot: %s", item.slot)
                skipped.append(item.item_id)
                continue
            try:
                layer = self._layer_for(item, position)
            except (OSError, ValueError, UnsupportedImageUrl) as e:
                logger.warning("Could not load item image: %s (%s)", item.image_url, e)
                skipped.append(item.item_id)
                continue
            canvas.alpha_composite(layer, dest=(position.x, position.y))
            placed.append(item.item_id)
            logger.debug("Added %s at (%d, %d)", item.name, position.x, position.y)

        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        logger.info("Composed bunny with %d items (%d skipped)", len(placed), len(skipped))
        return CompositeResult(data=buf.getvalue(), placed=placed, skipped=skipped)

    def composite(self, items: Iterable[EquippedItem]) -> bytes:
        return self.render(items).data
