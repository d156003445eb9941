from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional


SLOTS = ("head", "face", "upper_body", "lower_body", "feet", "accessory")


@dataclass
class EquippedItem:
    item_id: str
    slot: str
    image_url: str
    name: str

    @classmethod
    def from_dict(cls, data: dict) -> "EquippedItem":
        return cls(
            item_id=data["item_id"],
            slot=data.get("slot", ""),
            image_url=data.get("image_url", ""),
            name=data.get("name", ""),
        )


@dataclass
class SlotPosition:
    x: int
    y: int
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def has_size(self) -> bool:
        return bool(self.width and self.height)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"x": self.x, "y": self.y}
        if self.width is not None:
            d["width"] = self.width
        if self.height is not None:
            d["height"] = self.height
        return d


@dataclass
class GeneratedOutfit:
    key: str
    normal_url: str
    generated_at: dt.datetime
    blink_url: Optional[str] = None
    scene_normal_url: Optional[str] = None
    scene_blink_url: Optional[str] = None
    has_blink_frame: bool = False
    has_scene_composition: bool = False
    has_scene_blink_frame: bool = False
    base_bunny: Optional[str] = None
    scene: Optional[str] = None
    equipped_items: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"
    # True when the provider returned nothing usable and the base image was passed through
    fallback: bool = False
