from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field

from wardrobe.fingerprint import DEFAULT_BASE_BUNNY, DEFAULT_SCENE
from wardrobe.io_types import EquippedItem, GeneratedOutfit, SlotPosition


class EquippedItemModel(BaseModel):
    item_id: str
    slot: str
    image_url: str = ""
    name: str = ""

    def to_item(self) -> EquippedItem:
        return EquippedItem(item_id=self.item_id, slot=self.slot, image_url=self.image_url, name=self.name)


class OutfitRequest(BaseModel):
    items: list[EquippedItemModel] = Field(default_factory=list)
    base_bunny: str = DEFAULT_BASE_BUNNY
    scene: str = DEFAULT_SCENE

    def equipped(self) -> list[EquippedItem]:
        return [i.to_item() for i in self.items]


class CompositeRequest(OutfitRequest):
    force: bool = False


class GenerateOutfitRequest(OutfitRequest):
    force_regenerate: bool = False
    compose_scene: bool = True


class FingerprintResponse(BaseModel):
    key: str
    composite_key: str


class GenerateOutfitResponse(BaseModel):
    key: str
    cached: bool
    fallback: bool = False
    normal_url: str
    scene_normal_url: Optional[str] = None


class SlotPositionModel(BaseModel):
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)

    def to_position(self) -> SlotPosition:
        return SlotPosition(x=self.x, y=self.y, width=self.width, height=self.height)


class GeneratedOutfitModel(BaseModel):
    key: str
    normalUrl: str
    blinkUrl: Optional[str] = None
    sceneNormalUrl: Optional[str] = None
    sceneBlinkUrl: Optional[str] = None
    hasBlinkFrame: bool
    hasSceneComposition: bool
    hasSceneBlinkFrame: bool
    generatedAt: dt.datetime
    baseBunny: Optional[str] = None
    scene: Optional[str] = None
    equippedItems: list[str]
    metadata: dict[str, Any]

    @classmethod
    def from_record(cls, r: GeneratedOutfit) -> "GeneratedOutfitModel":
        return cls(
            key=r.key,
            normalUrl=r.normal_url,
            blinkUrl=r.blink_url,
            sceneNormalUrl=r.scene_normal_url,
            sceneBlinkUrl=r.scene_blink_url,
            hasBlinkFrame=r.has_blink_frame,
            hasSceneComposition=r.has_scene_composition,
            hasSceneBlinkFrame=r.has_scene_blink_frame,
            generatedAt=r.generated_at,
            baseBunny=r.base_bunny,
            scene=r.scene,
            equippedItems=r.equipped_items,
            metadata=r.metadata,
        )


class UploadResponse(BaseModel):
    success: bool = True
    imageUrl: str
    filename: str


class ItemImageRequest(BaseModel):
    name: str
    description: str
    slot: str = "accessory"


class ItemImageResponse(BaseModel):
    success: bool = True
    imageUrl: str
    cached: bool


class SceneGenerateRequest(BaseModel):
    scene_id: Optional[str] = None


class SceneModel(BaseModel):
    id: str
    name: str
    description: str
    background_image_url: str
    is_active: bool = True
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class SceneCreate(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    background_image_url: str = Field(min_length=1)


class SceneUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    background_image_url: Optional[str] = None
    is_active: Optional[bool] = None
