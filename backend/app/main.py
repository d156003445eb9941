import io
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from fastapi.staticfiles import StaticFiles
from PIL import Image
from prometheus_client import make_asgi_app as make_prom_app

from providers.base import GeneratorNotConfigured, ImageGenerator
from providers.gemini_image import SCENE_DESCRIPTIONS, GeminiImageGenerator
from wardrobe.compositor import DimensionsUnavailable, ImageCompositor, SlotTable
from wardrobe.fingerprint import composite_cache_key, items_cache_key
from wardrobe.generated import (
    DEFAULT_URL_PREFIX,
    NORMAL_FRAME,
    SCENE_NORMAL_FRAME,
    GeneratedListingError,
    list_generated,
    read_metadata,
    set_metadata_scene,
    write_metadata,
)
from wardrobe.scene import clear_scene_versions, create_scene_versions
from .auth import require_admin
from .cache import cache_forget_outfit, cache_get_outfit, cache_set_outfit
from .config import settings
from .db import SceneExists, create_scene, deactivate_scene, get_scene, init_db, list_scenes, update_scene
from .logging_config import setup_logging
from .metrics import (
    composite_cache_hits,
    composites_rendered,
    generation_fallbacks,
    generations_requested,
    items_skipped,
    uploads,
)
from .models import (
    CompositeRequest,
    FingerprintResponse,
    GeneratedOutfitModel,
    GenerateOutfitRequest,
    GenerateOutfitResponse,
    ItemImageRequest,
    ItemImageResponse,
    OutfitRequest,
    SceneCreate,
    SceneGenerateRequest,
    SceneModel,
    SceneUpdate,
    SlotPositionModel,
    UploadResponse,
)
from .storage import InvalidName, Storage, safe_name
from .validators import enforce_max_upload_size, read_image_upload, upload_extension


logger = logging.getLogger(__name__)

GENERATED_URL_PREFIX = str(settings.get("generated.url_prefix", DEFAULT_URL_PREFIX))

app = FastAPI(title="Bunny Wardrobe API", version="0.1.0")

origins = os.environ.get("CORS_ORIGINS", "*")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/metrics", make_prom_app())

# One table for the whole process; compositors borrow it per request
SLOT_TABLE = SlotTable.from_settings(settings)

_generator: Optional[ImageGenerator] = None


def get_generator() -> ImageGenerator:
    global _generator
    if _generator is None:
        _generator = GeminiImageGenerator()
    return _generator


def _generated_url(key: str, filename: str) -> str:
    return f"{GENERATED_URL_PREFIX.rstrip('/')}/{key}/{filename}"


def _checked(fn, *args):
    try:
        return fn(*args)
    except InvalidName as e:
        raise HTTPException(status_code=400, detail=str(e))


def _as_png(data: bytes, mime_type: str) -> bytes:
    if mime_type == "image/png":
        return data
    buf = io.BytesIO()
    with Image.open(io.BytesIO(data)) as im:
        im.save(buf, format="PNG")
    return buf.getvalue()


def _scene_image_path(scene_id: str) -> str:
    background_url = None
    try:
        scene = get_scene(scene_id)
        if scene is not None:
            background_url = scene.background_image_url
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to load scene %s from database, using static file: %s", scene_id, e)
    return Storage.scene_image_path(scene_id, background_url)


@app.on_event("startup")
def _startup():
    setup_logging()
    Storage.ensure_dirs()
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/v1/outfits/fingerprint", response_model=FingerprintResponse)
def outfit_fingerprint(body: OutfitRequest):
    items = body.equipped()
    return FingerprintResponse(
        key=items_cache_key(items, body.base_bunny),
        composite_key=composite_cache_key(items, body.base_bunny, body.scene),
    )


@app.post("/v1/outfits/composite")
def composite_outfit(body: CompositeRequest):
    items = body.equipped()
    key = items_cache_key(items, body.base_bunny)
    base_path = _checked(Storage.base_bunny_path, body.base_bunny)
    cached_path = _checked(Storage.composite_path, key)
    if not body.force and os.path.isfile(cached_path):
        composite_cache_hits.inc()
        return FileResponse(cached_path, media_type="image/png", headers={"x-outfit-key": key, "x-cache": "hit"})

    try:
        result = ImageCompositor(base_path, SLOT_TABLE, Storage.root).render(items)
    except DimensionsUnavailable as e:
        logger.error("Error compositing bunny image: %s", e)
        raise HTTPException(status_code=500, detail="Failed to compose bunny image")
    composites_rendered.inc()
    items_skipped.inc(len(result.skipped))
    try:
        Storage.write_bytes(cached_path, result.data)
    except OSError as e:
        logger.warning("Could not cache composite %s: %s", key, e)
    headers = {"x-outfit-key": key, "x-cache": "miss"}
    if result.skipped:
        headers["x-skipped-items"] = ",".join(result.skipped)
    return Response(content=result.data, media_type="image/png", headers=headers)


def _compose_scene(folder: str, key: str, scene_id: str) -> Optional[str]:
    """Compose the folder's frames onto ``scene_id`` and record it; None when the scene is unavailable."""
    try:
        if not create_scene_versions(folder, _scene_image_path(scene_id)):
            return None
    except (OSError, InvalidName) as e:
        logger.warning("Scene composition failed for %s: %s", key, e)
        return None
    set_metadata_scene(folder, scene_id)
    return _generated_url(key, SCENE_NORMAL_FRAME)


def _invalidate_composites(reason: str) -> None:
    try:
        removed = Storage.clear_composites()
    except OSError as e:
        logger.warning("Could not clear composite cache (%s): %s", reason, e)
        return
    logger.info("Cleared %d cached composites: %s", removed, reason)


def _forget_scene_cache(items, base_bunny: str, scene_id: Any) -> None:
    if isinstance(scene_id, str):
        cache_forget_outfit(composite_cache_key(items, base_bunny, scene_id))


@app.post("/v1/outfits/generate", response_model=GenerateOutfitResponse)
def generate_outfit(body: GenerateOutfitRequest, generator: ImageGenerator = Depends(get_generator)):
    items = body.equipped()
    base_path = _checked(Storage.base_bunny_path, body.base_bunny)
    _checked(safe_name, body.scene)
    key = items_cache_key(items, body.base_bunny)
    if not items:
        if not os.path.isfile(base_path):
            raise HTTPException(status_code=404, detail="Base bunny not found")
        return GenerateOutfitResponse(key=key, cached=True, normal_url=f"/base-bunnies/{body.base_bunny}")

    cache_key = composite_cache_key(items, body.base_bunny, body.scene)
    folder = _checked(Storage.generated_folder, key)
    normal_path = os.path.join(folder, NORMAL_FRAME)
    scene_normal_path = os.path.join(folder, SCENE_NORMAL_FRAME)
    # Scene the existing scene frames were composed onto
    stored_scene = read_metadata(folder).get("scene")

    if body.force_regenerate:
        cache_forget_outfit(cache_key)
    else:
        hit = cache_get_outfit(cache_key)
        if hit and hit.get("normal_url") and (hit.get("scene_normal_url") or not body.compose_scene):
            return GenerateOutfitResponse(key=key, cached=True, normal_url=hit["normal_url"], scene_normal_url=hit.get("scene_normal_url"))
        if os.path.isfile(normal_path):
            scene_url = None
            if stored_scene == body.scene and os.path.isfile(scene_normal_path):
                scene_url = _generated_url(key, SCENE_NORMAL_FRAME)
            elif body.compose_scene:
                _forget_scene_cache(items, body.base_bunny, stored_scene)
                scene_url = _compose_scene(folder, key, body.scene)
            normal_url = _generated_url(key, NORMAL_FRAME)
            cache_set_outfit(cache_key, normal_url, scene_url)
            return GenerateOutfitResponse(key=key, cached=True, normal_url=normal_url, scene_normal_url=scene_url)

    if not os.path.isfile(base_path):
        raise HTTPException(status_code=404, detail="Base bunny not found")

    generations_requested.labels(kind="outfit").inc()
    try:
        image = generator.generate_outfit(base_path, items, Storage.root)
        data = _as_png(image.data, image.mime_type)
    except GeneratorNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception:  # noqa: BLE001
        logger.exception("Bunny generation failed for %s", key)
        raise HTTPException(status_code=500, detail="Failed to generate bunny image")
    if image.fallback:
        generation_fallbacks.inc()

    # Old scene frames show the previous render
    _forget_scene_cache(items, body.base_bunny, stored_scene)
    clear_scene_versions(folder)
    Storage.write_bytes(normal_path, data)
    write_metadata(folder, body.base_bunny, body.scene, items)

    scene_url = _compose_scene(folder, key, body.scene) if body.compose_scene else None
    normal_url = _generated_url(key, NORMAL_FRAME)
    cache_set_outfit(cache_key, normal_url, scene_url)
    return GenerateOutfitResponse(key=key, cached=False, fallback=image.fallback, normal_url=normal_url, scene_normal_url=scene_url)


@app.get("/v1/generated-outfits")
def generated_outfits():
    try:
        records = list_generated(Storage.generated_dir(), url_prefix=GENERATED_URL_PREFIX)
    except GeneratedListingError:
        logger.exception("Error loading generated outfits")
        raise HTTPException(status_code=500, detail="Failed to load generated outfits")
    return {"outfits": [GeneratedOutfitModel.from_record(r) for r in records]}


@app.get("/v1/compositor/slots")
def get_slot_positions():
    return {slot: pos.to_dict() for slot, pos in SLOT_TABLE.snapshot().items()}


@app.put("/v1/compositor/slots/{slot}", dependencies=[Depends(require_admin)])
def set_slot_position(slot: str, body: SlotPositionModel):
    SLOT_TABLE.update(slot, body.to_position())
    _invalidate_composites(f"slot {slot} moved")
    logger.info("Slot %s moved to %s", slot, body.model_dump())
    return {"ok": True, "slot": slot, "position": body.model_dump(exclude_none=True)}


@app.get("/v1/base-bunnies")
def base_bunnies():
    try:
        names = Storage.list_base_bunnies()
    except FileNotFoundError:
        return {"baseBunnies": [], "count": 0, "error": "Base bunnies directory not found"}
    except OSError:
        logger.exception("Error listing base bunnies")
        raise HTTPException(status_code=500, detail="Failed to list base bunnies")
    return {"baseBunnies": names, "count": len(names)}


@app.post("/v1/items/{item_id}/image", response_model=UploadResponse, dependencies=[Depends(enforce_max_upload_size)])
async def upload_item_image(item_id: str, file: UploadFile = File(...)):
    data = await read_image_upload(file)
    ext = upload_extension(file)
    try:
        url = Storage.save_item_image(item_id, data, ext)
    except InvalidName as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError:
        logger.exception("Upload error for item %s", item_id)
        raise HTTPException(status_code=500, detail="Failed to upload file")
    uploads.labels(kind="item").inc()
    _invalidate_composites(f"item {item_id} uploaded")
    return UploadResponse(imageUrl=url, filename=os.path.basename(url))


@app.post("/v1/items/{item_id}/generate-image", response_model=ItemImageResponse)
def generate_item_image(item_id: str, body: ItemImageRequest, generator: ImageGenerator = Depends(get_generator)):
    filename = _checked(safe_name, f"{item_id}.png")
    path = os.path.join(Storage.items_dir(), filename)
    if os.path.isfile(path):
        return ItemImageResponse(imageUrl=f"/items/{filename}", cached=True)

    generations_requested.labels(kind="item").inc()
    try:
        image = generator.generate_item_image(body.name, body.description, body.slot)
        if image is None:
            raise RuntimeError("no image returned")
        Storage.write_bytes(path, _as_png(image.data, image.mime_type))
    except GeneratorNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception:  # noqa: BLE001
        logger.exception("Item generation error for %s", item_id)
        raise HTTPException(status_code=500, detail="Failed to generate item image")
    _invalidate_composites(f"item {item_id} generated")
    return ItemImageResponse(imageUrl=f"/items/{filename}", cached=False)


@app.post("/v1/scenes/{scene_id}/image", response_model=UploadResponse, dependencies=[Depends(enforce_max_upload_size)])
async def upload_scene_image(scene_id: str, file: UploadFile = File(...)):
    data = await read_image_upload(file)
    ext = upload_extension(file)
    try:
        url = Storage.save_scene_image(scene_id, data, ext)
    except InvalidName as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError:
        logger.exception("Scene image upload error for %s", scene_id)
        raise HTTPException(status_code=500, detail="Failed to upload scene image")
    uploads.labels(kind="scene").inc()
    logger.info("Scene image uploaded: %s", url)
    return UploadResponse(imageUrl=url, filename=os.path.basename(url))


@app.post("/v1/scenes/generate")
def generate_scenes(body: SceneGenerateRequest, generator: ImageGenerator = Depends(get_generator)):
    scene_ids = [body.scene_id] if body.scene_id else list(SCENE_DESCRIPTIONS)
    results = []
    for scene_id in scene_ids:
        generations_requested.labels(kind="scene").inc()
        try:
            scene = get_scene(scene_id)
            image = generator.generate_scene_background(scene_id, scene.description if scene else None)
            if image is None:
                results.append({"scene": scene_id, "success": False, "error": "No image returned"})
                continue
            Storage.save_scene_image(scene_id, _as_png(image.data, image.mime_type), ".png")
            results.append({"scene": scene_id, "success": True})
        except GeneratorNotConfigured as e:
            raise HTTPException(status_code=503, detail=str(e))
        except Exception as e:  # noqa: BLE001
            logger.warning("Error generating scene %s: %s", scene_id, e)
            results.append({"scene": scene_id, "success": False, "error": str(e)})
    return {
        "success": True,
        "results": results,
        "generated": sum(1 for r in results if r["success"]),
        "total": len(scene_ids),
    }


@app.get("/v1/scenes", response_model=list[SceneModel])
def scenes_list():
    return [SceneModel.model_validate(s) for s in list_scenes()]


@app.post("/v1/scenes", response_model=SceneModel, status_code=201)
def scenes_create(body: SceneCreate):
    try:
        scene = create_scene(body.id, body.name, body.description, body.background_image_url)
    except SceneExists:
        raise HTTPException(status_code=409, detail="Scene already exists")
    return SceneModel.model_validate(scene)


@app.put("/v1/scenes/{scene_id}", response_model=SceneModel)
def scenes_update(scene_id: str, body: SceneUpdate):
    scene = update_scene(scene_id, **body.model_dump(exclude_none=True))
    if scene is None:
        raise HTTPException(status_code=404, detail="Scene not found")
    return SceneModel.model_validate(scene)


@app.delete("/v1/scenes/{scene_id}")
def scenes_delete(scene_id: str):
    if not deactivate_scene(scene_id):
        raise HTTPException(status_code=404, detail="Scene not found")
    return {"success": True}


# Public art last so API routes take precedence
for _prefix, _dir in (
    ("/items", Storage.items_dir()),
    ("/scenes", Storage.scenes_dir()),
    ("/base-bunnies", Storage.base_bunnies_dir()),
    (GENERATED_URL_PREFIX, Storage.generated_dir()),
):
    app.mount(_prefix, StaticFiles(directory=_dir, check_dir=False), name=_prefix.strip("/"))
