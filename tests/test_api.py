import io
import json
import os

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from backend.app import main
from backend.app.storage import Storage
from providers.base import GeneratorNotConfigured
from wardrobe.compositor import SlotTable
from wardrobe.io_types import GeneratedImage


def _png_bytes(size=(64, 64)):
    im = Image.new("RGB", size, (255, 255, 255))
    ImageDraw.Draw(im).rectangle((16, 16, 47, 47), fill=(120, 60, 30))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


class FakeGenerator:
    def __init__(self):
        self.outfit_calls = 0

    def generate_outfit(self, base_image_path, items, public_dir):
        self.outfit_calls += 1
        return GeneratedImage(data=_png_bytes())

    def generate_scene_background(self, scene_id, description=None):
        return GeneratedImage(data=_png_bytes((100, 100)))

    def generate_item_image(self, name, description, slot):
        return GeneratedImage(data=_png_bytes((32, 32)))


class UnconfiguredGenerator:
    def _fail(self, *args, **kwargs):
        raise GeneratorNotConfigured("Gemini API key not configured")

    generate_outfit = generate_scene_background = generate_item_image = _fail


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def client(public_dir, generator, monkeypatch):
    monkeypatch.setattr(Storage, "root", public_dir)
    monkeypatch.setattr(Storage, "generated_root", None)
    monkeypatch.setattr(main, "SLOT_TABLE", SlotTable())
    main.app.dependency_overrides[main.get_generator] = lambda: generator
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


def _item(item_id, slot):
    return {"item_id": item_id, "slot": slot, "image_url": f"/items/{item_id}.png", "name": item_id.title()}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_fingerprint(client):
    body = {"items": [_item("hat1", "head"), _item("boots1", "feet")], "scene": "beach"}
    r = client.post("/v1/outfits/fingerprint", json=body)
    assert r.status_code == 200
    assert r.json() == {"key": "bunny-base_boots1,hat1", "composite_key": "bunny_gemini_bunny-base_beach_boots1,hat1"}


def test_composite_renders_then_hits_disk_cache(client, public_dir):
    body = {"items": [_item("hat1", "head"), _item("wings", "back")]}
    r = client.post("/v1/outfits/composite", json=body)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.headers["x-cache"] == "miss"
    assert r.headers["x-outfit-key"] == "bunny-base_hat1,wings"
    assert r.headers["x-skipped-items"] == "wings"
    assert Image.open(io.BytesIO(r.content)).size == (300, 350)
    assert os.path.isfile(os.path.join(public_dir, "composites", "bunny-base_hat1,wings.png"))

    again = client.post("/v1/outfits/composite", json=body)
    assert again.headers["x-cache"] == "hit"
    assert again.content == r.content

    forced = client.post("/v1/outfits/composite", json={**body, "force": True})
    assert forced.headers["x-cache"] == "miss"


def test_composite_with_missing_base_fails(client):
    r = client.post("/v1/outfits/composite", json={"items": [], "base_bunny": "nobody.png"})
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to compose bunny image"


def test_composite_rejects_path_like_base(client):
    r = client.post("/v1/outfits/composite", json={"items": [], "base_bunny": "../secret.png"})
    assert r.status_code == 400


def test_generate_without_items_returns_base(client, generator):
    r = client.post("/v1/outfits/generate", json={"items": []})
    assert r.status_code == 200
    assert r.json()["normal_url"] == "/base-bunnies/bunny-base.png"
    assert r.json()["cached"] is True
    assert generator.outfit_calls == 0


def test_generate_writes_folder_and_reuses_it(client, generator, public_dir, make_png):
    make_png(os.path.join(public_dir, "scenes", "meadow.png"), (200, 200), (0, 0, 255, 255))
    body = {"items": [_item("hat1", "head")], "scene": "meadow"}
    r = client.post("/v1/outfits/generate", json=body)
    assert r.status_code == 200
    data = r.json()
    assert data["key"] == "bunny-base_hat1"
    assert data["cached"] is False
    assert data["normal_url"] == "/generated-bunnies/bunny-base_hat1/normal.png"
    assert data["scene_normal_url"] == "/generated-bunnies/bunny-base_hat1/scene_normal.png"

    folder = os.path.join(public_dir, "generated-bunnies", "bunny-base_hat1")
    assert os.path.isfile(os.path.join(folder, "normal.png"))
    assert os.path.isfile(os.path.join(folder, "scene_normal.png"))
    with open(os.path.join(folder, "metadata.json")) as f:
        meta = json.load(f)
    assert meta["baseBunny"] == "bunny-base.png"
    assert [i["name"] for i in meta["equippedItems"]] == ["Hat1"]

    again = client.post("/v1/outfits/generate", json=body)
    assert again.json()["cached"] is True
    assert generator.outfit_calls == 1

    client.post("/v1/outfits/generate", json={**body, "force_regenerate": True})
    assert generator.outfit_calls == 2


def test_generate_without_scene_background_still_succeeds(client):
    r = client.post("/v1/outfits/generate", json={"items": [_item("hat1", "head")], "scene": "volcano"})
    assert r.status_code == 200
    assert r.json()["scene_normal_url"] is None


def test_generate_unconfigured_is_503(client):
    main.app.dependency_overrides[main.get_generator] = lambda: UnconfiguredGenerator()
    r = client.post("/v1/outfits/generate", json={"items": [_item("hat1", "head")]})
    assert r.status_code == 503


def test_generated_outfits_listing(client, public_dir):
    assert client.get("/v1/generated-outfits").json() == {"outfits": []}
    client.post("/v1/outfits/generate", json={"items": [_item("boots1", "feet")], "compose_scene": False})
    outfits = client.get("/v1/generated-outfits").json()["outfits"]
    assert len(outfits) == 1
    rec = outfits[0]
    assert rec["key"] == "bunny-base_boots1"
    assert rec["normalUrl"] == "/generated-bunnies/bunny-base_boots1/normal.png"
    assert rec["hasBlinkFrame"] is False
    assert rec["hasSceneComposition"] is False
    assert rec["equippedItems"] == ["Boots1"]
    assert rec["baseBunny"] == "bunny-base.png"


def test_generated_outfits_missing_root_is_empty(client, tmp_path, monkeypatch):
    monkeypatch.setattr(Storage, "generated_root", str(tmp_path / "absent"))
    assert client.get("/v1/generated-outfits").json() == {"outfits": []}


def test_generated_outfits_unreadable_root_is_500(client, tmp_path, monkeypatch):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")
    monkeypatch.setattr(Storage, "generated_root", str(not_a_dir))
    r = client.get("/v1/generated-outfits")
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to load generated outfits"


def test_slot_positions_read_and_update(client, monkeypatch):
    slots = client.get("/v1/compositor/slots").json()
    assert slots["head"] == {"x": 50, "y": 20, "width": 150, "height": 150}

    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    assert client.put("/v1/compositor/slots/head", json={"x": 1, "y": 2}).status_code == 401
    monkeypatch.setenv("ADMIN_API_KEY", "secret")
    r = client.put("/v1/compositor/slots/head", json={"x": 1, "y": 2}, headers={"x-admin-key": "secret"})
    assert r.status_code == 200
    assert client.get("/v1/compositor/slots").json()["head"] == {"x": 1, "y": 2}

    bad = client.put("/v1/compositor/slots/head", json={"x": -1, "y": 2}, headers={"x-admin-key": "secret"})
    assert bad.status_code == 422


def test_base_bunnies(client, public_dir, monkeypatch):
    assert client.get("/v1/base-bunnies").json() == {"baseBunnies": ["bunny-base.png"], "count": 1}
    monkeypatch.setattr(Storage, "root", os.path.join(public_dir, "nowhere"))
    body = client.get("/v1/base-bunnies").json()
    assert body["count"] == 0 and "error" in body


def test_upload_item_image(client, public_dir):
    r = client.post("/v1/items/newhat/image", files={"file": ("hat.png", _png_bytes(), "image/png")})
    assert r.status_code == 200
    assert r.json() == {"success": True, "imageUrl": "/items/newhat.png", "filename": "newhat.png"}
    assert os.path.isfile(os.path.join(public_dir, "items", "newhat.png"))

    bad = client.post("/v1/items/newhat/image", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert bad.status_code == 400


def test_upload_scene_image(client, public_dir):
    r = client.post("/v1/scenes/forest/image", files={"file": ("forest.jpg", _png_bytes(), "image/jpeg")})
    assert r.status_code == 200
    assert r.json()["imageUrl"] == "/scenes/forest.jpg"
    assert os.path.isfile(os.path.join(public_dir, "scenes", "forest.jpg"))


def test_generate_item_image(client, public_dir):
    existing = client.post("/v1/items/hat1/generate-image", json={"name": "Hat", "description": "A red hat"})
    assert existing.json() == {"success": True, "imageUrl": "/items/hat1.png", "cached": True}

    fresh = client.post("/v1/items/scarf1/generate-image", json={"name": "Scarf", "description": "A scarf", "slot": "upper_body"})
    assert fresh.json()["cached"] is False
    assert os.path.isfile(os.path.join(public_dir, "items", "scarf1.png"))


def test_generate_scene_backgrounds(client, public_dir):
    r = client.post("/v1/scenes/generate", json={"scene_id": "beach"})
    assert r.status_code == 200
    body = r.json()
    assert body["generated"] == 1 and body["total"] == 1
    assert body["results"] == [{"scene": "beach", "success": True}]
    assert os.path.isfile(os.path.join(public_dir, "scenes", "beach.png"))


def test_scene_catalogue_crud(client):
    scene = {"id": "crud-lake", "name": "Lake", "description": "A calm lake", "background_image_url": "/scenes/lake.png"}
    created = client.post("/v1/scenes", json=scene)
    assert created.status_code == 201
    assert created.json()["is_active"] is True
    assert client.post("/v1/scenes", json=scene).status_code == 409

    updated = client.put("/v1/scenes/crud-lake", json={"name": "Misty Lake"})
    assert updated.json()["name"] == "Misty Lake"
    assert updated.json()["description"] == "A calm lake"
    assert "crud-lake" in [s["id"] for s in client.get("/v1/scenes").json()]

    assert client.delete("/v1/scenes/crud-lake").json() == {"success": True}
    assert "crud-lake" not in [s["id"] for s in client.get("/v1/scenes").json()]
    assert client.put("/v1/scenes/nope", json={"name": "x"}).status_code == 404
    assert client.delete("/v1/scenes/nope").status_code == 404


def _served(public_dir, url):
    rel = url[len("/generated-bunnies/"):]
    with Image.open(os.path.join(public_dir, "generated-bunnies", rel)) as im:
        return im.convert("RGBA").getpixel((0, 0))


def test_generate_recomposes_when_scene_changes(client, generator, public_dir, make_png):
    make_png(os.path.join(public_dir, "scenes", "meadow.png"), (200, 200), (0, 255, 0, 255))
    make_png(os.path.join(public_dir, "scenes", "beach.png"), (200, 200), (255, 255, 0, 255))
    items = [_item("hat1", "head")]

    first = client.post("/v1/outfits/generate", json={"items": items, "scene": "meadow"}).json()
    assert _served(public_dir, first["scene_normal_url"]) == (0, 255, 0, 255)

    second = client.post("/v1/outfits/generate", json={"items": items, "scene": "beach"}).json()
    assert second["cached"] is True
    assert _served(public_dir, second["scene_normal_url"]) == (255, 255, 0, 255)

    third = client.post("/v1/outfits/generate", json={"items": items, "scene": "meadow"}).json()
    assert _served(public_dir, third["scene_normal_url"]) == (0, 255, 0, 255)
    assert generator.outfit_calls == 1

    listed = client.get("/v1/generated-outfits").json()["outfits"][0]
    assert listed["scene"] == "meadow"


def test_generate_rejects_bad_scene_before_writing(client, generator, public_dir):
    r = client.post("/v1/outfits/generate", json={"items": [_item("hat1", "head")], "scene": "../x"})
    assert r.status_code == 400
    assert generator.outfit_calls == 0
    assert not os.path.exists(os.path.join(public_dir, "generated-bunnies", "bunny-base_hat1"))


def test_generate_without_items_needs_existing_base(client):
    r = client.post("/v1/outfits/generate", json={"items": [], "base_bunny": "nobody.png"})
    assert r.status_code == 404


def test_slot_update_clears_cached_composites(client, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "secret")
    body = {"items": [_item("hat1", "head")]}
    assert client.post("/v1/outfits/composite", json=body).headers["x-cache"] == "miss"
    assert client.post("/v1/outfits/composite", json=body).headers["x-cache"] == "hit"

    moved = client.put("/v1/compositor/slots/head", json={"x": 0, "y": 0, "width": 10, "height": 10}, headers={"x-admin-key": "secret"})
    assert moved.status_code == 200

    r = client.post("/v1/outfits/composite", json=body)
    assert r.headers["x-cache"] == "miss"
    out = Image.open(io.BytesIO(r.content)).convert("RGBA")
    assert out.getpixel((5, 5)) == (255, 0, 0, 255)
    assert out.getpixel((100, 100)) == (240, 240, 240, 255)


def test_item_upload_clears_cached_composites(client):
    body = {"items": [_item("hat1", "head")]}
    client.post("/v1/outfits/composite", json=body)

    buf = io.BytesIO()
    Image.new("RGBA", (150, 150), (0, 0, 255, 255)).save(buf, format="PNG")
    up = client.post("/v1/items/hat1/image", files={"file": ("hat1.png", buf.getvalue(), "image/png")})
    assert up.status_code == 200

    r = client.post("/v1/outfits/composite", json=body)
    assert r.headers["x-cache"] == "miss"
    assert Image.open(io.BytesIO(r.content)).convert("RGBA").getpixel((100, 90)) == (0, 0, 255, 255)
