import os
import requests
from typing import Optional


class WardrobeClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8000", admin_key: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.admin_key = admin_key

    def fingerprint(self, items: list[dict], base_bunny: str = "bunny-base.png", scene: str = "meadow") -> dict:
        body = {"items": items, "base_bunny": base_bunny, "scene": scene}
        r = requests.post(f"{self.base_url}/v1/outfits/fingerprint", json=body, timeout=30)
        r.raise_for_status()
        return r.json()

    def composite(self, items: list[dict], base_bunny: str = "bunny-base.png", force: bool = False) -> bytes:
        body = {"items": items, "base_bunny": base_bunny, "force": force}
        r = requests.post(f"{self.base_url}/v1/outfits/composite", json=body, timeout=60)
        r.raise_for_status()
        return r.content

    def composite_to(self, items: list[dict], out_path: str, base_bunny: str = "bunny-base.png") -> str:
        data = self.composite(items, base_bunny=base_bunny)
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        with open(out_path, "wb") as f:
            f.write(data)
        return out_path

    def generate(self, items: list[dict], base_bunny: str = "bunny-base.png", scene: str = "meadow", force_regenerate: bool = False) -> dict:
        body = {"items": items, "base_bunny": base_bunny, "scene": scene, "force_regenerate": force_regenerate}
        # Generative renders can take a while upstream
        r = requests.post(f"{self.base_url}/v1/outfits/generate", json=body, timeout=180)
        r.raise_for_status()
        return r.json()

    def generated_outfits(self) -> list[dict]:
        r = requests.get(f"{self.base_url}/v1/generated-outfits", timeout=30)
        r.raise_for_status()
        return r.json()["outfits"]

    def slot_positions(self) -> dict:
        r = requests.get(f"{self.base_url}/v1/compositor/slots", timeout=30)
        r.raise_for_status()
        return r.json()

    def set_slot_position(self, slot: str, x: int, y: int, width: Optional[int] = None, height: Optional[int] = None) -> dict:
        body = {"x": x, "y": y, "width": width, "height": height}
        headers = {"x-admin-key": self.admin_key} if self.admin_key else {}
        r = requests.put(f"{self.base_url}/v1/compositor/slots/{slot}", json=body, headers=headers, timeout=30)
        r.raise_for_status()
        return r.json()

    def upload_item_image(self, item_id: str, image_path: str, content_type: str = "image/png") -> str:
        with open(image_path, "rb") as fh:
            files = {"file": (os.path.basename(image_path), fh, content_type)}
            r = requests.post(f"{self.base_url}/v1/items/{item_id}/image", files=files, timeout=60)
        r.raise_for_status()
        return r.json()["imageUrl"]
