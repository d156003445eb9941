from __future__ import annotations

from PIL import Image, ImageDraw
import os

from backend.app.storage import Storage


def ensure_dir(p: str) -> None:
    os.makedirs(p, exist_ok=True)


def create_base_bunny(path: str) -> None:
    w, h = 256, 340
    im = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    d = ImageDraw.Draw(im)
    fur = (245, 240, 232, 255)
    pink = (244, 170, 190, 255)
    # Ears, head, body
    d.ellipse((78, 0, 118, 120), fill=fur)
    d.ellipse((138, 0, 178, 120), fill=fur)
    d.ellipse((88, 15, 108, 105), fill=pink)
    d.ellipse((148, 15, 168, 105), fill=pink)
    d.ellipse((68, 70, 188, 190), fill=fur)
    d.ellipse((58, 160, 198, 330), fill=fur)
    d.ellipse((100, 115, 112, 127), fill=(20, 20, 20, 255))
    d.ellipse((144, 115, 156, 127), fill=(20, 20, 20, 255))
    d.polygon([(122, 140), (134, 140), (128, 148)], fill=pink)
    im.save(path)


def create_item_image(path: str, color: tuple[int, int, int, int], shape: str) -> None:
    w, h = 200, 200
    im = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    d = ImageDraw.Draw(im)
    if shape == "hat":
        d.rectangle((50, 40, 150, 140), fill=color)
        d.rectangle((20, 140, 180, 165), fill=color)
    elif shape == "boots":
        d.rectangle((20, 60, 80, 170), fill=color)
        d.rectangle((120, 60, 180, 170), fill=color)
    else:
        d.rectangle((30, 30, 170, 170), fill=color)
    im.save(path)


def create_scene_image(path: str) -> None:
    w, h = 512, 512
    im = Image.new("RGB", (w, h), (170, 215, 250))
    d = ImageDraw.Draw(im)
    d.rectangle((0, int(h * 0.55), w, h), fill=(110, 190, 90))
    d.ellipse((60, 50, 200, 110), fill=(255, 255, 255))
    im.save(path)


SAMPLE_ITEMS = {
    "hat1": ((200, 40, 40, 255), "hat"),
    "boots1": ((90, 60, 30, 255), "boots"),
    "shirt1": ((60, 120, 220, 255), "shirt"),
}


def main() -> None:
    Storage.ensure_dirs()
    targets = [(Storage.base_bunny_path("bunny-base.png"), create_base_bunny)]
    for item_id, (color, shape) in SAMPLE_ITEMS.items():
        targets.append(
            (os.path.join(Storage.items_dir(), f"{item_id}.png"), lambda p, c=color, s=shape: create_item_image(p, c, s))
        )
    targets.append((os.path.join(Storage.scenes_dir(), "meadow.png"), create_scene_image))

    for path, make in targets:
        if os.path.exists(path):
            print(f"Exists {path}")
            continue
        ensure_dir(os.path.dirname(path))
        make(path)
        print(f"Created {path}")


if __name__ == "__main__":
    main()
