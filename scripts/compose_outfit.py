import argparse
import os

from backend.app.config import settings
from backend.app.storage import Storage
from wardrobe.compositor import ImageCompositor, SlotTable
from wardrobe.fingerprint import items_cache_key
from wardrobe.io_types import EquippedItem


def parse_item(raw: str) -> EquippedItem:
    # item_id:slot[:name]
    parts = raw.split(":")
    if len(parts) < 2:
        raise argparse.ArgumentTypeError(f"expected item_id:slot[:name], got {raw!r}")
    item_id, slot = parts[0], parts[1]
    name = parts[2] if len(parts) > 2 else item_id
    return EquippedItem(item_id=item_id, slot=slot, image_url=f"/items/{item_id}.png", name=name)


def main():
    parser = argparse.ArgumentParser(description="Compose a bunny outfit from local item art")
    parser.add_argument("--base", default="bunny-base.png", help="Base bunny file under base-bunnies/")
    parser.add_argument("--item", action="append", type=parse_item, default=[], help="item_id:slot[:name], repeatable")
    parser.add_argument("--out", default=None, help="Output PNG path (defaults to composites/<key>.png)")
    args = parser.parse_args()

    key = items_cache_key(args.item, args.base)
    compositor = ImageCompositor(Storage.base_bunny_path(args.base), SlotTable.from_settings(settings), Storage.root)
    result = compositor.render(args.item)

    out = args.out or Storage.composite_path(key)
    Storage.write_bytes(out, result.data)
    print(f"Key: {key}")
    if result.skipped:
        print(f"Skipped: {', '.join(result.skipped)}")
    print(f"Saved: {os.path.abspath(out)}")


if __name__ == "__main__":
    main()
