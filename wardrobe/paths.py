from __future__ import annotations

import os


ITEMS_URL_PREFIX = "/items/"


class UnsupportedImageUrl(Exception):
    pass


def resolve_item_path(public_dir: str, image_url: str) -> str:
    """Map an ``/items/<file>`` URL onto the public items folder."""
    if not image_url or not image_url.startswith(ITEMS_URL_PREFIX):
        raise UnsupportedImageUrl(f"Unsupported image URL format: {image_url!r}")
    items_dir = os.path.abspath(os.path.join(public_dir, "items"))
    path = os.path.abspath(os.path.join(public_dir, image_url.lstrip("/")))
    if path == items_dir or os.path.commonpath([items_dir, path]) != items_dir:
        raise UnsupportedImageUrl(f"Image URL escapes the items folder: {image_url!r}")
    return path
