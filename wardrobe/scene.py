from __future__ import annotations

import logging
import math
import os

import numpy as np
from PIL import Image, ImageDraw

from .generated import BLINK_FRAME, NORMAL_FRAME, SCENE_BLINK_FRAME, SCENE_NORMAL_FRAME


logger = logging.getLogger(__name__)

GREY_TOLERANCE = 30
BRIGHTNESS_MIN = 150
MAX_WIDTH_FRACTION = 0.4
MAX_HEIGHT_FRACTION = 0.5
VERTICAL_ANCHOR = 0.6


def remove_white_background(image: Image.Image) -> Image.Image:
    """
    Make the light grey/white backdrop around a generated bunny transparent.
    Only background-coloured pixels connected to the image border are cleared, so white fur stays.
    """
    rgba = image.convert("RGBA")
    arr = np.asarray(rgba).astype("int16")
    r, g, b = arr[..., 0], arr[..., 1], arr[..., 2]
    greyish = (np.abs(r - g) < GREY_TOLERANCE) & (np.abs(g - b) < GREY_TOLERANCE) & (np.abs(r - b) < GREY_TOLERANCE)
    bright = (r + g + b) / 3.0 >= BRIGHTNESS_MIN
    candidate = greyish & bright

    # Pad with a candidate border so one fill from the corner reaches every edge pixel
    h, w = candidate.shape
    mask = np.full((h + 2, w + 2), 255, dtype="uint8")
    mask[1:-1, 1:-1] = np.where(candidate, 255, 0).astype("uint8")
    fill = Image.fromarray(mask)
    ImageDraw.floodfill(fill, (0, 0), 128, thresh=0)
    background = np.asarray(fill)[1:-1, 1:-1] == 128

    out = arr.astype("uint8")
    out[..., 3] = np.where(background, 0, out[..., 3])
    logger.debug("Cleared %d/%d background pixels", int(background.sum()), h * w)
    return Image.fromarray(out)


def composite_onto_scene(bunny: Image.Image, scene: Image.Image) -> Image.Image:
    canvas = scene.convert("RGBA")
    sw, sh = canvas.size
    fg = bunny.convert("RGBA")
    bw, bh = fg.size

    max_size = min(sw * MAX_WIDTH_FRACTION, sh * MAX_HEIGHT_FRACTION)
    if bw > max_size or bh > max_size:
        scale = max_size / max(bw, bh)
        fg = fg.resize((max(1, math.floor(bw * scale)), max(1, math.floor(bh * scale))), Image.LANCZOS)
        logger.debug("Scaled bunny from %dx%d to %dx%d", bw, bh, fg.width, fg.height)

    x = (sw - fg.width) // 2
    y = max(0, math.floor(sh * VERTICAL_ANCHOR - fg.height / 2))
    canvas.alpha_composite(fg, dest=(x, y))
    return canvas


def _compose_frame(frame_path: str, scene: Image.Image, out_path: str) -> None:
    with Image.open(frame_path) as im:
        bunny = remove_white_background(im)
    composite_onto_scene(bunny, scene).save(out_path, format="PNG")


def create_scene_versions(folder: str, scene_image_path: str) -> bool:
    """Write scene_normal.png (and scene_blink.png when a blink frame exists) into ``folder``."""
    try:
        with Image.open(scene_image_path) as im:
            scene = im.convert("RGBA")
    except OSError as e:
        logger.error("Scene background not available: %s (%s)", scene_image_path, e)
        return False

    _compose_frame(os.path.join(folder, NORMAL_FRAME), scene, os.path.join(folder, SCENE_NORMAL_FRAME))
    blink = os.path.join(folder, BLINK_FRAME)
    if os.path.isfile(blink):
        _compose_frame(blink, scene, os.path.join(folder, SCENE_BLINK_FRAME))
    else:
        logger.info("Blink frame not found in %s, skipping scene blink", folder)
    return True


def clear_scene_versions(folder: str) -> None:
    for name in (SCENE_NORMAL_FRAME, SCENE_BLINK_FRAME):
        try:
            os.remove(os.path.join(folder, name))
        except FileNotFoundError:
            pass
