import os
import tempfile

# Must be in place before backend.app.db builds its engine
_DB_DIR = tempfile.mkdtemp(prefix="wardrobe-test-db-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/wardrobe.sqlite3"
os.environ["CACHE_ENABLED"] = "0"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from PIL import Image

from wardrobe.io_types import EquippedItem


def save_png(path, size, color):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    Image.new("RGBA", size, color).save(path, format="PNG")
    return str(path)


@pytest.fixture
def public_dir(tmp_path):
    root = tmp_path / "public"
    for sub in ("items", "scenes", "base-bunnies", "generated-bunnies"):
        (root / sub).mkdir(parents=True)
    save_png(str(root / "base-bunnies" / "bunny-base.png"), (300, 350), (240, 240, 240, 255))
    save_png(str(root / "items" / "hat1.png"), (200, 200), (255, 0, 0, 255))
    save_png(str(root / "items" / "boots1.png"), (90, 50), (0, 0, 255, 255))
    return str(root)


@pytest.fixture
def hat():
    return EquippedItem(item_id="hat1", slot="head", image_url="/items/hat1.png", name="Red Hat")


@pytest.fixture
def boots():
    return EquippedItem(item_id="boots1", slot="feet", image_url="/items/boots1.png", name="Blue Boots")


@pytest.fixture
def make_png():
    return save_png
