from __future__ import annotations

from backend.app.db import init_db, upsert_scene
from providers.gemini_image import SCENE_DESCRIPTIONS


def main() -> None:
    init_db()
    for scene_id, description in SCENE_DESCRIPTIONS.items():
        upsert_scene(
            scene_id,
            name=scene_id.capitalize(),
            description=description,
            background_image_url=f"/scenes/{scene_id}.png",
        )
    print(f"Scenes initialized: {len(SCENE_DESCRIPTIONS)}")


if __name__ == "__main__":
    main()
