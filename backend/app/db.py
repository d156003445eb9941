from __future__ import annotations

import os
import datetime as dt
from typing import Optional

from sqlalchemy import (
    create_engine,
    Boolean,
    String,
    Text,
    DateTime,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, Session


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///storage/wardrobe.sqlite3")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SceneORM(Base):
    __tablename__ = "scenes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[str] = mapped_column(Text)
    background_image_url: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


engine = create_engine(DATABASE_URL, echo=False, future=True)


class SceneExists(Exception):
    pass


def init_db() -> None:
    # Ensure the folder exists for file-backed SQLite
    if DATABASE_URL.startswith("sqlite:///"):
        db_dir = os.path.dirname(DATABASE_URL[len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    Base.metadata.create_all(engine)


def list_scenes(include_inactive: bool = False) -> list[SceneORM]:
    with Session(engine, expire_on_commit=False) as s:
        q = select(SceneORM)
        if not include_inactive:
            q = q.where(SceneORM.is_active.is_(True))
        return list(s.scalars(q.order_by(SceneORM.created_at.asc(), SceneORM.id.asc())))


def get_scene(scene_id: str) -> Optional[SceneORM]:
    with Session(engine, expire_on_commit=False) as s:
        return s.get(SceneORM, scene_id)


def create_scene(scene_id: str, name: str, description: str, background_image_url: str) -> SceneORM:
    with Session(engine, expire_on_commit=False) as s:
        if s.get(SceneORM, scene_id) is not None:
            raise SceneExists(scene_id)
        obj = SceneORM(
            id=scene_id,
            name=name,
            description=description,
            background_image_url=background_image_url,
            is_active=True,
        )
        s.add(obj)
        s.commit()
        return obj


def update_scene(
    scene_id: str,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    background_image_url: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> Optional[SceneORM]:
    with Session(engine, expire_on_commit=False) as s:
        obj = s.get(SceneORM, scene_id)
        if not obj:
            return None
        if name is not None:
            obj.name = name
        if description is not None:
            obj.description = description
        if background_image_url is not None:
            obj.background_image_url = background_image_url
        if is_active is not None:
            obj.is_active = is_active
        obj.updated_at = _utcnow()
        s.add(obj)
        s.commit()
        return obj


def deactivate_scene(scene_id: str) -> bool:
    """Soft delete: the row stays, it just stops being listed."""
    return update_scene(scene_id, is_active=False) is not None


def upsert_scene(scene_id: str, name: str, description: str, background_image_url: str) -> None:
    with Session(engine) as s:
        obj = s.get(SceneORM, scene_id)
        if not obj:
            obj = SceneORM(id=scene_id, name=name, description=description, background_image_url=background_image_url)
        else:
            obj.name = name
            obj.description = description
            obj.background_image_url = background_image_url
            obj.is_active = True
        s.add(obj)
        s.commit()
