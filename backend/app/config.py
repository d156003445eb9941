import os
import yaml
from typing import Any


CONFIG_PATH = os.environ.get("WARDROBE_CONFIG", "configs/wardrobe.yaml")

_MISSING = object()
_TRUE = {"1", "true", "yes", "on"}


def _load_yaml(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _coerce(raw: str, like: Any) -> Any:
    """Cast an env string to the type of the YAML value it overrides."""
    if isinstance(like, bool):
        return raw.strip().lower() in _TRUE
    if isinstance(like, int):
        return int(raw)
    if isinstance(like, float):
        return float(raw)
    if isinstance(like, (dict, list)):
        # Structured values can be overridden with inline YAML/JSON
        return yaml.safe_load(raw)
    return raw


class Settings:
    """
    YAML file settings with environment overrides.
    A dot path ``a.b`` is overridden by env ``A_B``.
    """

    def __init__(self, path: str = CONFIG_PATH) -> None:
        self.path = path
        self._cfg = _load_yaml(path)

    def _lookup(self, key: str) -> Any:
        cur: Any = self._cfg
        for p in key.split("."):
            if not isinstance(cur, dict) or p not in cur:
                return _MISSING
            cur = cur[p]
        return cur

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        env_key = key.upper().replace(".", "_")
        if env_key in os.environ:
            like = default if value is _MISSING else value
            return _coerce(os.environ[env_key], like)
        return default if value is _MISSING else value

    def as_dict(self) -> dict[str, Any]:
        return dict(self._cfg)


settings = Settings()
