"""File-based storage"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _default_base_dir() -> Path:
    override = os.environ.get("CTXWIN_DATA_DIR")
    if override:
        return Path(override)
    return Path.home() / ".local" / "share" / "ctxwin"


class Storage:
    BASE_DIR = _default_base_dir()

    @classmethod
    def _key_to_path(cls, key: list[str]) -> Path:
        return cls.BASE_DIR / f"{'/'.join(key)}.json"

    @classmethod
    def write(cls, key: list[str], data: Any):
        """Write data to storage, replacing the file atomically"""
        path = cls._key_to_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)

    @classmethod
    def read(cls, key: list[str]) -> Any | None:
        """Read data from storage"""
        path = cls._key_to_path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    @classmethod
    def delete(cls, key: list[str]):
        """Delete data from storage"""
        path = cls._key_to_path(key)
        if path.exists():
            path.unlink()

    @classmethod
    def list(cls, prefix: list[str]) -> list[list[str]]:
        """List all keys with given prefix"""
        dir_path = cls.BASE_DIR / "/".join(prefix) if prefix else cls.BASE_DIR
        if not dir_path.exists():
            return []

        keys = []
        for path in dir_path.rglob("*.json"):
            rel = path.relative_to(cls.BASE_DIR)
            keys.append(list(rel.with_suffix("").parts))
        return keys
