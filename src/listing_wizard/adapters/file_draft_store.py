"""Local JSON file draft store."""

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote

from listing_wizard.services.persistence import KeyValueStore

_SUFFIX = ".json"


@dataclass
class JsonFileKeyValueStore(KeyValueStore):
    """Stores each draft key in its own file so keys fail independently."""

    directory: Path

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        """Write a key atomically via a temporary file."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self, prefix: str) -> list[str]:
        if not self.directory.exists():
            return []
        found = []
        for path in self.directory.iterdir():
            if not path.name.endswith(_SUFFIX):
                continue
            key = unquote(path.name.removesuffix(_SUFFIX))
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{_SUFFIX}"
