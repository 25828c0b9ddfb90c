"""JSON-backed key-value configuration document."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Union

from .errors import ConfigError


logger = logging.getLogger(__name__)

_PRIVATE_MODE = 0o600


def write_json_atomic(path: Path, payload: Mapping[str, Any], *, private: bool = False) -> None:
    """Replace ``path`` with ``payload`` without exposing a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(dict(payload), handle, indent=2)
        if private:
            os.chmod(tmp_path, _PRIVATE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class ConfigStore:
    def __init__(self, path: Union[str, Path], *, private: bool = True) -> None:
        self._path = Path(path)
        self._private = private

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Cannot parse {self._path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"{self._path} must contain a JSON object")
        return payload

    def save(self, config: Mapping[str, Any]) -> None:
        write_json_atomic(self._path, config, private=self._private)

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        config = self.load()
        config[key] = value
        self.save(config)

    def update(self, values: Mapping[str, Any]) -> None:
        config = self.load()
        config.update(values)
        self.save(config)

    def delete(self, *keys: str) -> None:
        config = self.load()
        removed = [key for key in keys if key in config]
        if removed:
            for key in removed:
                del config[key]
            logger.debug("Removed config keys: %s", ", ".join(removed))
            self.save(config)
