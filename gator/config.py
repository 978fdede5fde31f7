"""Reading and writing the per-user JSON configuration file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

CONFIG_FILE_NAME = ".gatorconfig.json"

_FIELDS = ("db_url", "current_user_name")
_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

PathLike = Union[str, Path]


@dataclass
class Config:
    """Database location and the name of the logged-in user."""

    db_url: str = ""
    current_user_name: str = ""
    path: Optional[Path] = field(default=None, compare=False, repr=False)

    def set_user(self, user_name: str) -> None:
        """Make ``user_name`` the current user and save the file."""
        self.current_user_name = user_name
        write(self)


def config_path() -> Path:
    """Return the location of the configuration file in the home directory."""
    return Path.home() / CONFIG_FILE_NAME


def _match_field(key: str) -> Optional[str]:
    if key in _FIELDS:
        return key
    folded = key.casefold()
    for name in _FIELDS:
        if name.casefold() == folded:
            return name
    return None


def _decode(text: str) -> dict[str, str]:
    decoder = json.JSONDecoder(object_pairs_hook=list)
    document, _ = decoder.raw_decode(text.lstrip())
    if document is None:
        return {}
    if not isinstance(document, list):
        raise ValueError(
            f"cannot unmarshal {type(document).__name__} into a configuration object"
        )
    values: dict[str, str] = {}
    for key, value in document:
        name = _match_field(key)
        if name is None or value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(
                f"cannot unmarshal {type(value).__name__} into field {name} of type string"
            )
        values[name] = value
    return values


def _encode(config: Config) -> str:
    payload: dict[str, Any] = {name: getattr(config, name) for name in _FIELDS}
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    for char, escape in _ESCAPES.items():
        text = text.replace(char, escape)
    return text + "\n"


def read(path: Optional[PathLike] = None) -> Config:
    """Load the configuration file; by default the one in the home directory."""
    location = Path(path) if path is not None else config_path()
    text = location.read_text(encoding="utf-8")
    return Config(**_decode(text), path=location)


def write(config: Config, path: Optional[PathLike] = None) -> None:
    """Save ``config`` as JSON, replacing whatever the file held."""
    if path is not None:
        location = Path(path)
    elif config.path is not None:
        location = config.path
    else:
        location = config_path()
    location.write_text(_encode(config), encoding="utf-8")