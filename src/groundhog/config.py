"""Configuration loading.

Settings are merged in order: defaults, then the global
``$GROUNDHOG_HOME/config.json``, then the scope's ``.groundhog/config.json``.
"""

import json
import os
from pathlib import Path
from typing import Optional

HOME_ENV = "GROUNDHOG_HOME"

DEFAULT_CONFIG = {
    "workers": 4,
    "verify_blobs": True,
    "ignore": [],
}


def groundhog_home() -> Path:
    """Directory holding the registry and global config (~/.groundhog)."""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override)
    return Path.home() / ".groundhog"


def _read_json(path: Path) -> dict:
    try:
        raw = json.loads(Path(path).read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}")
    if not isinstance(raw, dict):
        raise ValueError(f"Config in {path} must be a JSON object")
    return raw


def load_global_config(home: Optional[Path] = None) -> dict:
    path = Path(home or groundhog_home()) / "config.json"
    if path.exists():
        return _read_json(path)
    return {}


def save_global_config(updates: dict, home: Optional[Path] = None) -> None:
    """Merge updates into the global config.json."""
    home = Path(home or groundhog_home())
    existing = load_global_config(home)
    existing.update(updates)
    home.mkdir(parents=True, exist_ok=True)
    (home / "config.json").write_text(json.dumps(existing, indent=2) + "\n")


def load_config(
    store_root: Optional[Path] = None,
    home: Optional[Path] = None,
    overrides: Optional[dict] = None,
) -> dict:
    """Merged settings for one scope, validated."""
    config = {**DEFAULT_CONFIG, **load_global_config(home)}

    if store_root is not None:
        scope_config = Path(store_root) / "config.json"
        if scope_config.exists():
            config.update(_read_json(scope_config))

    if overrides:
        config.update(overrides)

    workers = config["workers"]
    if not isinstance(workers, int) or workers < 1:
        raise ValueError(f"workers must be a positive integer, got {workers!r}")
    if not isinstance(config["ignore"], list):
        raise ValueError("ignore must be a list of names")

    return config
