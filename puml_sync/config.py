# puml_sync/config.py
from __future__ import annotations

import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_CAPTION,
    DEFAULT_TOGGLE,
    EXCLUDED_DIRS,
    FENCE_LANGUAGES,
    GLOB_DEFAULT,
    OUTPUT_DIR_DEFAULT,
    OUTPUT_FORMAT,
    RENDERER_DEFAULT,
    RENDERER_TIMEOUT_DEFAULT,
    SOURCE_EXTENSION,
)
from .diagnostics import ConfigError
from .io import load_yaml_mapping


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one run. `output_dir` is always absolute."""

    root: Path
    output_dir: Path
    glob: str = GLOB_DEFAULT
    exclude_dirs: tuple[str, ...] = EXCLUDED_DIRS
    format: str = OUTPUT_FORMAT
    source_extension: str = SOURCE_EXTENSION
    languages: tuple[str, ...] = FENCE_LANGUAGES
    default_caption: str = DEFAULT_CAPTION
    default_toggle: str = DEFAULT_TOGGLE
    renderer: tuple[str, ...] = RENDERER_DEFAULT
    renderer_timeout: float = RENDERER_TIMEOUT_DEFAULT
    rewrite_all: bool = False

    @classmethod
    def defaults(cls, root: Path) -> "SyncConfig":
        root = root.resolve()
        return cls(root=root, output_dir=root / OUTPUT_DIR_DEFAULT)

    def renderer_argv(self) -> list[str]:
        return [arg.replace("{format}", self.format) for arg in self.renderer]


# YAML key -> expected python type(s).
_KEY_TYPES: dict[str, tuple[type, ...]] = {
    "output_dir": (str,),
    "glob": (str,),
    "exclude_dirs": (list,),
    "format": (str,),
    "source_extension": (str,),
    "languages": (list,),
    "default_caption": (str,),
    "default_toggle": (str,),
    "renderer": (list, str),
    "renderer_timeout": (int, float),
    "rewrite_all": (bool,),
}


def _coerce(key: str, value: Any, root: Path) -> Any:
    if key == "output_dir":
        path = Path(value).expanduser()
        return path if path.is_absolute() else root / path
    if key == "renderer":
        argv = shlex.split(value) if isinstance(value, str) else [str(v) for v in value]
        if not argv:
            raise ConfigError("renderer must not be empty")
        return tuple(argv)
    if key in ("exclude_dirs", "languages"):
        return tuple(str(v) for v in value)
    if key == "source_extension" and not value.startswith("."):
        return "." + value
    if key == "renderer_timeout":
        if value <= 0:
            raise ConfigError("renderer_timeout must be positive")
        return float(value)
    if key == "format":
        return value.lstrip(".").lower()
    return value


def apply_mapping(cfg: SyncConfig, data: dict[str, Any], *, origin: str = "config") -> SyncConfig:
    """Return `cfg` updated with the keys of `data`; unknown keys are an error."""
    changes: dict[str, Any] = {}
    for key, value in data.items():
        if key not in _KEY_TYPES:
            known = ", ".join(sorted(_KEY_TYPES))
            raise ConfigError(f"{origin}: unknown key {key!r} (known: {known})")
        # bool is an int subclass; keep `renderer_timeout: true` out.
        if not isinstance(value, _KEY_TYPES[key]) or (
            isinstance(value, bool) and bool not in _KEY_TYPES[key]
        ):
            raise ConfigError(
                f"{origin}: {key} must be {' or '.join(t.__name__ for t in _KEY_TYPES[key])}, "
                f"got {type(value).__name__}"
            )
        changes[key] = _coerce(key, value, cfg.root)
    return replace(cfg, **changes)


def load_config(
    root: Path,
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> SyncConfig:
    """Build the run configuration: defaults < YAML file < explicit overrides.

    Without `config_path`, `<root>/puml-sync.yaml` is used when present.
    Overrides whose value is None are ignored so argparse defaults can be
    passed straight through.
    """
    cfg = SyncConfig.defaults(root)

    path = config_path
    if path is None and (cfg.root / CONFIG_FILENAME).is_file():
        path = cfg.root / CONFIG_FILENAME
    if path is not None:
        try:
            data = load_yaml_mapping(path)
        except (OSError, ValueError, TypeError) as exc:
            raise ConfigError(str(exc)) from exc
        cfg = apply_mapping(cfg, data, origin=str(path))

    if overrides:
        present = {k: v for k, v in overrides.items() if v is not None}
        cfg = apply_mapping(cfg, present, origin="command line")
    return cfg
