#!/usr/bin/env python3
"""
Run configuration for transform_openapi.py.

Values come from three places, highest precedence first: command-line
arguments, an optional YAML config file, and the defaults below. A config
file looks like:

  input: ../api-spec.json
  output: ../public/api-spec.json
  on_collision: rename
  quiet: false

Relative paths in the file are resolved against the file's directory.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import yaml


ROOT = Path(__file__).resolve().parent.parent
DEFAULT_INPUT = ROOT / "api-spec.json"
DEFAULT_OUTPUT = ROOT / "public" / "api-spec.json"

COLLISION_POLICIES = ("error", "rename", "overwrite")

_CONFIG_KEYS = {"input", "output", "on_collision", "quiet"}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class TransformConfig:
    input_path: Path = DEFAULT_INPUT
    output_path: Path = DEFAULT_OUTPUT
    on_collision: str = "error"
    quiet: bool = False

    def __post_init__(self) -> None:
        if self.on_collision not in COLLISION_POLICIES:
            raise ConfigError(
                f"Invalid on_collision {self.on_collision!r} (expected one of {', '.join(COLLISION_POLICIES)})."
            )


def load_config(path: Path) -> TransformConfig:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping (got {type(raw).__name__}).")

    unknown = sorted(str(k) for k in raw if k not in _CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown key(s) in config file {path}: {', '.join(unknown)}")

    base_dir = path.resolve().parent
    values: dict[str, Any] = {}
    for key, field in (("input", "input_path"), ("output", "output_path")):
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value:
            raise ConfigError(f"Config key {key!r} must be a non-empty string.")
        values[field] = base_dir / value

    on_collision = raw.get("on_collision")
    if on_collision is not None:
        if not isinstance(on_collision, str):
            raise ConfigError("Config key 'on_collision' must be a string.")
        values["on_collision"] = on_collision

    quiet = raw.get("quiet")
    if quiet is not None:
        if not isinstance(quiet, bool):
            raise ConfigError("Config key 'quiet' must be true or false.")
        values["quiet"] = quiet

    return TransformConfig(**values)


def resolve_config(
    *,
    config_path: Optional[str] = None,
    input_path: Optional[str] = None,
    output_path: Optional[str] = None,
    on_collision: Optional[str] = None,
    quiet: bool = False,
) -> TransformConfig:
    config = load_config(Path(config_path)) if config_path else TransformConfig()

    overrides: dict[str, Any] = {}
    if input_path:
        overrides["input_path"] = Path(input_path)
    if output_path:
        overrides["output_path"] = Path(output_path)
    if on_collision:
        overrides["on_collision"] = on_collision
    if quiet:
        overrides["quiet"] = True
    return replace(config, **overrides) if overrides else config
