from __future__ import annotations

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any
import json
import os

import yaml

from chunkserve.errors import ConfigError
from chunkserve.pipeline.config import _expand_env


@dataclass(frozen=True)
class ServerConfig:
    host: str = "localhost"
    port: int = 9810
    entry_config_dir: str = "entry-config"
    inputs_root: str = "."
    compiler_command: list[str] = field(default_factory=lambda: ["google-closure-compiler"])
    max_concurrent_compiles: int = 2
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    closure_library_dir: str | None = None
    strict_lca: bool = False

    def __post_init__(self):
        if self.max_concurrent_compiles < 1:
            raise ConfigError("max_concurrent_compiles must be at least 1")
        if not self.compiler_command:
            raise ConfigError("compiler_command must not be empty")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/"


_ENV_FALLBACKS = {
    "host": "CHUNKSERVE_HOST",
    "port": "CHUNKSERVE_PORT",
    "entry_config_dir": "CHUNKSERVE_ENTRY_CONFIG_DIR",
    "inputs_root": "CHUNKSERVE_INPUTS_ROOT",
    "compiler_command": "CHUNKSERVE_COMPILER",
    "max_concurrent_compiles": "CHUNKSERVE_MAX_COMPILES",
    "closure_library_dir": "CHUNKSERVE_CLOSURE_LIBRARY",
}


def _coalesce(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _coalesce(merged[key], value)
        else:
            merged[key] = value
    return merged


def _from_env() -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, env_name in _ENV_FALLBACKS.items():
        value = os.getenv(env_name)
        if not value:
            continue
        if key in ("port", "max_concurrent_compiles"):
            value = int(value)
        elif key == "compiler_command":
            value = value.split()
        data[key] = value
    return data


def _from_dict(data: dict[str, Any]) -> ServerConfig:
    unknown = set(data) - set(ServerConfig.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"Unknown server config keys: {', '.join(sorted(unknown))}")
    command = data.get("compiler_command")
    if isinstance(command, str):
        data["compiler_command"] = command.split()
    try:
        data["port"] = int(data["port"])
        data["max_concurrent_compiles"] = int(data["max_concurrent_compiles"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric server config value: {e}") from e
    if not isinstance(data["strict_lca"], bool):
        raise ConfigError("strict_lca must be true or false")
    return ServerConfig(**data)


def load_server_config(path: str | Path | None = None) -> ServerConfig:
    """Load server config from YAML/JSON, falling back to CHUNKSERVE_* env vars."""
    data: dict[str, Any] = {}
    base_dir = Path.cwd()
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config not found: {path}")
        raw = path.read_text(encoding="utf-8")
        try:
            if path.suffix.lower() in {".json"}:
                data = json.loads(raw)
            else:
                data = yaml.safe_load(raw) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        base_dir = path.parent.resolve()

    defaults = asdict(ServerConfig())
    merged = _coalesce(_coalesce(defaults, _from_env()), _expand_env(data))
    for key in ("entry_config_dir", "inputs_root", "closure_library_dir"):
        if merged[key] is not None:
            merged[key] = str(resolve_path(merged[key], base_dir))
    return _from_dict(merged)


def resolve_path(value: str, base: Path | None = None) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    base = base or Path.cwd()
    return (base / path).resolve()
