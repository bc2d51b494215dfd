"""Entry point configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import hashlib
import json
import os
import re

import yaml

from chunkserve.domain.chunk import Chunk
from chunkserve.errors import ConfigError


class PlovrMode(str, Enum):
    """Compilation modes accepted in entry configs."""

    RAW = "RAW"
    WHITESPACE = "WHITESPACE"
    SIMPLE = "SIMPLE"
    ADVANCED = "ADVANCED"


class WarningLevel(str, Enum):
    QUIET = "QUIET"
    DEFAULT = "DEFAULT"
    VERBOSE = "VERBOSE"


CHECK_VALUES = ("ERROR", "WARNING", "OFF")
ENTRY_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")


def _expand_env_var(value: str) -> str:
    """Expand environment variables in the form ${VAR:-default}.

    Args:
        value: String possibly containing ${VAR:-default}

    Returns:
        Expanded string with environment variable or default value
    """
    if not isinstance(value, str):
        return value

    # Match ${VAR:-default} or ${VAR-default}
    pattern = r"\$\{([^:}]+):-?([^}]*)\}"

    def replace_env(match):
        var_name = match.group(1)
        default_value = match.group(2)
        return os.environ.get(var_name, default_value)

    return re.sub(pattern, replace_env, value)


def _expand_env(value):
    """Recursively expand env vars in strings inside dicts/lists."""
    if isinstance(value, str):
        return _expand_env_var(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _resolve(path: str, base_dir: Path | None) -> str:
    if base_dir is None or os.path.isabs(path):
        return path
    return str((base_dir / path).resolve())


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key, [])
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f'"{key}" must be a string or a list of strings')
    return value


def _mapping(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f'"{key}" must be a mapping')
    return value


def _flag(data: dict, key: str) -> bool:
    """Read a boolean option; "true"/"false" strings come from env expansion."""
    value = data.get(key, False)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ConfigError(f'"{key}" must be true or false')


@dataclass(frozen=True)
class EntryConfig:
    """Configuration of one entry point (a page or a chunk set).

    Keys mirror the plovr-style hyphenated names used in entry config files
    (``language-in``, ``module-output-path`` ...). Either ``inputs`` (a single
    page) or ``modules`` (a chunk DAG) must be set.
    """

    id: str
    mode: PlovrMode = PlovrMode.SIMPLE
    paths: tuple[str, ...] = ()
    inputs: tuple[str, ...] | None = None
    modules: dict[str, Chunk] | None = None
    externs: tuple[str, ...] = ()
    define: dict[str, str | int | float | bool] = field(default_factory=dict)
    checks: dict[str, str] = field(default_factory=dict)
    language_in: str | None = None
    language_out: str | None = None
    level: WarningLevel | None = None
    debug: bool = False
    pretty_print: bool = False
    print_input_delimiter: bool = False
    output_wrapper: str | None = None
    global_scope_name: str | None = None
    module_output_path: str | None = None
    module_production_uri: str | None = None
    output_file: str | None = None
    test_excludes: tuple[str, ...] = ()
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_chunked(self) -> bool:
        return self.modules is not None

    def identity(self) -> str:
        """Stable hash of the effective configuration, used as a memo key."""
        encoded = json.dumps(self.raw, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(
        cls,
        data: dict,
        base_dir: Path | None = None,
        overrides: dict | None = None,
    ) -> "EntryConfig":
        """Create an entry config from a dictionary.

        Args:
            data: Parsed entry config file
            base_dir: Directory relative paths are resolved against
            overrides: Request-level overrides (currently only ``mode``)

        Returns:
            EntryConfig instance

        Raises:
            ConfigError: If the config is malformed
        """
        data = _expand_env(dict(data))
        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})

        entry_id = data.get("id")
        if not entry_id or not isinstance(entry_id, str):
            raise ConfigError('Entry config requires a string "id"')

        try:
            mode = PlovrMode(data.get("mode", PlovrMode.SIMPLE.value))
        except ValueError:
            raise ConfigError(f'Unknown mode "{data.get("mode")}" in entry "{entry_id}"')

        level = None
        if data.get("level") is not None:
            try:
                level = WarningLevel(data["level"])
            except ValueError:
                raise ConfigError(f'Unknown level "{data["level"]}" in entry "{entry_id}"')

        modules = None
        if data.get("modules") is not None:
            modules = cls._parse_modules(entry_id, data["modules"], base_dir)

        inputs = None
        if data.get("inputs") is not None:
            inputs = tuple(_resolve(p, base_dir) for p in _string_list(data, "inputs"))

        if modules is None and inputs is None:
            raise ConfigError(f'Entry "{entry_id}" must declare "inputs" or "modules"')

        checks = _mapping(data, "checks")
        for name, value in checks.items():
            if value not in CHECK_VALUES:
                raise ConfigError(f'Unexpected value: "{name}: {value}"')

        define = _mapping(data, "define")
        for key, value in define.items():
            if isinstance(value, str) and "'" in value:
                raise ConfigError(f'define value should not include single-quote: "{key}: {value}"')

        return cls(
            id=entry_id,
            mode=mode,
            paths=tuple(_resolve(p, base_dir) for p in _string_list(data, "paths")),
            inputs=inputs,
            modules=modules,
            externs=tuple(_resolve(p, base_dir) for p in _string_list(data, "externs")),
            define=dict(define),
            checks=dict(checks),
            language_in=data.get("language-in"),
            language_out=data.get("language-out"),
            level=level,
            debug=_flag(data, "debug"),
            pretty_print=_flag(data, "pretty-print"),
            print_input_delimiter=_flag(data, "print-input-delimiter"),
            output_wrapper=data.get("output-wrapper"),
            global_scope_name=data.get("global-scope-name"),
            module_output_path=data.get("module-output-path"),
            module_production_uri=data.get("module-production-uri"),
            output_file=data.get("output-file"),
            test_excludes=tuple(
                _resolve(p, base_dir) for p in _string_list(data, "test-excludes")
            ),
            raw=data,
        )

    @staticmethod
    def _parse_modules(entry_id: str, modules: dict, base_dir: Path | None) -> dict[str, Chunk]:
        if not isinstance(modules, dict) or not modules:
            raise ConfigError(f'"modules" of entry "{entry_id}" must be a non-empty mapping')
        chunks: dict[str, Chunk] = {}
        for chunk_id, decl in modules.items():
            if not isinstance(decl, dict):
                raise ConfigError(f'Chunk "{chunk_id}" must be a mapping with "inputs" and "deps"')
            inputs = _string_list(decl, "inputs")
            if not inputs:
                raise ConfigError(f'Chunk "{chunk_id}" must declare at least one input')
            chunks[chunk_id] = Chunk(
                id=chunk_id,
                inputs=tuple(_resolve(p, base_dir) for p in inputs),
                deps=tuple(_string_list(decl, "deps")),
            )
        return chunks


def find_entry_config_file(entry_id: str, config_dir: str | Path) -> Path:
    """Locate ``<config_dir>/<entry_id>.{json,yaml,yml}``."""
    if not re.fullmatch(r"[\w.-]+", entry_id) or entry_id.startswith("."):
        raise ConfigError(f'Invalid entry id "{entry_id}"')
    for suffix in ENTRY_CONFIG_SUFFIXES:
        candidate = Path(config_dir) / f"{entry_id}{suffix}"
        if candidate.exists():
            return candidate
    raise ConfigError(f'Entry config "{entry_id}" not found in {config_dir}')


def load_entry_config(
    entry_id: str,
    config_dir: str | Path,
    overrides: dict | None = None,
) -> EntryConfig:
    """Load an entry config by id.

    Relative paths inside the file are resolved against its directory.
    """
    path = find_entry_config_file(entry_id, config_dir)
    raw = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Entry config {path} must be a mapping")
    data.setdefault("id", entry_id)
    return EntryConfig.from_dict(data, base_dir=path.parent.resolve(), overrides=overrides)
