"""Closure Compiler options derived from an entry config."""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Callable

from chunkserve.domain.chunk import PlacementResult
from chunkserve.errors import ConfigError
from chunkserve.pipeline.config import EntryConfig, PlovrMode

logger = logging.getLogger(__name__)

COMPILATION_LEVELS = ("BUNDLE", "WHITESPACE", "SIMPLE", "ADVANCED")
DEPENDENCY_MODES = ("NONE", "SORT_ONLY", "PRUNE_LEGACY", "PRUNE")
WARNING_LEVELS = ("QUIET", "DEFAULT", "VERBOSE")
JSON_STREAMS = ("IN", "OUT", "BOTH")
FORMATTING = ("PRETTY_PRINT", "PRINT_INPUT_DELIMITER", "SINGLE_QUOTES")

# Used for rename_prefix_namespace when global-scope-name is set (plovr compatible).
GLOBAL_NAMESPACE = "z"
WRAPPER_MARKER = "%output%"
SUFFIX = "%s.js"
FLAGFILE_THRESHOLD = 100


@dataclass(frozen=True)
class CompilerOptions:
    """Every compiler flag chunkserve knows how to set.

    Tuple-valued options repeat the flag once per value; ``None`` and empty
    tuples are omitted from the command line.
    """

    compilation_level: str = "SIMPLE"
    dependency_mode: str | None = None
    language_in: str | None = None
    language_out: str | None = None
    warning_level: str | None = None
    debug: bool = False
    json_streams: str | None = None
    js: tuple[str, ...] = ()
    entry_point: tuple[str, ...] = ()
    externs: tuple[str, ...] = ()
    chunk: tuple[str, ...] = ()
    chunk_wrapper: tuple[str, ...] = ()
    output_wrapper: str | None = None
    rename_prefix_namespace: str | None = None
    formatting: tuple[str, ...] = ()
    define: tuple[str, ...] = ()
    jscomp_error: tuple[str, ...] = ()
    jscomp_warning: tuple[str, ...] = ()
    jscomp_off: tuple[str, ...] = ()

    def __post_init__(self):
        _check_choice("compilation_level", self.compilation_level, COMPILATION_LEVELS)
        _check_choice("dependency_mode", self.dependency_mode, DEPENDENCY_MODES)
        _check_choice("warning_level", self.warning_level, WARNING_LEVELS)
        _check_choice("json_streams", self.json_streams, JSON_STREAMS)
        for value in self.formatting:
            _check_choice("formatting", value, FORMATTING)

    def items(self) -> list[tuple[str, str]]:
        """Flag name/value pairs in declaration order."""
        pairs: list[tuple[str, str]] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == () or value is False:
                continue
            if isinstance(value, tuple):
                pairs.extend((f.name, v) for v in value)
            elif value is True:
                pairs.append((f.name, "true"))
            else:
                pairs.append((f.name, str(value)))
        return pairs

    def to_args(self) -> list[str]:
        args: list[str] = []
        for key, value in self.items():
            args.extend([f"--{key}", value])
        return args


def _check_choice(name: str, value: str | None, choices: tuple[str, ...]) -> None:
    if value is not None and value not in choices:
        raise ConfigError(f'Invalid {name} "{value}", expected one of {", ".join(choices)}')


def _compilation_level(entry: EntryConfig) -> str:
    if entry.mode == PlovrMode.RAW:
        return "WHITESPACE"
    return entry.mode.value


def _define_flags(entry: EntryConfig) -> tuple[str, ...]:
    flags = []
    for key, value in entry.define.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, str):
            value = f"'{value}'"
        flags.append(f"{key}={value}")
    return tuple(flags)


def _check_flags(entry: EntryConfig, state: str) -> tuple[str, ...]:
    return tuple(name for name, value in entry.checks.items() if value == state)


def _formatting(entry: EntryConfig) -> tuple[str, ...]:
    formatting = []
    if entry.pretty_print:
        formatting.append("PRETTY_PRINT")
    if entry.print_input_delimiter:
        formatting.append("PRINT_INPUT_DELIMITER")
    return tuple(formatting)


def create_base_options(entry: EntryConfig) -> dict:
    """Options shared by page and chunk compiles, as constructor kwargs."""
    return {
        "compilation_level": _compilation_level(entry),
        "json_streams": "OUT",
        "language_in": entry.language_in,
        "language_out": entry.language_out,
        "warning_level": entry.level.value if entry.level else None,
        "debug": entry.debug,
        "rename_prefix_namespace": GLOBAL_NAMESPACE if entry.global_scope_name else None,
        "externs": entry.externs,
        "formatting": _formatting(entry),
        "define": _define_flags(entry),
        "jscomp_error": _check_flags(entry, "ERROR"),
        "jscomp_warning": _check_flags(entry, "WARNING"),
        "jscomp_off": _check_flags(entry, "OFF"),
    }


def create_base_output_wrapper(entry: EntryConfig, level: str, is_root: bool) -> str:
    """Wrapper text containing the %output% marker; may contain newlines."""
    wrapper = entry.output_wrapper or WRAPPER_MARKER
    if entry.global_scope_name and level != "WHITESPACE":
        scope = entry.global_scope_name
        lines = []
        if is_root:
            lines.append(f"var {scope}={{}};")
        lines.extend([
            f"(function({GLOBAL_NAMESPACE}){{",
            WRAPPER_MARKER,
            f"}}).call(this,{scope});",
        ])
        wrapper = wrapper.replace(WRAPPER_MARKER, "\n".join(lines))
    return wrapper


def create_options_for_page(entry: EntryConfig) -> CompilerOptions:
    """Options compiling a single-page entry in PRUNE mode."""
    if entry.inputs is None:
        raise ConfigError(f'Entry "{entry.id}" has no "inputs"')
    opts = create_base_options(entry)
    opts["dependency_mode"] = "PRUNE"
    opts["js"] = entry.paths + tuple(f"!{extern}" for extern in entry.externs)
    opts["entry_point"] = entry.inputs
    # output_wrapper doesn't support "%n%"
    wrapper = create_base_output_wrapper(entry, opts["compilation_level"], True).replace("\n", "")
    if wrapper != WRAPPER_MARKER:
        opts["output_wrapper"] = wrapper
    return CompilerOptions(**opts)


def convert_module_infos(
    entry: EntryConfig,
    create_module_uris: Callable[[str], list[str]],
) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
    """Build the ``moduleInfo`` and ``moduleUris`` manifest maps."""
    if entry.modules is None:
        raise ConfigError(f'Entry "{entry.id}" has no "modules"')
    module_info = {chunk_id: list(chunk.deps) for chunk_id, chunk in entry.modules.items()}
    module_uris = {chunk_id: create_module_uris(chunk_id) for chunk_id in entry.modules}
    return module_info, module_uris


def create_chunk_wrappers(
    entry: EntryConfig,
    sorted_ids: tuple[str, ...],
    level: str,
    create_module_uris: Callable[[str], list[str]],
) -> tuple[str, ...]:
    """One ``id:wrapper`` per chunk; the root wrapper carries the manifest."""
    module_info, module_uris = convert_module_infos(entry, create_module_uris)
    wrappers = []
    for index, chunk_id in enumerate(sorted_ids):
        is_root = index == 0
        wrapper = create_base_output_wrapper(entry, level, is_root)
        if is_root:
            header = [
                f"var PLOVR_MODULE_INFO={json.dumps(module_info, separators=(',', ':'))};",
                f"var PLOVR_MODULE_URIS={json.dumps(module_uris, separators=(',', ':'))};",
            ]
            if entry.debug:
                header.append("var PLOVR_MODULE_USE_DEBUG_MODE=true;")
            wrapper = "\n".join(header + [wrapper])
        # chunk_wrapper supports "%n%"
        wrappers.append(f"{chunk_id}:{wrapper.replace(chr(10), '%n%')}")
    return tuple(wrappers)


def create_options_for_chunks(
    entry: EntryConfig,
    placement: PlacementResult,
    create_module_uris: Callable[[str], list[str]],
) -> CompilerOptions:
    """Options compiling every chunk of ``placement`` in one invocation."""
    if entry.modules is None:
        raise ConfigError(f'Entry "{entry.id}" has no "modules"')
    opts = create_base_options(entry)
    opts["dependency_mode"] = "NONE"
    opts["js"] = tuple(placement.files())
    opts["chunk"] = tuple(
        f"{chunk_id}:{len(placement.chunks[chunk_id])}:{','.join(entry.modules[chunk_id].deps)}"
        for chunk_id in placement.sorted_ids
    )
    opts["chunk_wrapper"] = create_chunk_wrappers(
        entry, placement.sorted_ids, opts["compilation_level"], create_module_uris
    )
    return CompilerOptions(**opts)


def chunk_output_paths(entry: EntryConfig, sorted_ids: tuple[str, ...]) -> dict[str, str]:
    """Files the ``build`` command writes, from ``module-output-path``."""
    output_path = entry.module_output_path
    if not output_path:
        raise ConfigError('entryConfig["module-output-path"] must be specified')
    if not output_path.endswith(SUFFIX):
        raise ConfigError(
            f'"module-output-path" must end with "{SUFFIX}", but actual "{output_path}"'
        )
    prefix = output_path[: -len(SUFFIX)]
    return {chunk_id: f"{prefix}{chunk_id}.js" for chunk_id in sorted_ids}


def with_json_output(options: CompilerOptions) -> CompilerOptions:
    return replace(options, json_streams="OUT")


def _escape(value: str) -> str:
    # Flagfiles only honor escaped double quotes.
    return value.replace('"', '\\"')


def write_flagfile(options: CompilerOptions, directory: str | None = None) -> str:
    """Write options to a flagfile to stay under the OS argument size limit."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    with tempfile.NamedTemporaryFile(
        "w",
        prefix=f"{stamp}.",
        suffix=".closure.conf",
        dir=directory,
        delete=False,
        encoding="utf-8",
    ) as f:
        f.write("\n".join(f'--{key} "{_escape(value)}"' for key, value in options.items()))
        path = f.name
    logger.info(f"flagfile: {path}")
    return path


def needs_flagfile(options: CompilerOptions) -> bool:
    return len(options.js) > FLAGFILE_THRESHOLD
