"""RAW mode: uncompiled loaders and deps.js for the Closure debug loader."""

from __future__ import annotations

import json
import os
import posixpath
from urllib.parse import quote, urlencode, urljoin

from chunkserve.domain.file_node import FileNode
from chunkserve.errors import ConfigError
from chunkserve.pipeline.config import EntryConfig
from chunkserve.pipeline.dag import ChunkDag
from chunkserve.pipeline.deps import BASE_SYMBOL
from chunkserve.pipeline.options import convert_module_infos

INPUTS_URL_PATH = "/inputs"
CLOSURE_LIBRARY_URL_PATH = "/closure"
GOOG_BASE_URL_PATH = "/closure/goog/base.js"
DEPS_URL_PATH = "/deps.js"


def _input_url_path(path: str, inputs_root: str) -> str:
    rel = os.path.relpath(os.path.realpath(path), os.path.realpath(inputs_root))
    if rel == ".." or rel.startswith(".." + os.sep):
        raise ConfigError(f"'{path}' is outside inputs_root '{inputs_root}'")
    return f"{INPUTS_URL_PATH}/{quote(rel.replace(os.sep, '/'))}"


def inputs_to_uris(inputs: tuple[str, ...], inputs_root: str, base_url: str) -> list[str]:
    """URLs under ``/inputs`` serving each input file as-is."""
    return [urljoin(base_url, _input_url_path(path, inputs_root)) for path in inputs]


def _script_src(url: str) -> str:
    return f"document.write('<script src=\"{url}\"></script>');"


def _script_inline(code: str) -> str:
    return f"document.write('<script>{code}</script>');"


def _loader_header(entry: EntryConfig, base_url: str) -> list[str]:
    deps_url = f"{urljoin(base_url, DEPS_URL_PATH)}?{urlencode({'id': entry.id})}"
    return [_script_src(urljoin(base_url, GOOG_BASE_URL_PATH)), _script_src(deps_url)]


def render_raw_chunks(
    entry: EntryConfig,
    dag: ChunkDag,
    inputs_root: str,
    base_url: str,
) -> str:
    """Loader script for a chunked entry.

    The root chunk loads the inputs of every chunk, so every other chunk
    gets an empty URI list in the manifest.
    """
    if entry.modules is None:
        raise ConfigError(f'Entry "{entry.id}" has no "modules"')
    module_info, module_uris = convert_module_infos(
        entry, lambda chunk_id: inputs_to_uris(entry.modules[chunk_id].inputs, inputs_root, base_url)
    )
    sorted_ids = dag.get_sorted_ids()
    root_uris = [uri for chunk_id in sorted_ids for uri in module_uris[chunk_id]]
    module_uris = {chunk_id: [] for chunk_id in module_uris}
    module_uris[dag.root_id] = root_uris

    lines = _loader_header(entry, base_url)
    lines.append(_script_inline(f"var PLOVR_MODULE_INFO = {json.dumps(module_info)};"))
    lines.append(_script_inline(f"var PLOVR_MODULE_URIS = {json.dumps(module_uris)};"))
    lines.append(
        _script_inline(f"var PLOVR_MODULE_USE_DEBUG_MODE = {'true' if entry.debug else 'false'};")
    )
    lines.extend(_script_src(uri) for uri in root_uris)
    return "\n".join(lines) + "\n"


def render_raw_page(entry: EntryConfig, inputs_root: str, base_url: str) -> str:
    """Loader script for a single-page entry."""
    if entry.inputs is None:
        raise ConfigError(f'Entry "{entry.id}" has no "inputs"')
    lines = _loader_header(entry, base_url)
    lines.extend(_script_src(uri) for uri in inputs_to_uris(entry.inputs, inputs_root, base_url))
    return "\n".join(lines) + "\n"


def _js_list(values: tuple[str, ...]) -> str:
    return "[" + ", ".join(f"'{v}'" for v in values) + "]"


def render_deps_js(
    nodes: list[FileNode],
    inputs_root: str,
    closure_library_dir: str | None = None,
) -> str:
    """``goog.addDependency()`` records for the entry's own files.

    Paths are relative to the served ``base.js`` directory. Closure Library
    files are left out; the library's own deps.js covers them.
    """
    goog_dir = posixpath.dirname(GOOG_BASE_URL_PATH)
    library = os.path.realpath(closure_library_dir) if closure_library_dir else None
    lines = []
    for node in nodes:
        path = os.path.realpath(node.path)
        if BASE_SYMBOL in node.provides:
            continue
        if library and os.path.commonpath([path, library]) == library:
            continue
        rel = posixpath.relpath(_input_url_path(path, inputs_root), goog_dir)
        flags = "{'module': 'goog'}" if node.is_module else "{}"
        lines.append(
            f"goog.addDependency('{rel}', {_js_list(node.provides)}, "
            f"{_js_list(node.requires)}, {flags});"
        )
    return "\n".join(lines) + "\n"
