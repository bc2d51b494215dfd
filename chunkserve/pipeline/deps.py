"""File dependency graph built from goog.provide/goog.require records."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable

from chunkserve.domain.file_node import FileNode
from chunkserve.errors import ConfigError, GraphError, ParseError, UnresolvedRequireError
from chunkserve.pipeline.config import EntryConfig

logger = logging.getLogger(__name__)

BASE_SYMBOL = "goog"

_PROVIDE_RE = re.compile(r"^\s*goog\.provide\(\s*['\"]([\w.$]+)['\"]\s*\)", re.MULTILINE)
_MODULE_RE = re.compile(r"^\s*goog\.module\(\s*['\"]([\w.$]+)['\"]\s*\)", re.MULTILINE)
_REQUIRE_RE = re.compile(r"\bgoog\.require\(\s*['\"]([\w.$]+)['\"]\s*\)")
_PROVIDE_GOOG_RE = re.compile(r"@provideGoog\b")
_ADD_DEPENDENCY_RE = re.compile(
    r"goog\.addDependency\(\s*['\"]([^'\"]+)['\"]\s*,\s*\[([^\]]*)\]\s*,\s*\[([^\]]*)\]"
    r"\s*(?:,\s*(\{[^}]*\}|true|false))?\s*\);?$"
)
_QUOTED_RE = re.compile(r"['\"]([^'\"]+)['\"]")


def scan_source(path: str, text: str) -> FileNode:
    """Extract provide/require records from one JavaScript source.

    This reads declarations only; it is not a JavaScript parser.

    Raises:
        ValueError: If the file declares conflicting module records
    """
    provides = _PROVIDE_RE.findall(text)
    modules = _MODULE_RE.findall(text)
    if len(modules) > 1:
        raise ValueError(f"{path}: goog.module() declared {len(modules)} times")
    if modules and provides:
        raise ValueError(f"{path}: goog.module() cannot be mixed with goog.provide()")
    symbols = provides + modules
    if _PROVIDE_GOOG_RE.search(text):
        symbols.insert(0, BASE_SYMBOL)
    requires = list(dict.fromkeys(_REQUIRE_RE.findall(text)))
    return FileNode(
        path=path,
        provides=tuple(dict.fromkeys(symbols)),
        requires=tuple(requires),
        is_module=bool(modules),
    )


def _is_excluded(path: str, test_excludes: tuple[str, ...]) -> bool:
    return path.endswith("_test.js") and any(path.startswith(e) for e in test_excludes)


def _is_within(path: str, directories: list[str]) -> bool:
    path = os.path.abspath(path)
    return any(os.path.commonpath([path, d]) == d for d in directories)


def find_js_files(
    roots: Iterable[str],
    ignore_dirs: Iterable[str] = (),
    test_excludes: tuple[str, ...] = (),
) -> list[str]:
    """Recursively list ``.js`` files under ``roots`` in a stable order.

    Anything inside one of ``ignore_dirs`` is skipped, compared by whole
    path components.
    """
    ignored = [os.path.abspath(d) for d in ignore_dirs]
    found: list[str] = []
    for root in roots:
        if _is_within(root, ignored):
            continue
        if os.path.isfile(root):
            found.append(root)
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames if not _is_within(os.path.join(dirpath, d), ignored)
            )
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if name.endswith(".js") and not _is_excluded(path, test_excludes):
                    found.append(path)
    return list(dict.fromkeys(found))


def scan_files(paths: Iterable[str]) -> list[FileNode]:
    """Scan every file, aggregating failures into a single ParseError."""
    nodes: list[FileNode] = []
    errors: list[str] = []
    for path in paths:
        try:
            text = Path(path).read_text(encoding="utf-8")
            nodes.append(scan_source(path, text))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            errors.append(str(e))
    if errors:
        raise ParseError(errors)
    return nodes


def parse_deps_file(text: str, base_dir: str, source: str = "deps.js") -> list[FileNode]:
    """Read ``goog.addDependency()`` records from a deps.js file.

    Relative paths in the records are resolved against ``base_dir``.

    Raises:
        ParseError: If any record cannot be read
    """
    nodes: list[FileNode] = []
    errors: list[str] = []
    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.lstrip().startswith("goog.addDependency("):
            continue
        match = _ADD_DEPENDENCY_RE.match(line.strip())
        if match is None:
            errors.append(f"{source}:{lineno}: unreadable goog.addDependency() record")
            continue
        rel_path, provides, requires, flags = match.groups()
        flags = (flags or "").replace(" ", "").replace('"', "'")
        nodes.append(
            FileNode(
                path=os.path.normpath(os.path.join(base_dir, rel_path)),
                provides=tuple(_QUOTED_RE.findall(provides)),
                requires=tuple(_QUOTED_RE.findall(requires)),
                is_module=flags == "true" or "'module':'goog'" in flags,
            )
        )
    if errors:
        raise ParseError(errors)
    return nodes


def load_closure_library(closure_library_dir: str) -> list[FileNode]:
    """Nodes for Closure Library, read from its ``closure/goog/deps.js``.

    ``base.js`` is not listed there; it is added as the ``goog`` provider.

    Raises:
        ConfigError: If deps.js cannot be read
        ParseError: If deps.js has unreadable records
    """
    goog_dir = os.path.join(os.path.abspath(closure_library_dir), "closure", "goog")
    deps_path = os.path.join(goog_dir, "deps.js")
    try:
        text = Path(deps_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read Closure Library deps.js: {e}") from e
    nodes = parse_deps_file(text, goog_dir, source=deps_path)
    base_path = os.path.join(goog_dir, "base.js")
    if not any(node.path == base_path for node in nodes):
        nodes.insert(0, FileNode(path=base_path, provides=(BASE_SYMBOL,)))
    logger.info(f"Loaded {len(nodes)} Closure Library records from {deps_path}")
    return nodes


class DependencyGraph:
    """Whole-program graph of files connected by provide/require edges."""

    def __init__(self, nodes: Iterable[FileNode]):
        """Index nodes by path and by provided symbol.

        Raises:
            GraphError: If two files provide the same symbol
        """
        self._nodes: dict[str, FileNode] = {}
        self._providers: dict[str, str] = {}
        for node in nodes:
            self._nodes[node.path] = node
            for symbol in node.provides:
                existing = self._providers.get(symbol)
                if existing is not None and existing != node.path:
                    raise GraphError(
                        f"'{symbol}' is provided by both '{existing}' and '{node.path}'"
                    )
                self._providers[symbol] = node.path
        self._base_path = self._providers.get(BASE_SYMBOL)

    @classmethod
    def from_entry(cls, entry: EntryConfig, closure_library_dir: str | None = None) -> "DependencyGraph":
        """Scan every ``.js`` file under the entry's ``paths``.

        With ``closure_library_dir`` set, files under it are not scanned;
        the library's own deps.js records are used instead.
        """
        ignore_dirs = [closure_library_dir] if closure_library_dir else []
        files = find_js_files(entry.paths, ignore_dirs, entry.test_excludes)
        logger.info(f"Scanning {len(files)} files for entry '{entry.id}'")
        nodes = scan_files(files)
        if closure_library_dir:
            nodes = load_closure_library(closure_library_dir) + nodes
        return cls(nodes)

    def nodes(self) -> list[FileNode]:
        return list(self._nodes.values())

    def __contains__(self, path: str) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, path: str) -> FileNode:
        try:
            return self._nodes[path]
        except KeyError:
            raise GraphError(f"Unknown file: {path}") from None

    def direct_dependencies(self, path: str) -> list[str]:
        """Paths of the files providing each symbol ``path`` requires."""
        node = self.get(path)
        deps = []
        for symbol in node.requires:
            provider = self._providers.get(symbol)
            if provider is None:
                raise UnresolvedRequireError(path, symbol)
            if provider != path:
                deps.append(provider)
        return deps

    def closure(self, entry_paths: Iterable[str]) -> list[FileNode]:
        """Return every file reachable from ``entry_paths``, dependencies first.

        Requires are followed in declaration order, so the result is
        deterministic. The base file (``@provideGoog``) leads any nonempty
        closure when the graph has one.

        Raises:
            GraphError: For unknown entry paths or a file-level cycle
            UnresolvedRequireError: For a require nothing provides
        """
        entry_paths = list(entry_paths)
        if not entry_paths:
            return []
        ordered: list[str] = []
        done: set[str] = set()
        if self._base_path is not None:
            ordered.append(self._base_path)
            done.add(self._base_path)

        for entry in entry_paths:
            self.get(entry)
            if entry in done:
                continue
            # Iterative post-order DFS; "active" tracks the current path.
            active: set[str] = {entry}
            stack: list[tuple[str, list[str]]] = [(entry, self.direct_dependencies(entry))]
            while stack:
                path, pending = stack[-1]
                if not pending:
                    stack.pop()
                    active.discard(path)
                    done.add(path)
                    ordered.append(path)
                    continue
                dep = pending.pop(0)
                if dep in done:
                    continue
                if dep in active:
                    raise GraphError(f"Circular dependency between '{path}' and '{dep}'")
                active.add(dep)
                stack.append((dep, self.direct_dependencies(dep)))

        return [self._nodes[path] for path in ordered]
