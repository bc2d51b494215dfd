"""File node entity for the dependency graph."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FileNode:
    """Immutable source file record.

    Attributes:
        path: Absolute or root-relative file path
        provides: Symbols declared by this file (goog.provide / goog.module)
        requires: Symbols this file needs (goog.require)
        is_module: True for goog.module files
    """

    path: str
    provides: tuple[str, ...] = ()
    requires: tuple[str, ...] = ()
    is_module: bool = False

