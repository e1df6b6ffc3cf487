"""
modules.py: Node-style module resolution.

Mirrors what `require.resolve` does for the cases this tool needs:

    ./foo        → ./foo, ./foo.js, ./foo.json, ./foo/package.json "main",
                   ./foo/index.js, ./foo/index.json
    glslify/x    → node_modules/glslify/x (+ the same rules), searched from
                   basedir upwards

Returns the resolved file together with the nearest package.json so callers
(the bundler) can see which package a file belongs to.
"""

import json
import os

from .output import ResolveError


DEFAULT_EXTENSIONS = (".js", ".json")


def is_path_specifier(specifier):
    """True for './x', '../x', '/x' (and Windows drive paths)."""
    return specifier.startswith((".", "/")) or os.path.isabs(specifier)


def _load_file(path, extensions):
    if os.path.isfile(path):
        return path
    for ext in extensions:
        candidate = path + ext
        if os.path.isfile(candidate):
            return candidate
    return None


def _read_package(directory):
    pkg_path = os.path.join(directory, "package.json")
    if not os.path.isfile(pkg_path):
        return None
    try:
        with open(pkg_path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def _load_directory(path, extensions):
    if not os.path.isdir(path):
        return None
    pkg = _read_package(path)
    main = pkg.get("main") if isinstance(pkg, dict) else None
    if isinstance(main, str) and main:
        target = os.path.join(path, main)
        found = _load_file(target, extensions) or _load_index(target, extensions)
        if found:
            return found
    return _load_index(path, extensions)


def _load_index(path, extensions):
    return _load_file(os.path.join(path, "index"), extensions) if os.path.isdir(path) else None


def _node_modules_dirs(basedir):
    directory = os.path.abspath(basedir)
    while True:
        if os.path.basename(directory) != "node_modules":
            yield os.path.join(directory, "node_modules")
        parent = os.path.dirname(directory)
        if parent == directory:
            return
        directory = parent


def find_package(path):
    """Return the parsed package.json nearest to `path`, or None."""
    directory = os.path.dirname(path)
    while True:
        pkg = _read_package(directory)
        if pkg is not None:
            return pkg
        parent = os.path.dirname(directory)
        if parent == directory:
            return None
        directory = parent


def resolve_module(specifier, basedir, extensions=DEFAULT_EXTENSIONS):
    """Resolve `specifier` from `basedir`. Returns (path, pkg).

    Raises ResolveError when nothing on disk matches.
    """
    if is_path_specifier(specifier):
        target = os.path.join(basedir, specifier)
        found = _load_file(target, extensions) or _load_directory(target, extensions)
    else:
        found = None
        for modules_dir in _node_modules_dirs(basedir):
            target = os.path.join(modules_dir, specifier)
            found = _load_file(target, extensions) or _load_directory(target, extensions)
            if found:
                break

    if not found:
        raise ResolveError(f"Cannot find module '{specifier}' from '{basedir}'")
    found = os.path.abspath(found)
    return found, find_package(found)
